"""
Learner-facing content catalog.

Subjects are scoped to the caller's grade; video endpoints additionally
require an active subscription or a running trial. Static paths
(``/all/videos``, ``/videos/{id}``) are declared before ``/{subject_id}``.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.content_service import ContentService, ensure_grade_access
from app.core.database import get_db, utcnow
from app.core.exceptions import NotFound, Forbidden
from app.core.dependencies import get_current_user, require_subscription
from app.core.subscription_service import has_content_access
from app.schemas.common import ApiResponse
from app.schemas.content import (
    SubjectListResponse,
    SubjectSummary,
    SubjectDetailResponse,
    SubjectResponse,
    UnitResponse,
    ChapterResponse,
    VideoResponse,
    VideoListResponse,
    VideoDetailResponse,
)
from app.schemas.user import CurrentUser

router = APIRouter()


def _scope_grade(user: CurrentUser, requested: Optional[int]) -> Optional[int]:
    """
    Learners are pinned to their grade; administrators may pick one (or all).

    Raises:
        Forbidden 403: For a learner whose profile carries no grade
    """
    if user.is_admin:
        return requested
    if user.grade is None:
        raise Forbidden("Access denied for this class", gradeRestricted=True)
    return user.grade


@router.get("", response_model=ApiResponse[SubjectListResponse])
async def list_subjects(
    grade: Optional[int] = Query(None, alias="class", ge=6, le=10, description="Admin only: filter by class"),
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    List subjects for the caller's grade with unit, chapter and video counts.
    """
    scoped = _scope_grade(current_user, grade)
    subjects = await ContentService.list_subjects(db, scoped)
    counts = await ContentService.subject_counts(db, [s.id for s in subjects])

    summaries = [
        SubjectSummary.model_validate(subject).model_copy(update=counts[subject.id])
        for subject in subjects
    ]

    return ApiResponse(data=SubjectListResponse(
        grade=scoped,
        subjects=summaries,
        subscription_status=current_user.subscription_status.value,
        trial_end_date=current_user.trial_end_date,
    ))


@router.get("/all/videos", response_model=ApiResponse[VideoListResponse])
async def list_all_videos(
    current_user: CurrentUser = Depends(require_subscription),
    db: AsyncSession = Depends(get_db),
):
    """Every video for the caller's grade, across subjects."""
    scoped = _scope_grade(current_user, None)
    videos = await ContentService.list_videos(db, grade=scoped)
    return ApiResponse(data=VideoListResponse(
        grade=scoped,
        videos=[VideoResponse.model_validate(v) for v in videos],
        total_videos=len(videos),
    ))


@router.get("/videos/{video_id}", response_model=ApiResponse[VideoDetailResponse])
async def get_video(
    video_id: str,
    current_user: CurrentUser = Depends(require_subscription),
    db: AsyncSession = Depends(get_db),
):
    """A single video; 403 if it belongs to another grade."""
    video = await ContentService.get_video(db, video_id)
    ensure_grade_access(current_user, video.grade)
    return ApiResponse(data=VideoDetailResponse(
        grade=video.grade,
        video=VideoResponse.model_validate(video),
    ))


@router.get("/{subject_id}", response_model=ApiResponse[SubjectDetailResponse])
async def get_subject(
    subject_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Subject with its units, chapters and videos.

    The outline (units and chapters) is visible to every learner of the
    grade; videos are withheld (``videosLocked``) without a subscription.
    """
    subject = await ContentService.get_subject(db, subject_id)
    ensure_grade_access(current_user, subject.grade)

    units = await ContentService.list_units(db, subject.id)
    chapters = await ContentService.list_chapters(db, subject_id=subject.id)

    unlocked = has_content_access(current_user.subscription_status, current_user.trial_end_date, utcnow())
    videos = await ContentService.list_videos(db, subject_id=subject.id) if unlocked else []

    return ApiResponse(data=SubjectDetailResponse(
        subject=SubjectResponse.model_validate(subject),
        units=[UnitResponse.model_validate(u) for u in units],
        chapters=[ChapterResponse.model_validate(c) for c in chapters],
        videos=[VideoResponse.model_validate(v) for v in videos],
        videos_locked=not unlocked,
    ))


@router.get("/{subject_id}/videos", response_model=ApiResponse[VideoListResponse])
async def list_subject_videos(
    subject_id: str,
    current_user: CurrentUser = Depends(require_subscription),
    db: AsyncSession = Depends(get_db),
):
    subject = await ContentService.get_subject(db, subject_id)
    ensure_grade_access(current_user, subject.grade)

    videos = await ContentService.list_videos(db, subject_id=subject.id)
    return ApiResponse(data=VideoListResponse(
        grade=subject.grade,
        subject_id=subject.id,
        videos=[VideoResponse.model_validate(v) for v in videos],
        total_videos=len(videos),
    ))


@router.get("/{subject_id}/chapters/{chapter_id}/videos", response_model=ApiResponse[VideoListResponse])
async def list_chapter_videos(
    subject_id: str,
    chapter_id: str,
    current_user: CurrentUser = Depends(require_subscription),
    db: AsyncSession = Depends(get_db),
):
    subject = await ContentService.get_subject(db, subject_id)
    ensure_grade_access(current_user, subject.grade)
    chapter = await ContentService.get_chapter(db, chapter_id)
    if chapter.subject_id != subject.id:
        raise NotFound("Chapter not found")

    videos = await ContentService.list_videos(db, chapter_id=chapter.id)
    return ApiResponse(data=VideoListResponse(
        grade=subject.grade,
        subject_id=subject.id,
        chapter_id=chapter.id,
        videos=[VideoResponse.model_validate(v) for v in videos],
        total_videos=len(videos),
    ))
