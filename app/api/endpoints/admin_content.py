"""
Administrator CRUD for the content catalog.

Deletion is refused while a node still has children. Videos created under
a chapter take their unit, subject and grade from the chapter's ancestry,
and the subject's cached video count follows creates, moves and deletes.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.content_service import ContentService, ordered
from app.core.database import get_db, new_id, utcnow
from app.models.chapter import Chapter
from app.models.subject import Subject
from app.models.unit import Unit
from app.models.video import Video
from app.schemas.common import ApiResponse, Pagination
from app.schemas.content import (
    SubjectCreate,
    SubjectUpdate,
    SubjectResponse,
    SubjectSummary,
    UnitCreate,
    UnitUpdate,
    UnitResponse,
    ChapterCreate,
    ChapterUpdate,
    ChapterResponse,
    VideoCreate,
    StandaloneVideoCreate,
    VideoUpdate,
    VideoResponse,
    AdminVideoListResponse,
    AdminVideoStats,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _apply(instance, changes: dict) -> None:
    for field, value in changes.items():
        setattr(instance, field, value)
    instance.updated_at = utcnow()


# --- Subjects ---

@router.get("/subjects", response_model=ApiResponse[list[SubjectSummary]])
async def list_subjects(
    grade: Optional[int] = Query(None, ge=6, le=10),
    db: AsyncSession = Depends(get_db),
):
    subjects = await ContentService.list_subjects(db, grade)
    counts = await ContentService.subject_counts(db, [s.id for s in subjects])
    return ApiResponse(data=[
        SubjectSummary.model_validate(subject).model_copy(update=counts[subject.id])
        for subject in subjects
    ])


@router.post("/subjects", response_model=ApiResponse[SubjectResponse], status_code=status.HTTP_201_CREATED)
async def create_subject(payload: SubjectCreate, db: AsyncSession = Depends(get_db)):
    """
    Create a subject.

    Raises:
        ValidationFailed 400: If a subject with the same name exists for the grade
    """
    await ContentService.ensure_unique_subject(db, payload.name, payload.grade)

    now = utcnow()
    subject = Subject(id=new_id(), video_count=0, created_at=now, updated_at=now, **payload.model_dump())
    db.add(subject)
    await db.commit()
    logger.info("Subject %s created for class %s", subject.name, subject.grade)

    return ApiResponse(data=SubjectResponse.model_validate(subject), message="Subject created successfully")


@router.put("/subjects/{subject_id}", response_model=ApiResponse[SubjectResponse])
async def update_subject(subject_id: str, payload: SubjectUpdate, db: AsyncSession = Depends(get_db)):
    """
    Update a subject. A grade change is propagated to the subject's videos.
    """
    subject = await ContentService.get_subject(db, subject_id)
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)

    if "name" in changes or "grade" in changes:
        await ContentService.ensure_unique_subject(
            db,
            changes.get("name", subject.name),
            changes.get("grade", subject.grade),
            exclude_id=subject.id,
        )

    _apply(subject, changes)
    if "grade" in changes or "name" in changes:
        for video in await ContentService.list_videos(db, subject_id=subject.id):
            video.grade = subject.grade
            video.subject_name = subject.name
            video.updated_at = subject.updated_at
    await db.commit()

    return ApiResponse(data=SubjectResponse.model_validate(subject), message="Subject updated successfully")


@router.delete("/subjects/{subject_id}", response_model=ApiResponse[dict])
async def delete_subject(subject_id: str, db: AsyncSession = Depends(get_db)):
    """
    Delete a subject.

    Raises:
        ValidationFailed 400: While the subject still has units or videos
    """
    subject = await ContentService.get_subject(db, subject_id)
    await ContentService.ensure_subject_deletable(db, subject)

    await db.delete(subject)
    await db.commit()
    logger.info("Subject %s deleted", subject_id)

    return ApiResponse(data={"id": subject_id}, message="Subject deleted successfully")


# --- Units ---

@router.get("/subjects/{subject_id}/units", response_model=ApiResponse[list[UnitResponse]])
async def list_units(subject_id: str, db: AsyncSession = Depends(get_db)):
    subject = await ContentService.get_subject(db, subject_id)
    units = await ContentService.list_units(db, subject.id)
    return ApiResponse(data=[UnitResponse.model_validate(u) for u in units])


@router.post(
    "/subjects/{subject_id}/units",
    response_model=ApiResponse[UnitResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_unit(subject_id: str, payload: UnitCreate, db: AsyncSession = Depends(get_db)):
    """Create a unit; without an explicit order it goes last."""
    subject = await ContentService.get_subject(db, subject_id)

    order = payload.order
    if order is None:
        order = len(await ContentService.list_units(db, subject.id)) + 1

    now = utcnow()
    unit = Unit(
        id=new_id(),
        subject_id=subject.id,
        name=payload.name,
        description=payload.description,
        order=order,
        created_at=now,
        updated_at=now,
    )
    db.add(unit)
    await db.commit()

    return ApiResponse(data=UnitResponse.model_validate(unit), message="Unit created successfully")


@router.put("/units/{unit_id}", response_model=ApiResponse[UnitResponse])
async def update_unit(unit_id: str, payload: UnitUpdate, db: AsyncSession = Depends(get_db)):
    unit = await ContentService.get_unit(db, unit_id)
    _apply(unit, payload.model_dump(exclude_unset=True, exclude_none=True))
    await db.commit()
    return ApiResponse(data=UnitResponse.model_validate(unit), message="Unit updated successfully")


@router.delete("/units/{unit_id}", response_model=ApiResponse[dict])
async def delete_unit(unit_id: str, db: AsyncSession = Depends(get_db)):
    """
    Raises:
        ValidationFailed 400: While the unit still has chapters
    """
    unit = await ContentService.get_unit(db, unit_id)
    await ContentService.ensure_unit_deletable(db, unit)

    await db.delete(unit)
    await db.commit()
    return ApiResponse(data={"id": unit_id}, message="Unit deleted successfully")


# --- Chapters ---

@router.get("/units/{unit_id}/chapters", response_model=ApiResponse[list[ChapterResponse]])
async def list_chapters(unit_id: str, db: AsyncSession = Depends(get_db)):
    unit = await ContentService.get_unit(db, unit_id)
    chapters = await ContentService.list_chapters(db, unit_id=unit.id)
    return ApiResponse(data=[ChapterResponse.model_validate(c) for c in chapters])


@router.post(
    "/units/{unit_id}/chapters",
    response_model=ApiResponse[ChapterResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_chapter(unit_id: str, payload: ChapterCreate, db: AsyncSession = Depends(get_db)):
    unit = await ContentService.get_unit(db, unit_id)

    order = payload.order
    if order is None:
        order = len(await ContentService.list_chapters(db, unit_id=unit.id)) + 1

    now = utcnow()
    chapter = Chapter(
        id=new_id(),
        unit_id=unit.id,
        subject_id=unit.subject_id,
        name=payload.name,
        description=payload.description,
        order=order,
        created_at=now,
        updated_at=now,
    )
    db.add(chapter)
    await db.commit()

    return ApiResponse(data=ChapterResponse.model_validate(chapter), message="Chapter created successfully")


@router.put("/chapters/{chapter_id}", response_model=ApiResponse[ChapterResponse])
async def update_chapter(chapter_id: str, payload: ChapterUpdate, db: AsyncSession = Depends(get_db)):
    chapter = await ContentService.get_chapter(db, chapter_id)
    _apply(chapter, payload.model_dump(exclude_unset=True, exclude_none=True))
    await db.commit()
    return ApiResponse(data=ChapterResponse.model_validate(chapter), message="Chapter updated successfully")


@router.delete("/chapters/{chapter_id}", response_model=ApiResponse[dict])
async def delete_chapter(chapter_id: str, db: AsyncSession = Depends(get_db)):
    """
    Raises:
        ValidationFailed 400: While the chapter still has videos
    """
    chapter = await ContentService.get_chapter(db, chapter_id)
    await ContentService.ensure_chapter_deletable(db, chapter)

    await db.delete(chapter)
    await db.commit()
    return ApiResponse(data={"id": chapter_id}, message="Chapter deleted successfully")


# --- Videos ---

@router.get("/videos", response_model=ApiResponse[AdminVideoListResponse])
async def list_videos(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    grade: Optional[int] = Query(None, ge=6, le=10),
    subject_id: Optional[str] = Query(None, alias="subjectId"),
    search: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Paginated video list with per-difficulty stats over the filtered set."""
    conditions = []
    if grade is not None:
        conditions.append(Video.grade == grade)
    if subject_id:
        conditions.append(Video.subject_id == subject_id)
    if search:
        pattern = f"%{search.lower()}%"
        conditions.append(or_(func.lower(Video.title).like(pattern), func.lower(Video.description).like(pattern)))

    total = (await db.execute(select(func.count(Video.id)).where(*conditions))).scalar_one()
    total_views = (await db.execute(
        select(func.coalesce(func.sum(Video.views), 0)).where(*conditions)
    )).scalar_one()
    difficulty_rows = await db.execute(
        select(Video.difficulty, func.count(Video.id)).where(*conditions).group_by(Video.difficulty)
    )

    result = await db.execute(
        ordered(select(Video).where(*conditions), Video).offset((page - 1) * limit).limit(limit)
    )

    return ApiResponse(data=AdminVideoListResponse(
        videos=[VideoResponse.model_validate(v) for v in result.scalars().all()],
        pagination=Pagination(page=page, limit=limit, total=total, total_pages=(total + limit - 1) // limit),
        stats=AdminVideoStats(
            total_videos=total,
            total_views=total_views,
            by_difficulty={difficulty: count for difficulty, count in difficulty_rows.all()},
        ),
    ))


async def _create_video(db: AsyncSession, fields: dict, placement: dict) -> Video:
    now = utcnow()
    video = Video(
        id=new_id(),
        views=0,
        likes=0,
        created_at=now,
        updated_at=now,
        **fields,
        **placement,
    )
    if video.order is None:
        siblings = await ContentService.list_videos(
            db, chapter_id=placement["chapter_id"]
        ) if placement.get("chapter_id") else []
        video.order = len(siblings) + 1
    db.add(video)
    await ContentService.adjust_video_count(db, placement["subject_id"], 1)
    await db.commit()
    logger.info("Video %s added to subject %s", video.title, placement["subject_id"])
    return video


@router.post(
    "/chapters/{chapter_id}/videos",
    response_model=ApiResponse[VideoResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_chapter_video(chapter_id: str, payload: VideoCreate, db: AsyncSession = Depends(get_db)):
    """Create a video under a chapter; subject, unit and grade come from the chapter."""
    placement = await ContentService.resolve_ancestry(db, chapter_id)
    video = await _create_video(db, payload.model_dump(mode="json"), placement)
    return ApiResponse(data=VideoResponse.model_validate(video), message="Video created successfully")


@router.post("/videos", response_model=ApiResponse[VideoResponse], status_code=status.HTTP_201_CREATED)
async def create_video(payload: StandaloneVideoCreate, db: AsyncSession = Depends(get_db)):
    """
    Create a video directly under a subject (legacy flow).

    When a chapter is given the chapter's ancestry wins over ``subjectId``.
    """
    fields = payload.model_dump(mode="json", exclude={"subject_id", "chapter_id"})
    if payload.chapter_id:
        placement = await ContentService.resolve_ancestry(db, payload.chapter_id)
    else:
        subject = await ContentService.get_subject(db, payload.subject_id)
        placement = {
            "chapter_id": None,
            "unit_id": None,
            "subject_id": subject.id,
            "subject_name": subject.name,
            "grade": subject.grade,
        }
    video = await _create_video(db, fields, placement)
    return ApiResponse(data=VideoResponse.model_validate(video), message="Video created successfully")


@router.put("/videos/{video_id}", response_model=ApiResponse[VideoResponse])
async def update_video(video_id: str, payload: VideoUpdate, db: AsyncSession = Depends(get_db)):
    """
    Update a video. Moving it to another chapter re-derives its ancestry
    and moves the cached count between subjects.
    """
    video = await ContentService.get_video(db, video_id)
    changes = payload.model_dump(mode="json", exclude_unset=True, exclude_none=True)

    new_chapter = changes.pop("chapter_id", None)
    if new_chapter and new_chapter != video.chapter_id:
        placement = await ContentService.resolve_ancestry(db, new_chapter)
        if placement["subject_id"] != video.subject_id:
            await ContentService.adjust_video_count(db, video.subject_id, -1)
            await ContentService.adjust_video_count(db, placement["subject_id"], 1)
        changes.update(placement)

    _apply(video, changes)
    await db.commit()
    return ApiResponse(data=VideoResponse.model_validate(video), message="Video updated successfully")


@router.delete("/videos/{video_id}", response_model=ApiResponse[dict])
async def delete_video(video_id: str, db: AsyncSession = Depends(get_db)):
    video = await ContentService.get_video(db, video_id)
    subject_id = video.subject_id

    await db.delete(video)
    await ContentService.adjust_video_count(db, subject_id, -1)
    await db.commit()
    logger.info("Video %s deleted", video_id)

    return ApiResponse(data={"id": video_id}, message="Video deleted successfully")
