"""
Service layer for the content catalog (Subject > Unit > Chapter > Video).

Shared by the learner-facing subject endpoints and the admin CRUD
endpoints: lookups, ordering, grade access checks, referential-integrity
guards and the cached per-subject video count.
"""

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import utcnow
from app.core.exceptions import NotFound, Forbidden, ValidationFailed
from app.models.subject import Subject
from app.models.unit import Unit
from app.models.chapter import Chapter
from app.models.video import Video
from app.schemas.user import CurrentUser


def ordered(query, model):
    """Order by the explicit ``order`` field (missing last), then insertion."""
    return query.order_by(model.order.is_(None), model.order, model.created_at)


def ensure_grade_access(user: CurrentUser, grade: int) -> None:
    """
    Learners only see content for their own grade; administrators see all.

    Raises:
        Forbidden 403: If the content grade differs from the caller's grade
    """
    if user.is_admin:
        return
    if user.grade != grade:
        raise Forbidden("Access denied for this class", gradeRestricted=True)


class ContentService:
    """Catalog queries and integrity rules."""

    # --- Lookups ---

    @staticmethod
    async def get_subject(db: AsyncSession, subject_id: str) -> Subject:
        subject = await db.get(Subject, subject_id)
        if subject is None:
            raise NotFound("Subject not found")
        return subject

    @staticmethod
    async def get_unit(db: AsyncSession, unit_id: str) -> Unit:
        unit = await db.get(Unit, unit_id)
        if unit is None:
            raise NotFound("Unit not found")
        return unit

    @staticmethod
    async def get_chapter(db: AsyncSession, chapter_id: str) -> Chapter:
        chapter = await db.get(Chapter, chapter_id)
        if chapter is None:
            raise NotFound("Chapter not found")
        return chapter

    @staticmethod
    async def get_video(db: AsyncSession, video_id: str) -> Video:
        video = await db.get(Video, video_id)
        if video is None:
            raise NotFound("Video not found")
        return video

    # --- Listings ---

    @staticmethod
    async def list_subjects(db: AsyncSession, grade: int | None = None) -> list[Subject]:
        query = select(Subject)
        if grade is not None:
            query = query.where(Subject.grade == grade)
        result = await db.execute(query.order_by(Subject.grade, Subject.name, Subject.created_at))
        return result.scalars().all()

    @staticmethod
    async def list_units(db: AsyncSession, subject_id: str) -> list[Unit]:
        result = await db.execute(ordered(select(Unit).where(Unit.subject_id == subject_id), Unit))
        return result.scalars().all()

    @staticmethod
    async def list_chapters(
        db: AsyncSession,
        unit_id: str | None = None,
        subject_id: str | None = None,
    ) -> list[Chapter]:
        query = select(Chapter)
        if unit_id is not None:
            query = query.where(Chapter.unit_id == unit_id)
        if subject_id is not None:
            query = query.where(Chapter.subject_id == subject_id)
        result = await db.execute(ordered(query, Chapter))
        return result.scalars().all()

    @staticmethod
    async def list_videos(
        db: AsyncSession,
        subject_id: str | None = None,
        chapter_id: str | None = None,
        grade: int | None = None,
    ) -> list[Video]:
        query = select(Video)
        if subject_id is not None:
            query = query.where(Video.subject_id == subject_id)
        if chapter_id is not None:
            query = query.where(Video.chapter_id == chapter_id)
        if grade is not None:
            query = query.where(Video.grade == grade)
        result = await db.execute(ordered(query, Video))
        return result.scalars().all()

    @staticmethod
    async def subject_counts(db: AsyncSession, subject_ids: list[str]) -> dict[str, dict]:
        """Units, chapters and videos per subject, in three grouped queries."""
        counts = {sid: {"total_units": 0, "total_chapters": 0, "total_videos": 0} for sid in subject_ids}
        if not subject_ids:
            return counts

        for model, key in ((Unit, "total_units"), (Chapter, "total_chapters"), (Video, "total_videos")):
            result = await db.execute(
                select(model.subject_id, func.count(model.id))
                .where(model.subject_id.in_(subject_ids))
                .group_by(model.subject_id)
            )
            for subject_id, count in result.all():
                counts[subject_id][key] = count
        return counts

    # --- Integrity ---

    @staticmethod
    async def _count(db: AsyncSession, model, column, value) -> int:
        result = await db.execute(select(func.count(model.id)).where(column == value))
        return result.scalar_one()

    @staticmethod
    async def ensure_unique_subject(
        db: AsyncSession, name: str, grade: int, exclude_id: str | None = None
    ) -> None:
        """
        Subject names are unique per grade (case-insensitive).

        Raises:
            ValidationFailed 400: On a duplicate name + grade
        """
        query = select(Subject.id).where(func.lower(Subject.name) == name.strip().lower()).where(Subject.grade == grade)
        if exclude_id is not None:
            query = query.where(Subject.id != exclude_id)
        if (await db.execute(query)).first() is not None:
            raise ValidationFailed(f"Subject '{name}' already exists for class {grade}")

    @staticmethod
    async def ensure_subject_deletable(db: AsyncSession, subject: Subject) -> None:
        units = await ContentService._count(db, Unit, Unit.subject_id, subject.id)
        videos = await ContentService._count(db, Video, Video.subject_id, subject.id)
        if units or videos:
            raise ValidationFailed(
                f"Cannot delete subject with existing content ({units} units, {videos} videos). "
                "Delete them first."
            )

    @staticmethod
    async def ensure_unit_deletable(db: AsyncSession, unit: Unit) -> None:
        chapters = await ContentService._count(db, Chapter, Chapter.unit_id, unit.id)
        if chapters:
            raise ValidationFailed(f"Cannot delete unit with {chapters} chapters. Delete them first.")

    @staticmethod
    async def ensure_chapter_deletable(db: AsyncSession, chapter: Chapter) -> None:
        videos = await ContentService._count(db, Video, Video.chapter_id, chapter.id)
        if videos:
            raise ValidationFailed(f"Cannot delete chapter with {videos} videos. Delete them first.")

    @staticmethod
    async def resolve_ancestry(db: AsyncSession, chapter_id: str) -> dict:
        """
        Derive a video's placement from its chapter.

        Returns:
            dict: chapter_id, unit_id, subject_id, subject_name and grade
        """
        chapter = await ContentService.get_chapter(db, chapter_id)
        unit = await ContentService.get_unit(db, chapter.unit_id)
        subject = await ContentService.get_subject(db, unit.subject_id)
        return {
            "chapter_id": chapter.id,
            "unit_id": unit.id,
            "subject_id": subject.id,
            "subject_name": subject.name,
            "grade": subject.grade,
        }

    @staticmethod
    async def adjust_video_count(db: AsyncSession, subject_id: str, delta: int) -> None:
        """Shift the cached count; never below zero. Caller commits."""
        subject = await db.get(Subject, subject_id)
        if subject is None:
            return
        subject.video_count = max(0, (subject.video_count or 0) + delta)
        subject.updated_at = utcnow()
