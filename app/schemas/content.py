from pydantic import Field
from typing import List, Optional
from datetime import datetime
from enum import Enum

from app.schemas.common import CamelModel, Pagination


class Difficulty(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


# --- Subjects ---

class SubjectBase(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    grade: int = Field(..., ge=6, le=10)
    icon: str = "\U0001F4DA"
    color: str = "#3B82F6"


class SubjectCreate(SubjectBase):
    """Schema for creating a subject"""
    pass


class SubjectUpdate(CamelModel):
    """Schema for updating a subject"""
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    grade: Optional[int] = Field(default=None, ge=6, le=10)
    icon: Optional[str] = None
    color: Optional[str] = None


class SubjectResponse(SubjectBase):
    id: str
    video_count: int = 0
    created_at: datetime
    updated_at: datetime


class SubjectSummary(SubjectResponse):
    """Subject with child counts for listings"""
    total_units: int = 0
    total_chapters: int = 0
    total_videos: int = 0


# --- Units ---

class UnitCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    order: Optional[int] = Field(default=None, ge=0)


class UnitUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    order: Optional[int] = Field(default=None, ge=0)


class UnitResponse(CamelModel):
    id: str
    subject_id: str
    name: str
    description: str
    order: Optional[int] = None
    created_at: datetime
    updated_at: datetime


# --- Chapters ---

class ChapterCreate(UnitCreate):
    pass


class ChapterUpdate(UnitUpdate):
    pass


class ChapterResponse(CamelModel):
    id: str
    unit_id: str
    subject_id: str
    name: str
    description: str
    order: Optional[int] = None
    created_at: datetime
    updated_at: datetime


# --- Videos ---

class VideoFields(CamelModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    duration: str = "0:00"
    url: str = Field(..., min_length=1)
    thumbnail: str = "/placeholder.svg"
    order: Optional[int] = Field(default=None, ge=0)
    difficulty: Difficulty = Difficulty.BEGINNER
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class VideoCreate(VideoFields):
    """Video created under a chapter; ancestry is derived from the chapter"""
    pass


class StandaloneVideoCreate(VideoFields):
    """Video attached directly to a subject (no unit/chapter)"""
    subject_id: str
    chapter_id: Optional[str] = None


class VideoUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    duration: Optional[str] = None
    url: Optional[str] = Field(default=None, min_length=1)
    thumbnail: Optional[str] = None
    order: Optional[int] = Field(default=None, ge=0)
    difficulty: Optional[Difficulty] = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None
    # Moving a video re-derives its ancestry from the new chapter
    chapter_id: Optional[str] = None


class VideoResponse(VideoFields):
    id: str
    views: int = 0
    likes: int = 0
    chapter_id: Optional[str] = None
    unit_id: Optional[str] = None
    subject_id: str
    subject_name: Optional[str] = None
    grade: int
    created_at: datetime
    updated_at: datetime


# --- Learner-facing composites ---

class SubjectListResponse(CamelModel):
    grade: Optional[int] = Field(default=None, alias="class")
    subjects: List[SubjectSummary]
    subscription_status: str
    trial_end_date: Optional[datetime] = None


class SubjectDetailResponse(CamelModel):
    subject: SubjectResponse
    units: List[UnitResponse]
    chapters: List[ChapterResponse]
    videos: List[VideoResponse]
    # True when videos are withheld because the caller has no active plan or trial
    videos_locked: bool = False


class VideoListResponse(CamelModel):
    grade: Optional[int] = Field(default=None, alias="class")
    subject_id: Optional[str] = None
    chapter_id: Optional[str] = None
    videos: List[VideoResponse]
    total_videos: int


class VideoDetailResponse(CamelModel):
    grade: Optional[int] = Field(default=None, alias="class")
    video: VideoResponse


class AdminVideoStats(CamelModel):
    total_videos: int
    total_views: int
    by_difficulty: dict


class AdminVideoListResponse(CamelModel):
    videos: List[VideoResponse]
    pagination: Pagination
    stats: AdminVideoStats
