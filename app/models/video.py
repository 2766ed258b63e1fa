from sqlalchemy import Column, Integer, String, Text, JSON

from app.core.database import Base, UTCDateTime, new_id, utcnow


class Video(Base):
    """
    A lesson video ("explainer").

    ``grade`` and ``subject_id`` must agree with the chapter > unit > subject
    ancestry; they are copied from it when the video is created under a
    chapter.
    """
    __tablename__ = "videos"

    id = Column(String(64), primary_key=True, default=new_id)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    duration = Column(String(20), nullable=False, default="0:00")
    url = Column(String(1024), nullable=False)
    thumbnail = Column(String(1024), nullable=False, default="/placeholder.svg")

    # Counters
    views = Column(Integer, nullable=False, default=0)
    likes = Column(Integer, nullable=False, default=0)

    # Position within the chapter (ascending)
    order = Column(Integer, nullable=True)

    # beginner, intermediate, advanced
    difficulty = Column(String(20), nullable=False, default="beginner")
    category = Column(String(100), nullable=True)
    tags = Column(JSON, nullable=False, default=list)

    # Ancestry
    chapter_id = Column(String(64), nullable=True, index=True)
    unit_id = Column(String(64), nullable=True, index=True)
    subject_id = Column(String(64), nullable=False, index=True)
    subject_name = Column(String(255), nullable=True)
    grade = Column(Integer, nullable=False, index=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Video(id={self.id}, title='{self.title}', grade={self.grade})>"
