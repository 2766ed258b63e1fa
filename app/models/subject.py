from sqlalchemy import Column, Integer, String, Text

from app.core.database import Base, UTCDateTime, new_id, utcnow


class Subject(Base):
    """
    Top of the content hierarchy: Subject > Unit > Chapter > Video.

    ``video_count`` is a cached display value maintained by the admin
    video endpoints; it is advisory and may drift under concurrent writes.
    """
    __tablename__ = "subjects"

    id = Column(String(64), primary_key=True, default=new_id)

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")

    # Grade the subject is taught in (6-10)
    grade = Column(Integer, nullable=False, index=True)

    # Display attributes
    icon = Column(String(50), nullable=False, default="\U0001F4DA")
    color = Column(String(50), nullable=False, default="#3B82F6")

    video_count = Column(Integer, nullable=False, default=0)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Subject(id={self.id}, name='{self.name}', grade={self.grade})>"
