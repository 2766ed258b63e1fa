from sqlalchemy import Column, Integer, String, Text, ForeignKey

from app.core.database import Base, UTCDateTime, new_id, utcnow


class Unit(Base):
    """A unit groups chapters inside a subject."""
    __tablename__ = "units"

    id = Column(String(64), primary_key=True, default=new_id)

    subject_id = Column(
        String(64),
        ForeignKey("subjects.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")

    # Position within the subject (ascending)
    order = Column(Integer, nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Unit(id={self.id}, name='{self.name}', subject_id={self.subject_id})>"
