from sqlalchemy import Column, Integer, String, Text, ForeignKey

from app.core.database import Base, UTCDateTime, new_id, utcnow


class Chapter(Base):
    __tablename__ = "chapters"

    id = Column(String(64), primary_key=True, default=new_id)

    unit_id = Column(
        String(64),
        ForeignKey("units.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    # Denormalized from the unit for subject-wide queries
    subject_id = Column(String(64), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")

    # Position within the unit (ascending)
    order = Column(Integer, nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Chapter(id={self.id}, name='{self.name}', unit_id={self.unit_id})>"
