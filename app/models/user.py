from sqlalchemy import Column, Integer, String, Boolean, Index

from app.core.database import Base, UTCDateTime, utcnow


class User(Base):
    """
    Learner profile.

    The primary key is the identity provider's subject id, so a profile row
    is created at registration and looked up directly from a verified token.
    Profiles are never hard-deleted.
    """
    __tablename__ = "users"

    # Identity provider subject id (Supabase auth user id)
    id = Column(String(64), primary_key=True)

    # Contact information
    email = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    display_name = Column(String(255), nullable=True)

    # Grade level (5-10); used to partition content
    grade = Column(Integer, nullable=False)

    # 'user' or 'admin'
    role = Column(String(20), nullable=False, default="user")

    # Lifecycle state: trial, active, expired, cancelled, paused
    subscription_status = Column(String(20), nullable=False, default="trial", index=True)
    # monthly, quarterly, yearly
    subscription_plan = Column(String(20), nullable=True)
    subscription_start_date = Column(UTCDateTime, nullable=True)
    subscription_end_date = Column(UTCDateTime, nullable=True)

    # Trial window
    trial_start_date = Column(UTCDateTime, nullable=True)
    trial_end_date = Column(UTCDateTime, nullable=True)

    # Razorpay subscription id, used to route webhooks back to the user
    razorpay_subscription_id = Column(String(255), nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)

    # Preferences
    notifications = Column(Boolean, nullable=False, default=True)
    email_updates = Column(Boolean, nullable=False, default=True)
    language = Column(String(10), nullable=False, default="en")

    # Timestamps
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_users_razorpay_subscription_id", "razorpay_subscription_id"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', status='{self.subscription_status}')>"
