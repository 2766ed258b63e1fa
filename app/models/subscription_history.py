from sqlalchemy import Column, String, ForeignKey

from app.core.database import Base, UTCDateTime, new_id, utcnow


class SubscriptionHistory(Base):
    """
    Append-only audit trail of subscription lifecycle transitions.

    One row per transition (registration -> trial, trial -> active, ...).
    Rows are never updated or deleted.
    """
    __tablename__ = "subscription_history"

    id = Column(String(32), primary_key=True, default=new_id)

    user_id = Column(
        String(64),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    # Plan the window belongs to; empty for trial windows
    plan_id = Column(String(20), nullable=True)

    # Status entered by this transition
    status = Column(String(20), nullable=False)

    start_date = Column(UTCDateTime, nullable=True)
    end_date = Column(UTCDateTime, nullable=True)

    payment_id = Column(String(32), nullable=True)
    razorpay_subscription_id = Column(String(255), nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f"<SubscriptionHistory(id={self.id}, user_id={self.user_id}, status='{self.status}')>"
