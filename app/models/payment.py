from sqlalchemy import Column, Integer, String, ForeignKey, Text

from app.core.database import Base, UTCDateTime, new_id, utcnow


class Payment(Base):
    """
    A verified payment.

    Amounts are integer paise. A refunded payment is terminal.
    """
    __tablename__ = "payments"

    id = Column(String(32), primary_key=True, default=new_id)

    user_id = Column(
        String(64),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    # Razorpay identifiers
    razorpay_order_id = Column(String(255), nullable=True, index=True)
    razorpay_payment_id = Column(String(255), nullable=True, index=True)
    razorpay_subscription_id = Column(String(255), nullable=True)
    razorpay_signature = Column(String(255), nullable=True)

    # monthly, quarterly, yearly
    plan_id = Column(String(20), nullable=False)

    # Amount in the smallest currency unit (paise)
    amount = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="INR")

    # pending, completed, failed, refunded, captured
    status = Column(String(20), nullable=False, default="pending", index=True)
    payment_method = Column(String(50), nullable=False, default="razorpay")

    # Refund metadata
    refund_reason = Column(Text, nullable=True)
    refunded_at = Column(UTCDateTime, nullable=True)

    # Timestamps
    created_at = Column(UTCDateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def is_refunded(self) -> bool:
        return self.status == "refunded"

    def __repr__(self):
        return f"<Payment(id={self.id}, user_id={self.user_id}, amount={self.amount}, status='{self.status}')>"
