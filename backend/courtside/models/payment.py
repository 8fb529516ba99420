"""
Payment obligation: at most one per participant.

`paid` is terminal. A late gateway success on an expired or canceled
obligation leaves the status alone and raises `refund_required`.
"""

import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import relationship

from courtside.db.base import Base, TimestampMixin


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    CANCELED = "canceled"
    EXPIRED = "expired"


class Payment(Base, TimestampMixin):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    participant_id = Column(
        Integer, ForeignKey("event_participants.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="RUB")
    status = Column(
        Enum(
            PaymentStatus,
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
            create_constraint=True,
            length=20,
            name="payment_status",
        ),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    payment_deadline = Column(DateTime(timezone=True), nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    external_payment_id = Column(String(64), nullable=True, unique=True)
    payment_url = Column(String(1024), nullable=True)
    payment_provider = Column(String(20), nullable=True)
    refund_required = Column(Boolean, nullable=False, default=False)

    participant = relationship("Participant", back_populates="payment", lazy="raise")

    __table_args__ = (
        CheckConstraint("amount > 0", name="check_payment_amount_positive"),
        # Sweeper scan: pending rows ordered by deadline
        Index("ix_payments_status_deadline", "status", "payment_deadline"),
    )

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, participant={self.participant_id}, status={self.status})>"
