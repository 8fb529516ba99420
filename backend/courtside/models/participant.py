"""
Participant ledger: one row per (event, user), reused across
cancel/re-register cycles.

Key design decisions:
- Unique constraint on (event_id, user_id) makes the row reusable and rules
  out duplicate registrations under concurrency
- Partial unique index on (event_id, queue_position) for waiting rows keeps
  queue positions distinct
- queue_position is set exactly when status is waiting
"""

import enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship

from courtside.db.base import Base, TimestampMixin


class ParticipantStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    WAITING = "waiting"
    CANCELED = "canceled"


class Participant(Base, TimestampMixin):
    __tablename__ = "event_participants"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(
        Enum(
            ParticipantStatus,
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
            create_constraint=True,
            length=20,
            name="participant_status",
        ),
        nullable=False,
    )
    queue_position = Column(Integer, nullable=True)
    registered_at = Column(DateTime(timezone=True), nullable=False)
    canceled_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", lazy="raise")
    payment = relationship("Payment", back_populates="participant", uselist=False, lazy="raise")

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_participant"),
        CheckConstraint(
            "(status = 'waiting') = (queue_position IS NOT NULL)",
            name="check_queue_position_iff_waiting",
        ),
        Index(
            "uq_event_queue_position",
            "event_id",
            "queue_position",
            unique=True,
            postgresql_where=text("status = 'waiting'"),
            sqlite_where=text("status = 'waiting'"),
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status != ParticipantStatus.CANCELED

    def __repr__(self) -> str:
        return f"<Participant(id={self.id}, event={self.event_id}, user={self.user_id}, status={self.status})>"
