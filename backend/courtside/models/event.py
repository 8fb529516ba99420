"""
Event model carrying the capacity record.

Key design decisions:
- `current_seats` counts confirmed participants and is only ever changed by
  the conditional updates in capacity_service (claim/release)
- `version` is bumped as the first statement of every allocation transaction;
  that write is the per-event lock serializing register/cancel/expire
- CHECK constraints are the final safety net against overbooking
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
    Numeric,
    String,
)

from courtside.db.base import Base, TimestampMixin


class EventType(str, enum.Enum):
    TRAINING = "training"
    TOURNAMENT = "tournament"
    STRETCHING = "stretching"
    OTHER = "other"


class EventStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    CANCELED = "canceled"
    COMPLETED = "completed"


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    event_type = Column(
        Enum(
            EventType,
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
            create_constraint=True,
            length=20,
            name="event_type",
        ),
        nullable=False,
        default=EventType.TRAINING,
    )
    event_date = Column(DateTime(timezone=True), nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=90)
    location = Column(String(255), nullable=True)
    level = Column(String(20), nullable=True)
    description = Column(String(1000), nullable=True)
    max_seats = Column(Integer, nullable=False)
    current_seats = Column(Integer, nullable=False, default=0)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    status = Column(
        Enum(
            EventStatus,
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
            create_constraint=True,
            length=20,
            name="event_status",
        ),
        nullable=False,
        default=EventStatus.SCHEDULED,
    )
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Per-event lock counter
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("max_seats > 0", name="check_max_seats_positive"),
        CheckConstraint("current_seats >= 0", name="check_current_seats_non_negative"),
        CheckConstraint("current_seats <= max_seats", name="check_current_lte_max"),
        Index("ix_events_event_date", "event_date"),
        Index("ix_events_status_date", "status", "event_date"),
    )

    @property
    def is_priced(self) -> bool:
        return self.price is not None and self.price > 0

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title}, seats={self.current_seats}/{self.max_seats})>"
