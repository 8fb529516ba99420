"""
Event service: CRUD plus the staff capacity operations.

Capacity edits and event cancellation change seat and queue state, so they
run under the same per-event lock as registration.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.core.clock import as_utc, utcnow
from courtside.core.exceptions import ConflictError, CourtsideError, NotFoundError
from courtside.core.logging import get_logger
from courtside.models.event import Event, EventStatus
from courtside.models.participant import Participant, ParticipantStatus
from courtside.models.payment import Payment, PaymentStatus
from courtside.schemas.event import EventCreate, EventUpdate
from courtside.services.capacity_service import lock_event, refresh_event
from courtside.services.registration_service import ensure_open, promote_waitlist

logger = get_logger(__name__)


@dataclass
class EventUpdateResult:
    event: Event
    promoted: list[Participant] = field(default_factory=list)


@dataclass
class EventCancelResult:
    event: Event
    participants_canceled: int = 0
    refunds_required: int = 0


async def create_event(db: AsyncSession, event_data: EventCreate, created_by: Optional[int]) -> Event:
    """Create a new event with no seats taken."""
    if as_utc(event_data.event_date) <= utcnow():
        raise CourtsideError(
            code="EVENT_DATE_IN_PAST",
            message="Event date must be in the future",
        )

    event = Event(
        title=event_data.title,
        event_type=event_data.event_type,
        event_date=event_data.event_date,
        duration_minutes=event_data.duration_minutes,
        location=event_data.location,
        level=event_data.level,
        description=event_data.description,
        max_seats=event_data.max_seats,
        current_seats=0,
        price=event_data.price,
        status=EventStatus.SCHEDULED,
        created_by=created_by,
    )
    db.add(event)
    await db.flush()
    await db.refresh(event)
    await db.commit()

    logger.info("event_created", event_id=event.id, title=event.title, seats=event.max_seats, price=str(event.price))
    return event


async def get_event(db: AsyncSession, event_id: int) -> Event:
    """Get a single event by ID."""
    result = await db.execute(
        select(Event).where(Event.id == event_id).execution_options(populate_existing=True)
    )
    event = result.scalar_one_or_none()

    if not event:
        raise NotFoundError("event", event_id)
    return event


async def list_events(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    upcoming_only: bool = True,
    now: Optional[datetime] = None,
) -> tuple[list[Event], int]:
    """
    List scheduled events with pagination.
    Uses the ix_events_status_date index. An event stays "upcoming" until
    it has finished, so a session already on court is still listed.
    """
    query = select(Event).where(Event.status == EventStatus.SCHEDULED)

    if upcoming_only:
        # Events up to a day long; close enough for listing purposes
        cutoff = (now or utcnow()) - timedelta(days=1)
        query = query.where(Event.event_date >= cutoff)

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    events_query = (
        query
        .order_by(Event.event_date.asc(), Event.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(events_query)
    events = list(result.scalars().all())

    return events, total


async def update_event(
    db: AsyncSession,
    event_id: int,
    changes: EventUpdate,
    now: Optional[datetime] = None,
) -> EventUpdateResult:
    """
    Apply a staff edit. Lowering max_seats below the confirmed count is
    rejected; raising it promotes waiting players into the new seats.
    """
    now = now or utcnow()
    try:
        event = await lock_event(db, event_id)
        ensure_open(event)

        fields = changes.model_dump(exclude_unset=True)
        new_max = fields.pop("max_seats", None)
        if new_max is not None and new_max < event.current_seats:
            raise ConflictError(
                code="CAPACITY_BELOW_CONFIRMED",
                message=f"{event.current_seats} players are already confirmed",
                details={"event_id": event.id, "current_seats": event.current_seats, "max_seats": new_max},
            )

        grew = new_max is not None and new_max > event.max_seats
        if new_max is not None:
            event.max_seats = new_max
        for name, value in fields.items():
            if value is not None:
                setattr(event, name, value)
        await db.flush()

        promoted: list[Participant] = []
        if grew:
            promoted = await promote_waitlist(db, event, now)

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    event = await refresh_event(db, event_id)
    logger.info(
        "event_updated",
        event_id=event_id,
        fields=sorted(changes.model_dump(exclude_unset=True)),
        promoted=[p.id for p in promoted],
    )
    return EventUpdateResult(event=event, promoted=promoted)


async def cancel_event(db: AsyncSession, event_id: int, now: Optional[datetime] = None) -> EventCancelResult:
    """
    Call off an event: every active registration is canceled, open
    obligations are closed and paid ones flagged for refund.

    This is the one place current_seats is written directly instead of
    through claim_seat/release_seat: it is reset to 0 under the event lock
    because no confirmed participant remains.
    """
    now = now or utcnow()
    try:
        event = await lock_event(db, event_id)
        if event.status == EventStatus.CANCELED:
            await db.rollback()
            return EventCancelResult(event=event)
        ensure_open(event)

        refunds = await db.execute(
            update(Payment)
            .where(
                Payment.event_id == event_id,
                Payment.status == PaymentStatus.PAID,
                Payment.refund_required.is_(False),
            )
            .values(refund_required=True)
            .execution_options(synchronize_session=False)
        )
        await db.execute(
            update(Payment)
            .where(Payment.event_id == event_id, Payment.status == PaymentStatus.PENDING)
            .values(status=PaymentStatus.CANCELED)
            .execution_options(synchronize_session=False)
        )
        canceled = await db.execute(
            update(Participant)
            .where(Participant.event_id == event_id, Participant.status != ParticipantStatus.CANCELED)
            .values(status=ParticipantStatus.CANCELED, queue_position=None, canceled_at=now)
            .execution_options(synchronize_session=False)
        )
        # Nobody is confirmed any more
        await db.execute(
            update(Event)
            .where(Event.id == event_id)
            .values(status=EventStatus.CANCELED, current_seats=0)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    result = EventCancelResult(
        event=await refresh_event(db, event_id),
        participants_canceled=canceled.rowcount,
        refunds_required=refunds.rowcount,
    )
    logger.info(
        "event_canceled",
        event_id=event_id,
        participants_canceled=result.participants_canceled,
        refunds_required=result.refunds_required,
    )
    return result
