"""
Registration and cancellation orchestrators.

Every operation here is one database transaction that starts with
capacity_service.lock_event, so register, cancel, promotion and expiry on
the same event never interleave. Seat changes go through claim_seat and
release_seat; queue changes through waitlist_service. Either the whole
transaction commits or nothing does.

Registration flow:
    lock event -> validate -> claim seat? -> confirmed | waiting(next pos)
    -> restore or insert participant -> open obligation if confirmed and priced

Cancellation flow:
    lock event -> conditional cancel -> close queue gap (waiting)
    -> cancel obligation (paid: flag refund) -> release seat + promote (confirmed)
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.core.clock import utcnow
from courtside.core.exceptions import AlreadyRegisteredError, ConflictError, CourtsideError, NotFoundError
from courtside.core.logging import get_logger
from courtside.core.metrics import (
    record_cancellation,
    record_promotions,
    record_registration,
    registration_latency,
)
from courtside.models.event import Event, EventStatus
from courtside.models.participant import Participant, ParticipantStatus
from courtside.models.payment import Payment
from courtside.models.user import User
from courtside.services.capacity_service import claim_seat, lock_event, release_seat
from courtside.services.payment_service import cancel_obligation, open_obligation
from courtside.services.waitlist_service import (
    get_participant,
    leave_queue,
    next_in_line,
    next_queue_position,
)

logger = get_logger(__name__)


@dataclass
class RegistrationResult:
    participant_id: int
    event_id: int
    user_id: int
    status: ParticipantStatus
    queue_position: Optional[int]
    payment: Optional[Payment] = None


@dataclass
class CancellationResult:
    canceled: bool
    refund_required: bool = False
    previous_status: Optional[ParticipantStatus] = None
    promoted: list[Participant] = field(default_factory=list)


def ensure_open(event: Event) -> None:
    if event.status != EventStatus.SCHEDULED:
        raise ConflictError(
            code="EVENT_NOT_OPEN",
            message=f"Event is {event.status.value}",
            details={"event_id": event.id, "status": event.status.value},
        )


async def promote_waitlist(db: AsyncSession, event: Event, now: datetime) -> list[Participant]:
    """
    Move waiting players into freed seats, lowest queue position first.

    Runs inside the caller's locked transaction. Stops when the queue is
    empty or claim_seat reports the event full.
    """
    promoted: list[Participant] = []
    while True:
        candidate = await next_in_line(db, event.id)
        if candidate is None:
            break
        if not await claim_seat(db, event.id):
            break

        position = candidate.queue_position
        candidate.status = ParticipantStatus.CONFIRMED
        candidate.queue_position = None
        await db.flush()
        await leave_queue(db, event.id, position)

        if event.is_priced:
            await open_obligation(db, candidate, event.price, now)

        promoted.append(candidate)
        logger.info(
            "waitlist_promoted",
            event_id=event.id,
            participant_id=candidate.id,
            user_id=candidate.user_id,
            from_position=position,
        )

    record_promotions(len(promoted))
    return promoted


async def register(
    db: AsyncSession,
    event_id: int,
    user_id: int,
    now: Optional[datetime] = None,
) -> RegistrationResult:
    """
    Register a user for an event: a confirmed seat when one is free,
    otherwise the next place in the waitlist.

    Raises:
        NotFoundError: event or user does not exist
        ConflictError: event is not open (EVENT_NOT_OPEN)
        AlreadyRegisteredError: the user already holds a confirmed or waiting row
    """
    now = now or utcnow()
    started = time.perf_counter()

    try:
        event = await lock_event(db, event_id)
        ensure_open(event)

        user_exists = (await db.execute(select(User.id).where(User.id == user_id))).scalar_one_or_none()
        if user_exists is None:
            raise NotFoundError("user", user_id)

        participant = await get_participant(db, event_id, user_id)
        if participant is not None and participant.is_active:
            raise AlreadyRegisteredError(event_id, user_id)

        if await claim_seat(db, event_id):
            status, position = ParticipantStatus.CONFIRMED, None
        else:
            status, position = ParticipantStatus.WAITING, await next_queue_position(db, event_id)

        if participant is not None:
            # Re-registration reuses the row so payment history stays attached
            participant.status = status
            participant.queue_position = position
            participant.canceled_at = None
            participant.registered_at = now
        else:
            participant = Participant(
                event_id=event_id,
                user_id=user_id,
                status=status,
                queue_position=position,
                registered_at=now,
            )
            db.add(participant)
        await db.flush()

        payment = None
        if status == ParticipantStatus.CONFIRMED and event.is_priced:
            payment = await open_obligation(db, participant, event.price, now)

        await db.commit()
    except CourtsideError as e:
        await db.rollback()
        record_registration("not_found" if e.status_code == 404 else "conflict")
        logger.info("registration_rejected", event_id=event_id, user_id=user_id, code=e.code)
        raise
    except Exception:
        await db.rollback()
        record_registration("error")
        raise

    registration_latency.observe(time.perf_counter() - started)
    record_registration(status.value)
    if status == ParticipantStatus.CONFIRMED:
        logger.info(
            "registration_confirmed",
            event_id=event_id,
            user_id=user_id,
            participant_id=participant.id,
            payment_id=payment.id if payment else None,
        )
    else:
        logger.info(
            "participant_waitlisted",
            event_id=event_id,
            user_id=user_id,
            participant_id=participant.id,
            queue_position=position,
        )

    return RegistrationResult(
        participant_id=participant.id,
        event_id=event_id,
        user_id=user_id,
        status=status,
        queue_position=position,
        payment=payment,
    )


async def cancel(
    db: AsyncSession,
    event_id: int,
    user_id: int,
    now: Optional[datetime] = None,
) -> CancellationResult:
    """
    Cancel a user's registration. Without an active registration this is a
    no-op reporting canceled=False.
    """
    now = now or utcnow()

    try:
        event = await lock_event(db, event_id)
        participant = await get_participant(db, event_id, user_id)
        if participant is None or not participant.is_active:
            await db.rollback()
            return CancellationResult(canceled=False)

        previous_status = participant.status
        position = participant.queue_position

        result = await db.execute(
            update(Participant)
            .where(Participant.id == participant.id, Participant.status == previous_status)
            .values(status=ParticipantStatus.CANCELED, queue_position=None, canceled_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await db.rollback()
            return CancellationResult(canceled=False)

        if previous_status == ParticipantStatus.WAITING:
            await leave_queue(db, event_id, position)

        refund_required = await cancel_obligation(db, participant.id)

        promoted: list[Participant] = []
        if previous_status == ParticipantStatus.CONFIRMED:
            await release_seat(db, event_id)
            promoted = await promote_waitlist(db, event, now)

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    record_cancellation(previous_status.value)
    logger.info(
        "registration_canceled",
        event_id=event_id,
        user_id=user_id,
        participant_id=participant.id,
        previous_status=previous_status.value,
        refund_required=refund_required,
        promoted=[p.id for p in promoted],
    )
    return CancellationResult(
        canceled=True,
        refund_required=refund_required,
        previous_status=previous_status,
        promoted=promoted,
    )


async def get_user_registrations(db: AsyncSession, user_id: int) -> list[Participant]:
    """Active registrations of a user, soonest event first."""
    result = await db.execute(
        select(Participant)
        .join(Event, Event.id == Participant.event_id)
        .where(
            Participant.user_id == user_id,
            Participant.status != ParticipantStatus.CANCELED,
        )
        .order_by(Event.event_date.asc())
    )
    return list(result.scalars().all())
