"""
Payment deadline enforcement.

Two callers share expire_payment:
  - the sweeper (background loop or the `courtside-sweep` command), which is
    authoritative and runs whether or not any client is online
  - the client countdown (POST /payments/{id}/expire), a fallback that only
    makes the release visible sooner

Each payment is expired in its own transaction under the event lock, and
the pending -> expired step is a conditional update guarded by the
deadline. Whichever caller gets there first wins; every later attempt
(second sweeper, client, late cancel) affects zero rows and does nothing,
so current_seats is decremented exactly once.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from courtside.core.clock import utcnow
from courtside.core.config import get_settings
from courtside.core.logging import get_logger
from courtside.core.metrics import record_expiry, sweep_duration
from courtside.models.participant import Participant, ParticipantStatus
from courtside.models.payment import Payment, PaymentStatus
from courtside.services import notification_service
from courtside.services.capacity_service import lock_event, release_seat
from courtside.services.interfaces.notifier import Notifier
from courtside.services.registration_service import promote_waitlist

logger = get_logger(__name__)
settings = get_settings()


@dataclass
class ExpiryResult:
    payment_id: int
    participant_id: int
    event_id: int
    user_id: int
    seat_released: bool = False
    promoted: list[Participant] = field(default_factory=list)


async def expire_payment(
    db: AsyncSession,
    payment_id: int,
    now: Optional[datetime] = None,
    source: str = "sweeper",
) -> Optional[ExpiryResult]:
    """
    Expire one overdue obligation and release its seat.

    Returns None when the payment is unknown, not pending or not yet due.
    """
    now = now or utcnow()

    try:
        event_id = (
            await db.execute(select(Payment.event_id).where(Payment.id == payment_id))
        ).scalar_one_or_none()
        if event_id is None:
            return None

        event = await lock_event(db, event_id)

        result = await db.execute(
            update(Payment)
            .where(
                Payment.id == payment_id,
                Payment.status == PaymentStatus.PENDING,
                Payment.payment_deadline < now,
            )
            .values(status=PaymentStatus.EXPIRED)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await db.rollback()
            logger.debug("payment_not_expirable", payment_id=payment_id, source=source)
            return None

        payment = (
            await db.execute(
                select(Payment).where(Payment.id == payment_id).execution_options(populate_existing=True)
            )
        ).scalar_one()
        expiry = ExpiryResult(
            payment_id=payment.id,
            participant_id=payment.participant_id,
            event_id=payment.event_id,
            user_id=payment.user_id,
        )

        canceled = await db.execute(
            update(Participant)
            .where(
                Participant.id == payment.participant_id,
                Participant.status == ParticipantStatus.CONFIRMED,
            )
            .values(status=ParticipantStatus.CANCELED, queue_position=None, canceled_at=now)
            .execution_options(synchronize_session=False)
        )
        if canceled.rowcount == 1:
            expiry.seat_released = await release_seat(db, event_id)
            expiry.promoted = await promote_waitlist(db, event, now)

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    record_expiry(source)
    logger.info(
        "payment_expired",
        payment_id=payment_id,
        event_id=event_id,
        participant_id=expiry.participant_id,
        seat_released=expiry.seat_released,
        promoted=[p.id for p in expiry.promoted],
        source=source,
    )
    return expiry


async def due_payment_ids(db: AsyncSession, now: datetime, batch_size: int) -> list[int]:
    result = await db.execute(
        select(Payment.id)
        .where(Payment.status == PaymentStatus.PENDING, Payment.payment_deadline < now)
        .order_by(Payment.payment_deadline.asc())
        .limit(batch_size)
    )
    return list(result.scalars().all())


async def sweep_expired_payments(
    session_factory: async_sessionmaker,
    now: Optional[datetime] = None,
    batch_size: Optional[int] = None,
    notifier: Optional[Notifier] = None,
) -> int:
    """
    One sweep pass. Every due payment is expired in its own session and
    transaction; a failure on one row is logged and the pass moves on.
    Returns the number of payments this pass expired.
    """
    now = now or utcnow()
    batch_size = batch_size or settings.SWEEP_BATCH_SIZE

    async with session_factory() as db:
        payment_ids = await due_payment_ids(db, now, batch_size)

    expired = 0
    for payment_id in payment_ids:
        async with session_factory() as db:
            try:
                result = await expire_payment(db, payment_id, now, source="sweeper")
            except Exception:
                logger.exception("payment_expiry_failed", payment_id=payment_id)
                continue
            if result is None:
                continue
            expired += 1
            if notifier is not None:
                await notification_service.notify_expiry(db, notifier, result)

    if payment_ids:
        logger.info("sweep_completed", due=len(payment_ids), expired=expired)
    return expired


async def run_sweeper(
    session_factory: async_sessionmaker,
    interval: Optional[int] = None,
    notifier_factory: Optional[Callable[[], Notifier]] = None,
) -> None:
    """Background loop started from the application lifespan."""
    interval = interval or settings.SWEEP_INTERVAL_SECONDS
    logger.info("sweeper_started", interval_seconds=interval)

    while True:
        structlog.contextvars.bind_contextvars(sweep_id=str(uuid.uuid4())[:8])
        try:
            with sweep_duration.time():
                await sweep_expired_payments(
                    session_factory,
                    notifier=notifier_factory() if notifier_factory else None,
                )
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("sweep_failed")
        finally:
            structlog.contextvars.unbind_contextvars("sweep_id")
        await asyncio.sleep(interval)
