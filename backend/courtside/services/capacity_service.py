"""
Event capacity record: the only code that changes `current_seats`.

CONCURRENCY STRATEGY: per-event lock + conditional updates
===========================================================

Problem:
  Two players register for the last seat while a third cancels and the
  sweeper expires a fourth. Any read-then-write on current_seats or on the
  queue positions can interleave and overbook or skip a waiting player.

Solution:
  1. Every allocation transaction (register, cancel, expire, capacity edit)
     starts with
         UPDATE events SET version = version + 1 WHERE id = :event_id
     On PostgreSQL that takes the row lock, on SQLite the database write
     lock. Concurrent transactions on the same event queue up behind it
     until commit; other events are unaffected.
  2. Seat changes are still conditional updates:
         UPDATE events SET current_seats = current_seats + 1
         WHERE id = :event_id AND current_seats < max_seats
     rowcount == 1 is the authoritative answer to "did I get a seat".
     A pre-read value of current_seats is never trusted.
  3. CHECK constraints (0 <= current_seats <= max_seats) are the final
     safety net.

The lock statement is a write, not SELECT ... FOR UPDATE, so SQLite never
has to upgrade a shared lock mid-transaction (which deadlocks under load).
"""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.core.exceptions import NotFoundError
from courtside.core.logging import get_logger
from courtside.models.event import Event

logger = get_logger(__name__)


async def lock_event(db: AsyncSession, event_id: int) -> Event:
    """Serialize allocation work on one event and return its fresh row."""
    result = await db.execute(
        update(Event)
        .where(Event.id == event_id)
        .values(version=Event.version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFoundError("event", event_id)

    event = (
        await db.execute(
            select(Event).where(Event.id == event_id).execution_options(populate_existing=True)
        )
    ).scalar_one()
    return event


async def claim_seat(db: AsyncSession, event_id: int) -> bool:
    result = await db.execute(
        update(Event)
        .where(Event.id == event_id, Event.current_seats < Event.max_seats)
        .values(current_seats=Event.current_seats + 1)
        .execution_options(synchronize_session=False)
    )
    claimed = result.rowcount == 1
    if not claimed:
        logger.debug("seat_claim_rejected", event_id=event_id, reason="full")
    return claimed


async def release_seat(db: AsyncSession, event_id: int) -> bool:
    result = await db.execute(
        update(Event)
        .where(Event.id == event_id, Event.current_seats > 0)
        .values(current_seats=Event.current_seats - 1)
        .execution_options(synchronize_session=False)
    )
    released = result.rowcount == 1
    if not released:
        # Floor at zero; a release without a matching claim is a bookkeeping bug
        logger.warning("seat_release_at_floor", event_id=event_id)
    return released


async def refresh_event(db: AsyncSession, event_id: int) -> Event:
    """Reload the row after bulk updates so callers see current counters."""
    return (
        await db.execute(
            select(Event).where(Event.id == event_id).execution_options(populate_existing=True)
        )
    ).scalar_one()
