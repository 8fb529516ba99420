"""
Waitlist bookkeeping on the participant ledger.

Positions are 1..N with no gaps. A player keeps the position assigned on
joining and only moves down when someone ahead leaves the queue (promotion
or cancellation). All functions run inside a transaction that already holds
the event lock (see capacity_service.lock_event).
"""

from typing import Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.models.participant import Participant, ParticipantStatus


async def next_queue_position(db: AsyncSession, event_id: int) -> int:
    current_max = (
        await db.execute(
            select(func.max(Participant.queue_position)).where(
                Participant.event_id == event_id,
                Participant.status == ParticipantStatus.WAITING,
            )
        )
    ).scalar()
    return (current_max or 0) + 1


async def leave_queue(db: AsyncSession, event_id: int, position: int) -> None:
    """
    Shift every waiting position behind `position` down by one.

    Done in two passes through negative values: a single
    `SET queue_position = queue_position - 1` can collide with the partial
    unique index mid-statement (PostgreSQL checks unique indexes per row).
    """
    await db.execute(
        update(Participant)
        .where(
            Participant.event_id == event_id,
            Participant.status == ParticipantStatus.WAITING,
            Participant.queue_position > position,
        )
        .values(queue_position=-(Participant.queue_position - 1))
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        update(Participant)
        .where(
            Participant.event_id == event_id,
            Participant.status == ParticipantStatus.WAITING,
            Participant.queue_position < 0,
        )
        .values(queue_position=-Participant.queue_position)
        .execution_options(synchronize_session=False)
    )


async def next_in_line(db: AsyncSession, event_id: int) -> Optional[Participant]:
    return (
        await db.execute(
            select(Participant)
            .where(
                Participant.event_id == event_id,
                Participant.status == ParticipantStatus.WAITING,
            )
            .order_by(Participant.queue_position.asc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()


async def get_participant(db: AsyncSession, event_id: int, user_id: int) -> Optional[Participant]:
    return (
        await db.execute(
            select(Participant)
            .where(Participant.event_id == event_id, Participant.user_id == user_id)
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()


async def list_participants(
    db: AsyncSession,
    event_id: int,
    include_canceled: bool = False,
) -> list[Participant]:
    """Confirmed players by registration time, then the queue in order."""
    query = select(Participant).where(Participant.event_id == event_id)
    if not include_canceled:
        query = query.where(Participant.status != ParticipantStatus.CANCELED)

    status_rank = case(
        (Participant.status == ParticipantStatus.CONFIRMED, 0),
        (Participant.status == ParticipantStatus.WAITING, 1),
        else_=2,
    )
    query = query.order_by(
        status_rank,
        Participant.queue_position.asc(),
        Participant.registered_at.asc(),
        Participant.id.asc(),
    )
    result = await db.execute(query)
    return list(result.scalars().all())
