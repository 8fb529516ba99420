"""
User notifications sent after the triggering transaction commits.

Delivery is best effort: a failed message is logged and never undoes or
fails the booking operation that caused it.
"""

import html
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.core.logging import get_logger
from courtside.models.event import Event
from courtside.models.participant import Participant
from courtside.models.payment import Payment
from courtside.models.user import User
from courtside.services.interfaces.notifier import Notifier

logger = get_logger(__name__)


async def notify_user(db: AsyncSession, notifier: Notifier, user_id: int, text: str) -> bool:
    try:
        telegram_id = (
            await db.execute(select(User.telegram_id).where(User.id == user_id))
        ).scalar_one_or_none()
        if telegram_id is None:
            return False
        await notifier.send(telegram_id, text)
        return True
    except Exception as e:
        logger.warning("notification_failed", user_id=user_id, error=str(e))
        return False


async def _event_title(db: AsyncSession, event_id: int) -> str:
    """Title ready for an HTML-formatted message."""
    title = (await db.execute(select(Event.title).where(Event.id == event_id))).scalar_one_or_none()
    return html.escape(title) if title else f"#{event_id}"


async def notify_payment_received(db: AsyncSession, notifier: Notifier, payment: Payment) -> None:
    title = await _event_title(db, payment.event_id)
    await notify_user(
        db,
        notifier,
        payment.user_id,
        f"✅ Payment received for <b>{title}</b>. See you on court!",
    )


async def notify_promoted(
    db: AsyncSession,
    notifier: Notifier,
    event_id: int,
    participants: Iterable[Participant],
) -> None:
    participants = list(participants)
    if not participants:
        return
    title = await _event_title(db, event_id)
    for participant in participants:
        await notify_user(
            db,
            notifier,
            participant.user_id,
            f"🎾 A seat opened up for <b>{title}</b> and it is yours.",
        )


async def notify_expiry(db: AsyncSession, notifier: Notifier, expiry) -> None:
    title = await _event_title(db, expiry.event_id)
    await notify_user(
        db,
        notifier,
        expiry.user_id,
        f"⌛ The payment window for <b>{title}</b> closed and the seat was released.",
    )
    await notify_promoted(db, notifier, expiry.event_id, expiry.promoted)
