"""
Tests for cancellation, queue compaction and waitlist promotion.
"""

from datetime import datetime, timezone, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import update

from conftest import fetch_event, fetch_participants, fetch_payment
from courtside.core.clock import as_utc
from courtside.models import ParticipantStatus, Payment, PaymentStatus
from courtside.services import payment_service
from courtside.services.payment_service import get_payment_for_participant, mark_paid
from courtside.services.registration_service import cancel, register

NOW = datetime(2026, 10, 19, 18, 0, tzinfo=timezone.utc)


def _by_user(rows):
    return {row.user_id: row for row in rows}


@pytest.mark.asyncio
async def test_confirmed_cancel_promotes_head_of_queue(db_session, session_factory, make_event, make_user):
    event = await make_event(max_seats=1)
    a, b, c = await make_user(), await make_user(), await make_user()
    await register(db_session, event.id, a.id, now=NOW)
    await register(db_session, event.id, b.id, now=NOW)
    await register(db_session, event.id, c.id, now=NOW)

    result = await cancel(db_session, event.id, a.id, now=NOW + timedelta(minutes=1))

    assert result.canceled is True
    assert result.previous_status == ParticipantStatus.CONFIRMED
    assert [p.user_id for p in result.promoted] == [b.id]

    rows = _by_user(await fetch_participants(session_factory, event.id))
    assert rows[a.id].status == ParticipantStatus.CANCELED
    assert rows[b.id].status == ParticipantStatus.CONFIRMED
    assert rows[b.id].queue_position is None
    assert rows[c.id].status == ParticipantStatus.WAITING
    assert rows[c.id].queue_position == 1
    assert (await fetch_event(session_factory, event.id)).current_seats == 1


@pytest.mark.asyncio
async def test_waiting_cancel_closes_gap(db_session, session_factory, make_event, make_user):
    event = await make_event(max_seats=1)
    users = [await make_user() for _ in range(5)]
    for u in users:
        await register(db_session, event.id, u.id, now=NOW)

    # users[2] holds position 2 of 4
    result = await cancel(db_session, event.id, users[2].id, now=NOW)

    assert result.canceled is True
    assert result.promoted == []
    rows = _by_user(await fetch_participants(session_factory, event.id))
    assert rows[users[1].id].queue_position == 1
    assert rows[users[3].id].queue_position == 2
    assert rows[users[4].id].queue_position == 3
    assert rows[users[2].id].queue_position is None
    assert (await fetch_event(session_factory, event.id)).current_seats == 1


@pytest.mark.asyncio
async def test_new_waiter_after_gap_takes_next_position(db_session, session_factory, make_event, make_user):
    event = await make_event(max_seats=1)
    users = [await make_user() for _ in range(4)]
    for u in users[:3]:
        await register(db_session, event.id, u.id, now=NOW)
    await cancel(db_session, event.id, users[1].id, now=NOW)

    result = await register(db_session, event.id, users[3].id, now=NOW)

    assert result.queue_position == 2
    waiting = [r for r in await fetch_participants(session_factory, event.id) if r.status == ParticipantStatus.WAITING]
    assert sorted(r.queue_position for r in waiting) == [1, 2]


@pytest.mark.asyncio
async def test_promotion_opens_obligation_with_fresh_deadline(db_session, session_factory, make_event, make_user):
    event = await make_event(max_seats=1, price=Decimal("1200.00"))
    a, b = await make_user(), await make_user()
    await register(db_session, event.id, a.id, now=NOW)
    waiting = await register(db_session, event.id, b.id, now=NOW)

    later = NOW + timedelta(minutes=10)
    result = await cancel(db_session, event.id, a.id, now=later)

    assert [p.id for p in result.promoted] == [waiting.participant_id]
    async with session_factory() as session:
        payment = await get_payment_for_participant(session, waiting.participant_id)
    assert payment.status == PaymentStatus.PENDING
    assert payment.amount == Decimal("1200.00")
    assert as_utc(payment.payment_deadline) == later + timedelta(minutes=15)


@pytest.mark.asyncio
async def test_cancel_pending_obligation(db_session, session_factory, make_event, player):
    event = await make_event(max_seats=2, price=Decimal("800.00"))
    registration = await register(db_session, event.id, player.id, now=NOW)

    result = await cancel(db_session, event.id, player.id, now=NOW)

    assert result.refund_required is False
    payment = await fetch_payment(session_factory, registration.payment.id)
    assert payment.status == PaymentStatus.CANCELED
    assert (await fetch_event(session_factory, event.id)).current_seats == 0


@pytest.mark.asyncio
async def test_cancel_after_payment_flags_refund(db_session, session_factory, make_event, make_user):
    """A paid obligation stays paid; the seat is freed and flagged for refund."""
    event = await make_event(max_seats=1, price=Decimal("1500.00"))
    payer, waiter = await make_user(), await make_user()
    registration = await register(db_session, event.id, payer.id, now=NOW)
    await register(db_session, event.id, waiter.id, now=NOW)
    await mark_paid(db_session, registration.payment.id, now=NOW + timedelta(minutes=2))

    result = await cancel(db_session, event.id, payer.id, now=NOW + timedelta(hours=1))

    assert result.refund_required is True
    assert [p.user_id for p in result.promoted] == [waiter.id]
    payment = await fetch_payment(session_factory, registration.payment.id)
    assert payment.status == PaymentStatus.PAID
    assert payment.refund_required is True
    assert (await fetch_event(session_factory, event.id)).current_seats == 1


@pytest.mark.asyncio
async def test_cancel_twice_is_noop(db_session, session_factory, make_event, player):
    event = await make_event(max_seats=2)
    await register(db_session, event.id, player.id, now=NOW)

    first = await cancel(db_session, event.id, player.id, now=NOW)
    second = await cancel(db_session, event.id, player.id, now=NOW)

    assert first.canceled is True
    assert second.canceled is False
    assert (await fetch_event(session_factory, event.id)).current_seats == 0


@pytest.mark.asyncio
async def test_payment_settled_during_cancel_is_flagged(
    db_session, session_factory, make_event, player, monkeypatch
):
    """The gateway settles between the obligation read and the cancel update."""
    event = await make_event(max_seats=2, price=Decimal("1500.00"))
    registration = await register(db_session, event.id, player.id, now=NOW)
    read_obligation = payment_service.get_payment_for_participant

    async def settle_after_read(db, participant_id):
        payment = await read_obligation(db, participant_id)
        await db.execute(
            update(Payment)
            .where(Payment.id == payment.id, Payment.status == PaymentStatus.PENDING)
            .values(status=PaymentStatus.PAID, paid_at=NOW)
            .execution_options(synchronize_session=False)
        )
        return payment

    monkeypatch.setattr(payment_service, "get_payment_for_participant", settle_after_read)

    result = await cancel(db_session, event.id, player.id, now=NOW + timedelta(minutes=1))

    assert result.canceled is True
    assert result.refund_required is True
    payment = await fetch_payment(session_factory, registration.payment.id)
    assert payment.status == PaymentStatus.PAID
    assert payment.refund_required is True


@pytest.mark.asyncio
async def test_reregister_after_paid_cancel_reinstates_payment(db_session, session_factory, make_event, player):
    event = await make_event(max_seats=2, price=Decimal("1500.00"))
    first = await register(db_session, event.id, player.id, now=NOW)
    await mark_paid(db_session, first.payment.id, now=NOW + timedelta(minutes=1))
    await cancel(db_session, event.id, player.id, now=NOW + timedelta(minutes=5))

    again = await register(db_session, event.id, player.id, now=NOW + timedelta(minutes=10))

    assert again.status == ParticipantStatus.CONFIRMED
    assert again.participant_id == first.participant_id
    assert again.payment.id == first.payment.id
    payment = await fetch_payment(session_factory, first.payment.id)
    assert payment.status == PaymentStatus.PAID
    assert payment.refund_required is False
    assert as_utc(payment.paid_at) == NOW + timedelta(minutes=1)


@pytest.mark.asyncio
async def test_paid_waiter_promoted_is_reinstated(db_session, session_factory, make_event, make_user):
    event = await make_event(max_seats=1, price=Decimal("1500.00"))
    payer, other = await make_user(), await make_user()
    first = await register(db_session, event.id, payer.id, now=NOW)
    await mark_paid(db_session, first.payment.id, now=NOW + timedelta(minutes=1))
    await cancel(db_session, event.id, payer.id, now=NOW + timedelta(minutes=2))
    await register(db_session, event.id, other.id, now=NOW + timedelta(minutes=3))

    waiting = await register(db_session, event.id, payer.id, now=NOW + timedelta(minutes=4))
    assert waiting.status == ParticipantStatus.WAITING
    assert waiting.payment is None

    result = await cancel(db_session, event.id, other.id, now=NOW + timedelta(minutes=5))

    assert [p.user_id for p in result.promoted] == [payer.id]
    async with session_factory() as session:
        payment = await get_payment_for_participant(session, first.participant_id)
    assert payment.id == first.payment.id
    assert payment.status == PaymentStatus.PAID
    assert payment.refund_required is False
