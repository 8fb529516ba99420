"""
Tests for event endpoints, including the staff capacity operations.
"""

import pytest
from datetime import datetime, timezone, timedelta
from decimal import Decimal
from httpx import AsyncClient

from conftest import fetch_event, fetch_participants, fetch_payment
from courtside.models import ParticipantStatus, PaymentStatus
from courtside.services.payment_service import mark_paid
from courtside.services.registration_service import register


def _event_payload(**overrides) -> dict:
    payload = {
        "title": "Friday americano",
        "event_type": "tournament",
        "event_date": (datetime.now(timezone.utc) + timedelta(days=5)).isoformat(),
        "location": "Court 2",
        "level": "C+",
        "max_seats": 8,
        "price": "1500.00",
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_create_event(client: AsyncClient, staff_headers, staff):
    """Staff can create an event; it starts with no seats taken."""
    response = await client.post("/api/v1/events", json=_event_payload(), headers=staff_headers)

    assert response.status_code == 201
    data = response.json()
    assert data["title"] == "Friday americano"
    assert data["max_seats"] == 8
    assert data["current_seats"] == 0
    assert data["status"] == "scheduled"
    assert Decimal(data["price"]) == Decimal("1500.00")
    assert data["created_by"] == staff.id


@pytest.mark.asyncio
async def test_create_event_unauthenticated(client: AsyncClient):
    response = await client.post("/api/v1/events", json=_event_payload())
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_event_requires_staff(client: AsyncClient, player_headers):
    response = await client.post("/api/v1/events", json=_event_payload(), headers=player_headers)
    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "STAFF_ONLY"


@pytest.mark.asyncio
async def test_create_event_past_date(client: AsyncClient, staff_headers):
    past_date = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
    response = await client.post(
        "/api/v1/events",
        json=_event_payload(event_date=past_date),
        headers=staff_headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "EVENT_DATE_IN_PAST"


@pytest.mark.asyncio
async def test_create_event_invalid_capacity(client: AsyncClient, staff_headers):
    response = await client.post("/api/v1/events", json=_event_payload(max_seats=0), headers=staff_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_list_events(client: AsyncClient, make_event):
    await make_event(title="Morning drills")
    await make_event(title="Evening drills")

    response = await client.get("/api/v1/events?page=1&page_size=10")

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert data["cached"] is False  # Redis disabled in tests
    assert {e["title"] for e in data["events"]} == {"Morning drills", "Evening drills"}


@pytest.mark.asyncio
async def test_get_event_not_found(client: AsyncClient, session_factory):
    response = await client.get("/api/v1/events/99999")

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "EVENT_NOT_FOUND"


@pytest.mark.asyncio
async def test_participants_listing_order(client: AsyncClient, db_session, make_event, make_user):
    event = await make_event(max_seats=2)
    users = [await make_user() for _ in range(4)]
    for u in users:
        await register(db_session, event.id, u.id)

    response = await client.get(f"/api/v1/events/{event.id}/participants")

    assert response.status_code == 200
    data = response.json()
    assert [p["status"] for p in data] == ["confirmed", "confirmed", "waiting", "waiting"]
    assert [p["queue_position"] for p in data[2:]] == [1, 2]
    assert [p["user_id"] for p in data[2:]] == [users[2].id, users[3].id]


@pytest.mark.asyncio
async def test_raising_capacity_promotes_waitlist(
    client: AsyncClient, db_session, session_factory, staff_headers, make_event, make_user
):
    event = await make_event(max_seats=1)
    users = [await make_user() for _ in range(4)]
    for u in users:
        await register(db_session, event.id, u.id)

    response = await client.patch(f"/api/v1/events/{event.id}", json={"max_seats": 3}, headers=staff_headers)

    assert response.status_code == 200
    assert response.json()["max_seats"] == 3
    assert response.json()["current_seats"] == 3
    rows = {r.user_id: r for r in await fetch_participants(session_factory, event.id)}
    assert rows[users[1].id].status == ParticipantStatus.CONFIRMED
    assert rows[users[2].id].status == ParticipantStatus.CONFIRMED
    assert rows[users[3].id].queue_position == 1


@pytest.mark.asyncio
async def test_lowering_capacity_below_confirmed_rejected(
    client: AsyncClient, db_session, session_factory, staff_headers, make_event, make_user
):
    event = await make_event(max_seats=3)
    for _ in range(3):
        await register(db_session, event.id, (await make_user()).id)

    response = await client.patch(f"/api/v1/events/{event.id}", json={"max_seats": 2}, headers=staff_headers)

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "CAPACITY_BELOW_CONFIRMED"
    assert (await fetch_event(session_factory, event.id)).max_seats == 3


@pytest.mark.asyncio
async def test_update_event_details(client: AsyncClient, staff_headers, make_event):
    event = await make_event(max_seats=4)

    response = await client.patch(
        f"/api/v1/events/{event.id}",
        json={"title": "Moved to court 3", "location": "Court 3"},
        headers=staff_headers,
    )

    assert response.status_code == 200
    assert response.json()["title"] == "Moved to court 3"
    assert response.json()["max_seats"] == 4


@pytest.mark.asyncio
async def test_cancel_event(client: AsyncClient, db_session, session_factory, staff_headers, make_event, make_user):
    event = await make_event(max_seats=2, price=Decimal("1000.00"))
    payer, unpaid, waiter = await make_user(), await make_user(), await make_user()
    paid_reg = await register(db_session, event.id, payer.id)
    unpaid_reg = await register(db_session, event.id, unpaid.id)
    await register(db_session, event.id, waiter.id)
    await mark_paid(db_session, paid_reg.payment.id)

    response = await client.post(f"/api/v1/events/{event.id}/cancel", headers=staff_headers)

    assert response.status_code == 200
    assert response.json() == {
        "event_id": event.id,
        "status": "canceled",
        "participants_canceled": 3,
        "refunds_required": 1,
    }
    stored = await fetch_event(session_factory, event.id)
    assert stored.current_seats == 0
    assert all(r.status == ParticipantStatus.CANCELED for r in await fetch_participants(session_factory, event.id))
    assert (await fetch_payment(session_factory, paid_reg.payment.id)).refund_required is True
    assert (await fetch_payment(session_factory, unpaid_reg.payment.id)).status == PaymentStatus.CANCELED

    # No new registrations on a canceled event
    late = await client.post(
        "/api/v1/participants",
        json={"event_id": event.id},
        headers=staff_headers,
    )
    assert late.status_code == 409
    assert late.json()["detail"]["code"] == "EVENT_NOT_OPEN"
