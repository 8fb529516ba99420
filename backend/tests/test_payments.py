"""
Tests for the payment obligation tracker: reconciliation idempotence,
webhooks, the YooKassa client, checkout failures and the countdown.
"""

import json
from datetime import timedelta
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import update

from conftest import auth_headers_for, fetch_event, fetch_payment
from courtside.core.clock import as_utc, utcnow
from courtside.core.exceptions import ExternalServiceError
from courtside.main import app
from courtside.models import Payment, PaymentStatus
from courtside.services.interfaces.notifier import Notifier
from courtside.services.payment_service import apply_external_status, countdown, get_payment, mark_paid
from courtside.services.registration_service import register
from courtside.services.strategy_factory import get_notifier, get_payment_gateway
from courtside.services.yookassa_gateway import YooKassaGateway


class RecordingNotifier(Notifier):
    def __init__(self):
        self.messages = []

    async def send(self, telegram_id: int, text: str) -> None:
        self.messages.append((telegram_id, text))


class FakeYooKassa:
    """MockTransport handler emulating the two YooKassa endpoints we use."""

    def __init__(self, create_status: int = 200, payment_status: str = "pending", confirmation: bool = True):
        self.create_status = create_status
        self.confirmation = confirmation
        self.payment_status = payment_status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "POST" and request.url.path.endswith("/payments"):
            if self.create_status != 200:
                return httpx.Response(self.create_status, json={"type": "error", "code": "internal_server_error"})
            body = json.loads(request.content)
            created = {
                "id": "2d8c7a1e-000f-5000-9000-1b2c3d4e5f60",
                "status": "pending",
                "paid": False,
                "amount": body["amount"],
                "metadata": body["metadata"],
            }
            if self.confirmation:
                created["confirmation"] = {
                    "type": "redirect",
                    "confirmation_url": "https://yoomoney.ru/checkout/payments/v2/contract?orderId=2d8c7a1e",
                }
            return httpx.Response(200, json=created)
        if request.method == "GET":
            return httpx.Response(
                200,
                json={
                    "id": request.url.path.rsplit("/", 1)[-1],
                    "status": self.payment_status,
                    "paid": self.payment_status == "succeeded",
                    "amount": {"value": "1500.00", "currency": "RUB"},
                },
            )
        return httpx.Response(404)


def _gateway(fake: FakeYooKassa) -> YooKassaGateway:
    return YooKassaGateway(
        shop_id="123456",
        secret_key="test_secret",
        base_url="https://api.yookassa.test/v3",
        transport=httpx.MockTransport(fake),
    )


@pytest_asyncio.fixture
async def notifier():
    recorder = RecordingNotifier()
    app.dependency_overrides[get_notifier] = lambda: recorder
    return recorder


@pytest_asyncio.fixture
async def priced_registration(db_session, make_event, player):
    event = await make_event(max_seats=4, price=Decimal("1500.00"), title="Americano")
    return await register(db_session, event.id, player.id)


@pytest.mark.asyncio
async def test_mark_paid_twice_is_idempotent(db_session, session_factory, priced_registration):
    first = await mark_paid(db_session, priced_registration.payment.id)
    paid_at = first.payment.paid_at
    second = await mark_paid(db_session, priced_registration.payment.id)

    assert first.changed is True
    assert second.changed is False
    payment = await fetch_payment(session_factory, priced_registration.payment.id)
    assert payment.status == PaymentStatus.PAID
    assert payment.paid_at == paid_at


@pytest.mark.asyncio
async def test_mark_paid_endpoint_notifies_once(client, notifier, staff_headers, priced_registration, player):
    url = f"/api/v1/payments/{priced_registration.payment.id}/mark-paid"

    first = await client.post(url, headers=staff_headers)
    second = await client.post(url, headers=staff_headers)

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["status"] == "paid"
    assert len(notifier.messages) == 1
    assert notifier.messages[0][0] == player.telegram_id


@pytest.mark.asyncio
async def test_mark_paid_requires_staff(client, player_headers, priced_registration):
    response = await client.post(
        f"/api/v1/payments/{priced_registration.payment.id}/mark-paid",
        headers=player_headers,
    )
    assert response.status_code == 403


def _webhook(event: str, registration, external_id: str = "ext-1", amount: str = "1500.00") -> dict:
    return {
        "type": "notification",
        "event": event,
        "object": {
            "id": external_id,
            "status": event.split(".")[1],
            "amount": {"value": amount, "currency": "RUB"},
            "metadata": {
                "event_id": str(registration.event_id),
                "participant_id": str(registration.participant_id),
                "user_id": str(registration.user_id),
            },
        },
    }


@pytest.mark.asyncio
async def test_webhook_success_and_replay(client, session_factory, notifier, priced_registration):
    payload = _webhook("payment.succeeded", priced_registration)

    first = await client.post("/api/v1/payments/webhook", json=payload)
    replay = await client.post("/api/v1/payments/webhook", json=payload)

    assert first.status_code == 200
    assert first.json() == {"status": "ok", "applied": True}
    assert replay.status_code == 200
    assert replay.json()["applied"] is False
    payment = await fetch_payment(session_factory, priced_registration.payment.id)
    assert payment.status == PaymentStatus.PAID
    assert payment.external_payment_id == "ext-1"
    assert len(notifier.messages) == 1


@pytest.mark.asyncio
async def test_webhook_canceled_detaches_checkout(client, db_session, session_factory, priced_registration):
    await db_session.execute(
        update(Payment)
        .where(Payment.id == priced_registration.payment.id)
        .values(external_payment_id="ext-9", payment_url="https://pay.example/ext-9")
    )
    await db_session.commit()

    response = await client.post(
        "/api/v1/payments/webhook",
        json=_webhook("payment.canceled", priced_registration, external_id="ext-9"),
    )

    assert response.status_code == 200
    payment = await fetch_payment(session_factory, priced_registration.payment.id)
    assert payment.status == PaymentStatus.PENDING
    assert payment.external_payment_id is None
    assert payment.payment_url is None


@pytest.mark.asyncio
async def test_webhook_unknown_event_acknowledged(client, priced_registration):
    response = await client.post(
        "/api/v1/payments/webhook",
        json=_webhook("refund.succeeded", priced_registration),
    )
    assert response.status_code == 200
    assert response.json()["applied"] is False


@pytest.mark.asyncio
async def test_webhook_amount_mismatch_ignored(client, session_factory, priced_registration):
    response = await client.post(
        "/api/v1/payments/webhook",
        json=_webhook("payment.succeeded", priced_registration, amount="1.00"),
    )
    assert response.status_code == 200
    payment = await fetch_payment(session_factory, priced_registration.payment.id)
    assert payment.status == PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_late_success_on_expired_flags_refund(db_session, session_factory, priced_registration):
    await db_session.execute(
        update(Payment)
        .where(Payment.id == priced_registration.payment.id)
        .values(status=PaymentStatus.EXPIRED)
    )
    await db_session.commit()

    payment = await get_payment(db_session, priced_registration.payment.id)
    transition = await apply_external_status(db_session, payment, "succeeded", "ext-late")
    await db_session.commit()

    assert transition.changed is False
    stored = await fetch_payment(session_factory, payment.id)
    assert stored.status == PaymentStatus.EXPIRED
    assert stored.refund_required is True


@pytest.mark.asyncio
async def test_yookassa_create_intent_request_shape():
    fake = FakeYooKassa()
    gateway = _gateway(fake)

    intent = await gateway.create_intent(
        amount=Decimal("1500"),
        currency="RUB",
        description="Courtside: Americano",
        metadata={"event_id": 1, "participant_id": 2, "user_id": 3, "payment_id": 4},
        return_url="https://t.me/courtside_bot/app",
        idempotence_key="courtside-4-1700000000",
    )
    await gateway.close()

    assert intent.external_id == "2d8c7a1e-000f-5000-9000-1b2c3d4e5f60"
    assert intent.checkout_url.startswith("https://yoomoney.ru/checkout")
    request = fake.requests[0]
    assert request.headers["Idempotence-Key"] == "courtside-4-1700000000"
    assert request.headers["Authorization"].startswith("Basic ")
    body = json.loads(request.content)
    assert body["amount"] == {"value": "1500.00", "currency": "RUB"}
    assert body["capture"] is True
    assert body["confirmation"] == {"type": "redirect", "return_url": "https://t.me/courtside_bot/app"}
    assert body["metadata"]["participant_id"] == "2"


@pytest.mark.asyncio
async def test_yookassa_error_raises_external_service_error():
    gateway = _gateway(FakeYooKassa(create_status=500))

    with pytest.raises(ExternalServiceError) as exc:
        await gateway.create_intent(Decimal("10"), "RUB", "x", {}, "https://r", "k")
    await gateway.close()

    assert exc.value.details["upstream_status"] == 500
    assert exc.value.details["retryable"] is True


@pytest.mark.asyncio
async def test_checkout_endpoint_creates_then_reuses(client, session_factory, player_headers, priced_registration):
    fake = FakeYooKassa()
    gateway = _gateway(fake)
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    url = f"/api/v1/payments/{priced_registration.payment.id}/checkout"

    first = await client.post(url, headers=player_headers)
    second = await client.post(url, headers=player_headers)
    await gateway.close()

    assert first.status_code == 200
    assert first.json()["payment_url"].startswith("https://yoomoney.ru/checkout")
    assert second.json()["payment_url"] == first.json()["payment_url"]
    assert len(fake.requests) == 1
    body = json.loads(fake.requests[0].content)
    assert body["metadata"]["payment_id"] == str(priced_registration.payment.id)
    assert body["description"] == "Courtside: Americano"
    payment = await fetch_payment(session_factory, priced_registration.payment.id)
    assert payment.payment_provider == "yookassa"


@pytest.mark.asyncio
async def test_checkout_gateway_failure_is_502(client, session_factory, player_headers, priced_registration):
    gateway = _gateway(FakeYooKassa(create_status=503))
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    response = await client.post(
        f"/api/v1/payments/{priced_registration.payment.id}/checkout",
        headers=player_headers,
    )
    await gateway.close()

    assert response.status_code == 502
    detail = response.json()["detail"]
    assert detail["code"] == "EXTERNAL_SERVICE_ERROR"
    assert detail["retryable"] is True
    payment = await fetch_payment(session_factory, priced_registration.payment.id)
    assert payment.status == PaymentStatus.PENDING
    assert payment.external_payment_id is None


@pytest.mark.asyncio
async def test_checkout_without_url_is_502_and_retried(client, session_factory, player_headers, priced_registration):
    fake = FakeYooKassa(confirmation=False)
    gateway = _gateway(fake)
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    url = f"/api/v1/payments/{priced_registration.payment.id}/checkout"

    first = await client.post(url, headers=player_headers)
    fake.confirmation = True
    second = await client.post(url, headers=player_headers)
    await gateway.close()

    assert first.status_code == 502
    assert first.json()["detail"]["code"] == "EXTERNAL_SERVICE_ERROR"
    assert second.status_code == 200
    assert second.json()["payment_url"].startswith("https://yoomoney.ru/checkout")
    assert len(fake.requests) == 2
    payment = await fetch_payment(session_factory, priced_registration.payment.id)
    assert payment.external_payment_id == "2d8c7a1e-000f-5000-9000-1b2c3d4e5f60"


@pytest.mark.asyncio
async def test_check_status_reconciles_paid(client, notifier, session_factory, player_headers, priced_registration):
    fake = FakeYooKassa(payment_status="succeeded")
    gateway = _gateway(fake)
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    await client.post(f"/api/v1/payments/{priced_registration.payment.id}/checkout", headers=player_headers)

    response = await client.post(
        f"/api/v1/payments/{priced_registration.payment.id}/check",
        headers=player_headers,
    )
    await gateway.close()

    assert response.status_code == 200
    assert response.json()["status"] == "paid"
    assert len(notifier.messages) == 1


@pytest.mark.asyncio
async def test_other_player_cannot_read_payment(client, make_user, priced_registration):
    stranger = await make_user()
    response = await client.get(
        f"/api/v1/payments/{priced_registration.payment.id}",
        headers=auth_headers_for(stranger),
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_get_payment_includes_countdown(client, player_headers, priced_registration):
    response = await client.get(
        f"/api/v1/payments/{priced_registration.payment.id}",
        headers=player_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "pending"
    assert 0 < data["countdown"]["seconds_remaining"] <= 15 * 60
    assert data["countdown"]["expired"] is False


@pytest.mark.asyncio
async def test_countdown_projection(db_session, priced_registration):
    payment = await get_payment(db_session, priced_registration.payment.id)
    deadline = as_utc(payment.payment_deadline)

    assert countdown(payment, deadline - timedelta(seconds=90)).seconds_remaining == 90
    assert countdown(payment, deadline - timedelta(milliseconds=300)).seconds_remaining == 1
    closed = countdown(payment, deadline + timedelta(seconds=1))
    assert closed.seconds_remaining == 0
    assert closed.expired is True


@pytest.mark.asyncio
async def test_client_expire_endpoint(client, db_session, session_factory, make_event, player, player_headers):
    event = await make_event(max_seats=2, price=Decimal("700.00"))
    stale = await register(db_session, event.id, player.id, now=utcnow() - timedelta(minutes=20))
    url = f"/api/v1/payments/{stale.payment.id}/expire"

    first = await client.post(url, headers=player_headers)
    second = await client.post(url, headers=player_headers)

    assert first.status_code == 200
    assert first.json() == {"payment_id": stale.payment.id, "expired": True, "status": "expired"}
    assert second.json()["expired"] is False
    assert (await fetch_event(session_factory, event.id)).current_seats == 0


@pytest.mark.asyncio
async def test_checkout_after_deadline_is_410(client, db_session, make_event, player, player_headers):
    event = await make_event(max_seats=2, price=Decimal("700.00"))
    stale = await register(db_session, event.id, player.id, now=utcnow() - timedelta(minutes=20))

    response = await client.post(f"/api/v1/payments/{stale.payment.id}/checkout", headers=player_headers)

    assert response.status_code == 410
    assert response.json()["detail"]["code"] == "PAYMENT_EXPIRED"


@pytest.mark.asyncio
async def test_pending_payments_staff_view(client, staff_headers, priced_registration):
    response = await client.get("/api/v1/payments/pending", headers=staff_headers)

    assert response.status_code == 200
    assert [p["id"] for p in response.json()] == [priced_registration.payment.id]
