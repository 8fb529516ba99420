"""
Payment endpoints: checkout, status reconciliation, countdown and expiry.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.core.logging import get_logger
from courtside.core.security import ensure_self_or_staff, get_current_user_id, require_staff
from courtside.db.session import get_db
from courtside.models.payment import Payment
from courtside.schemas.payment import (
    CheckoutResponse,
    ExpireResponse,
    PaymentDetailResponse,
    PaymentResponse,
    WebhookAck,
    WebhookPayload,
)
from courtside.services import notification_service, payment_service
from courtside.services.cache_service import invalidate_event_cache
from courtside.services.expiry_service import expire_payment
from courtside.services.interfaces.notifier import Notifier
from courtside.services.interfaces.payment_gateway import PaymentGateway
from courtside.services.payment_service import PaymentTransition
from courtside.services.strategy_factory import get_notifier, get_payment_gateway

logger = get_logger(__name__)
router = APIRouter(prefix="/payments", tags=["Payments"])


def _detail(payment: Payment) -> PaymentDetailResponse:
    response = PaymentDetailResponse.model_validate(payment)
    response.countdown = payment_service.countdown(payment)
    return response


async def _owned_payment(db: AsyncSession, payment_id: int, caller_id: int) -> Payment:
    payment = await payment_service.get_payment(db, payment_id)
    await ensure_self_or_staff(db, caller_id, payment.user_id)
    return payment


async def _after_transition(db: AsyncSession, notifier: Notifier, transition: PaymentTransition) -> None:
    if transition.changed:
        await notification_service.notify_payment_received(db, notifier, transition.payment)


@router.get("/pending", response_model=list[PaymentResponse])
async def pending_payments(
    staff_id: int = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Open obligations, soonest deadline first (staff view)."""
    return await payment_service.list_pending_payments(db)


@router.post("/webhook", response_model=WebhookAck)
async def payment_webhook(
    payload: WebhookPayload,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """
    Gateway push notification. Always acknowledged once processed, so the
    gateway does not retry replays or events we do not handle.
    """
    transition = await payment_service.handle_webhook(db, payload)
    if transition is None:
        return WebhookAck(applied=False)
    await _after_transition(db, notifier, transition)
    return WebhookAck(applied=transition.changed)


@router.get("/{payment_id}", response_model=PaymentDetailResponse)
async def get_payment_endpoint(
    payment_id: int,
    caller_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Payment with the countdown that drives the client timer."""
    return _detail(await _owned_payment(db, payment_id, caller_id))


@router.post("/{payment_id}/checkout", response_model=CheckoutResponse)
async def checkout_endpoint(
    payment_id: int,
    caller_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """Hosted checkout URL for a pending obligation (created once, then reused)."""
    await _owned_payment(db, payment_id, caller_id)
    payment = await payment_service.create_checkout(db, gateway, payment_id)
    return CheckoutResponse(
        payment_id=payment.id,
        payment_url=payment.payment_url,
        payment_deadline=payment.payment_deadline,
    )


@router.post("/{payment_id}/check", response_model=PaymentDetailResponse)
async def check_payment_endpoint(
    payment_id: int,
    caller_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: Notifier = Depends(get_notifier),
):
    """Ask the gateway directly; fallback when the webhook is late."""
    await _owned_payment(db, payment_id, caller_id)
    transition = await payment_service.check_status(db, gateway, payment_id)
    await _after_transition(db, notifier, transition)
    return _detail(transition.payment)


@router.post("/{payment_id}/expire", response_model=ExpireResponse)
async def expire_payment_endpoint(
    payment_id: int,
    caller_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """
    Client countdown reached zero. Releases the seat unless the sweeper (or
    a payment) got there first, in which case `expired` is false.
    """
    await _owned_payment(db, payment_id, caller_id)
    result = await expire_payment(db, payment_id, source="client")
    if result is not None:
        await invalidate_event_cache()
        await notification_service.notify_promoted(db, notifier, result.event_id, result.promoted)
    payment = await payment_service.get_payment(db, payment_id)
    return ExpireResponse(payment_id=payment.id, expired=result is not None, status=payment.status)


@router.post("/{payment_id}/mark-paid", response_model=PaymentDetailResponse)
async def mark_paid_endpoint(
    payment_id: int,
    staff_id: int = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Staff confirmation of cash or transfer. Idempotent."""
    transition = await payment_service.mark_paid(db, payment_id)
    logger.info("payment_marked_paid", payment_id=payment_id, staff_id=staff_id, changed=transition.changed)
    await _after_transition(db, notifier, transition)
    return _detail(transition.payment)
