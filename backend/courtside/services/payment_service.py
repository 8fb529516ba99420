"""
Payment obligation tracker.

Every status change goes through a conditional UPDATE guarded by the
expected current status, so the webhook, the manual status check, staff
mark-paid, player cancellation and the expiry sweeper can race freely:
exactly one of them moves a pending obligation, the others see zero
affected rows and become no-ops.

State machine:
    pending --success--> paid            (terminal)
    pending --cancel---> canceled
    pending --deadline-> expired         (expiry_service)
    canceled/expired --late success--> unchanged, refund_required = True
    paid --participant cancels--> unchanged, refund_required = True
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.core.clock import as_utc, utcnow
from courtside.core.config import get_settings
from courtside.core.exceptions import ConflictError, ExternalServiceError, NotFoundError, PaymentExpiredError
from courtside.core.logging import get_logger
from courtside.core.metrics import record_gateway_error, record_payment_transition
from courtside.models.event import Event
from courtside.models.participant import Participant
from courtside.models.payment import Payment, PaymentStatus
from courtside.schemas.payment import PaymentCountdown, WebhookPayload
from courtside.services.interfaces.payment_gateway import PaymentGateway

logger = get_logger(__name__)
settings = get_settings()

GATEWAY_SUCCEEDED = "succeeded"
GATEWAY_CANCELED = "canceled"

WEBHOOK_EVENTS = {
    "payment.succeeded": GATEWAY_SUCCEEDED,
    "payment.canceled": GATEWAY_CANCELED,
}


@dataclass
class PaymentTransition:
    payment: Payment
    changed: bool = False
    external_status: Optional[str] = None


def payment_deadline(now: datetime) -> datetime:
    return now + timedelta(minutes=settings.PAYMENT_DEADLINE_MINUTES)


async def get_payment(db: AsyncSession, payment_id: int) -> Payment:
    payment = (
        await db.execute(
            select(Payment).where(Payment.id == payment_id).execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if payment is None:
        raise NotFoundError("payment", payment_id)
    return payment


async def get_payment_for_participant(db: AsyncSession, participant_id: int) -> Optional[Payment]:
    return (
        await db.execute(
            select(Payment)
            .where(Payment.participant_id == participant_id)
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()


async def open_obligation(
    db: AsyncSession,
    participant: Participant,
    amount,
    now: datetime,
) -> Payment:
    """
    Create the participant's obligation or reopen the existing one.

    Reopening resets the deadline and clears any stale checkout reference.
    A paid obligation still waiting for its refund is reinstated instead,
    so the player is not charged twice for the same seat.
    """
    payment = await get_payment_for_participant(db, participant.id)

    if payment is None:
        payment = Payment(
            participant_id=participant.id,
            event_id=participant.event_id,
            user_id=participant.user_id,
            amount=amount,
            currency=settings.PAYMENT_CURRENCY,
            status=PaymentStatus.PENDING,
            payment_deadline=payment_deadline(now),
            refund_required=False,
        )
        db.add(payment)
    elif payment.status == PaymentStatus.PAID:
        payment.refund_required = False
        await db.flush()
        logger.info("payment_reinstated", payment_id=payment.id, participant_id=participant.id)
        return payment
    else:
        payment.amount = amount
        payment.status = PaymentStatus.PENDING
        payment.payment_deadline = payment_deadline(now)
        payment.paid_at = None
        payment.external_payment_id = None
        payment.payment_url = None
        payment.payment_provider = None
        payment.refund_required = False

    await db.flush()
    record_payment_transition(PaymentStatus.PENDING.value)
    logger.info(
        "payment_obligation_opened",
        payment_id=payment.id,
        participant_id=participant.id,
        amount=str(amount),
        deadline=payment.payment_deadline.isoformat(),
    )
    return payment


async def cancel_obligation(db: AsyncSession, participant_id: int) -> bool:
    """
    Close the obligation of a participant who is leaving.
    Returns True when the player had already paid and needs a refund.

    Settlement does not take the event lock, so the status read here may
    be stale. Both branches are conditional updates against the current
    row: a payment that settles before the cancel lands is flagged.
    """
    payment = await get_payment_for_participant(db, participant_id)
    if payment is None:
        return False

    canceled = await db.execute(
        update(Payment)
        .where(Payment.id == payment.id, Payment.status == PaymentStatus.PENDING)
        .values(status=PaymentStatus.CANCELED)
        .execution_options(synchronize_session=False)
    )
    if canceled.rowcount:
        record_payment_transition(PaymentStatus.CANCELED.value)
        logger.info("payment_canceled", payment_id=payment.id)
        return False

    flagged = await db.execute(
        update(Payment)
        .where(Payment.id == payment.id, Payment.status == PaymentStatus.PAID)
        .values(refund_required=True)
        .execution_options(synchronize_session=False)
    )
    if flagged.rowcount:
        record_payment_transition("refund_required")
        logger.warning("payment_refund_required", payment_id=payment.id, reason="participant_canceled")
        return True
    return False


async def apply_external_status(
    db: AsyncSession,
    payment: Payment,
    status: str,
    external_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> PaymentTransition:
    """
    Reconcile a gateway status into the local obligation. Idempotent.

    Only the pending -> paid edge reports `changed`, so callers notify
    the player exactly once no matter how often the status is replayed.
    """
    now = now or utcnow()

    if status == GATEWAY_SUCCEEDED:
        values = {"status": PaymentStatus.PAID, "paid_at": now}
        if external_id:
            values["external_payment_id"] = external_id
        result = await db.execute(
            update(Payment)
            .where(Payment.id == payment.id, Payment.status == PaymentStatus.PENDING)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            record_payment_transition(PaymentStatus.PAID.value)
            logger.info("payment_paid", payment_id=payment.id, external_id=external_id)
            return PaymentTransition(await get_payment(db, payment.id), changed=True, external_status=status)

        current = await get_payment(db, payment.id)
        if current.status in (PaymentStatus.CANCELED, PaymentStatus.EXPIRED) and not current.refund_required:
            await db.execute(
                update(Payment)
                .where(Payment.id == payment.id)
                .values(refund_required=True)
                .execution_options(synchronize_session=False)
            )
            record_payment_transition("refund_required")
            logger.warning(
                "payment_refund_required",
                payment_id=payment.id,
                status=current.status.value,
                reason="late_success",
            )
            current = await get_payment(db, payment.id)
        return PaymentTransition(current, changed=False, external_status=status)

    if status == GATEWAY_CANCELED:
        conditions = [Payment.id == payment.id, Payment.status == PaymentStatus.PENDING]
        if external_id:
            # Only the checkout currently attached; an older one is irrelevant
            conditions.append(Payment.external_payment_id == external_id)
        result = await db.execute(
            update(Payment)
            .where(*conditions)
            .values(external_payment_id=None, payment_url=None, payment_provider=None)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            logger.info("payment_checkout_detached", payment_id=payment.id, external_id=external_id)
        return PaymentTransition(await get_payment(db, payment.id), changed=False, external_status=status)

    return PaymentTransition(payment, changed=False, external_status=status)


async def mark_paid(db: AsyncSession, payment_id: int, now: Optional[datetime] = None) -> PaymentTransition:
    """Staff confirmation of an offline payment."""
    payment = await get_payment(db, payment_id)
    transition = await apply_external_status(db, payment, GATEWAY_SUCCEEDED, None, now)
    await db.commit()
    return transition


async def create_checkout(
    db: AsyncSession,
    gateway: PaymentGateway,
    payment_id: int,
    now: Optional[datetime] = None,
) -> Payment:
    now = now or utcnow()
    payment = await get_payment(db, payment_id)

    if payment.status == PaymentStatus.EXPIRED:
        raise PaymentExpiredError(payment.id)
    if payment.status != PaymentStatus.PENDING:
        raise ConflictError(
            code="PAYMENT_NOT_PENDING",
            message=f"Payment is {payment.status.value}",
            details={"payment_id": payment.id, "status": payment.status.value},
        )
    deadline = as_utc(payment.payment_deadline)
    if deadline <= now:
        raise PaymentExpiredError(payment.id)
    if payment.external_payment_id:
        return payment

    title = (await db.execute(select(Event.title).where(Event.id == payment.event_id))).scalar_one()
    intent = await gateway.create_intent(
        amount=payment.amount,
        currency=payment.currency,
        description=f"Courtside: {title}",
        metadata={
            "event_id": payment.event_id,
            "participant_id": payment.participant_id,
            "user_id": payment.user_id,
            "payment_id": payment.id,
        },
        return_url=settings.PAYMENT_RETURN_URL,
        idempotence_key=f"courtside-{payment.id}-{int(deadline.timestamp())}",
    )
    if not intent.checkout_url:
        record_gateway_error("create_intent")
        logger.warning("checkout_url_missing", payment_id=payment.id, external_id=intent.external_id)
        raise ExternalServiceError(gateway.name, message="Payment provider returned no checkout URL")

    result = await db.execute(
        update(Payment)
        .where(
            Payment.id == payment.id,
            Payment.status == PaymentStatus.PENDING,
            Payment.external_payment_id.is_(None),
        )
        .values(
            external_payment_id=intent.external_id,
            payment_url=intent.checkout_url,
            payment_provider=gateway.name,
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    if result.rowcount:
        logger.info("checkout_created", payment_id=payment.id, external_id=intent.external_id)
    return await get_payment(db, payment.id)


async def check_status(
    db: AsyncSession,
    gateway: PaymentGateway,
    payment_id: int,
    now: Optional[datetime] = None,
) -> PaymentTransition:
    """Poll fallback for a missed or delayed webhook."""
    payment = await get_payment(db, payment_id)
    if not payment.external_payment_id:
        return PaymentTransition(payment)

    remote = await gateway.get_status(payment.external_payment_id)
    status = GATEWAY_SUCCEEDED if remote.paid else remote.status
    transition = await apply_external_status(db, payment, status, remote.external_id, now)
    await db.commit()
    transition.external_status = remote.status
    return transition


async def _resolve_webhook_payment(db: AsyncSession, payload: WebhookPayload) -> Optional[Payment]:
    metadata = payload.object.metadata
    payment_id = metadata.get("payment_id")
    if payment_id is not None:
        try:
            return await get_payment(db, int(payment_id))
        except (NotFoundError, ValueError):
            pass

    participant_id = metadata.get("participant_id")
    if participant_id is not None:
        try:
            payment = await get_payment_for_participant(db, int(participant_id))
        except ValueError:
            payment = None
        if payment is not None:
            return payment

    return (
        await db.execute(
            select(Payment)
            .where(Payment.external_payment_id == payload.object.id)
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()


async def handle_webhook(
    db: AsyncSession,
    payload: WebhookPayload,
    now: Optional[datetime] = None,
) -> Optional[PaymentTransition]:
    """
    Apply a gateway push notification.

    Unknown event types and unknown payments are acknowledged and ignored
    (the gateway retries anything that is not a 2xx).
    """
    status = WEBHOOK_EVENTS.get(payload.event)
    if status is None:
        logger.info("webhook_ignored", gateway_event=payload.event, external_id=payload.object.id)
        return None

    payment = await _resolve_webhook_payment(db, payload)
    if payment is None:
        logger.warning("webhook_payment_unknown", gateway_event=payload.event, external_id=payload.object.id)
        return None

    amount = payload.object.amount
    if status == GATEWAY_SUCCEEDED and amount is not None and amount.value != payment.amount:
        logger.warning(
            "webhook_amount_mismatch",
            payment_id=payment.id,
            expected=str(payment.amount),
            received=str(amount.value),
        )
        return None

    transition = await apply_external_status(db, payment, status, payload.object.id, now)
    await db.commit()
    logger.info(
        "webhook_applied",
        gateway_event=payload.event,
        payment_id=payment.id,
        changed=transition.changed,
    )
    return transition


async def list_pending_payments(db: AsyncSession) -> list[Payment]:
    result = await db.execute(
        select(Payment)
        .where(Payment.status == PaymentStatus.PENDING)
        .order_by(Payment.payment_deadline.asc())
    )
    return list(result.scalars().all())


def countdown(payment: Payment, now: Optional[datetime] = None) -> PaymentCountdown:
    """Seconds left in the payment window; zero once it has closed."""
    now = now or utcnow()
    deadline = as_utc(payment.payment_deadline)
    if payment.status == PaymentStatus.PENDING:
        remaining = max(0, math.ceil((deadline - now).total_seconds()))
        expired = remaining == 0
    else:
        remaining = 0
        expired = payment.status == PaymentStatus.EXPIRED
    return PaymentCountdown(
        payment_id=payment.id,
        payment_deadline=deadline,
        seconds_remaining=remaining,
        expired=expired,
    )
