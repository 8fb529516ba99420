"""
Registration endpoints: reserve a seat or join the waitlist, cancel.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.core.logging import get_logger
from courtside.core.security import ensure_self_or_staff, get_current_user_id
from courtside.db.session import get_db
from courtside.schemas.participant import (
    CancellationResponse,
    ParticipantResponse,
    RegistrationCreate,
    RegistrationResponse,
)
from courtside.schemas.payment import PaymentResponse
from courtside.services import notification_service
from courtside.services.cache_service import invalidate_event_cache
from courtside.services.interfaces.notifier import Notifier
from courtside.services.registration_service import cancel, get_user_registrations, register
from courtside.services.strategy_factory import get_notifier

logger = get_logger(__name__)
router = APIRouter(prefix="/participants", tags=["Participants"])


@router.post("", response_model=RegistrationResponse, status_code=status.HTTP_201_CREATED)
async def register_endpoint(
    data: RegistrationCreate,
    caller_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Register for an event.

    Returns `confirmed` when a seat was free, otherwise `waiting` with the
    queue position. A full event is not an error. Priced confirmations
    include the payment obligation and its deadline.
    """
    user_id = data.user_id if data.user_id is not None else caller_id
    await ensure_self_or_staff(db, caller_id, user_id)

    result = await register(db, data.event_id, user_id)
    await invalidate_event_cache()
    return RegistrationResponse(
        participant_id=result.participant_id,
        event_id=result.event_id,
        status=result.status,
        queue_position=result.queue_position,
        payment=PaymentResponse.model_validate(result.payment) if result.payment else None,
    )


@router.delete("/{event_id}/{user_id}", response_model=CancellationResponse)
async def cancel_endpoint(
    event_id: int,
    user_id: int,
    caller_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Cancel a registration; a freed seat goes to the head of the waitlist."""
    await ensure_self_or_staff(db, caller_id, user_id)

    result = await cancel(db, event_id, user_id)
    if result.canceled:
        await invalidate_event_cache()
        await notification_service.notify_promoted(db, notifier, event_id, result.promoted)
    return CancellationResponse(
        canceled=result.canceled,
        refund_required=result.refund_required,
        promoted=[p.user_id for p in result.promoted],
    )


@router.get("/me", response_model=list[ParticipantResponse])
async def my_registrations(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Active registrations of the authenticated user."""
    return await get_user_registrations(db, user_id)
