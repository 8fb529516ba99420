"""
Staff operations.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import async_sessionmaker

from courtside.core.metrics import sweep_duration
from courtside.core.security import require_staff
from courtside.db.session import get_session_factory
from courtside.schemas.participant import SweepResponse
from courtside.services.cache_service import invalidate_event_cache
from courtside.services.expiry_service import sweep_expired_payments
from courtside.services.interfaces.notifier import Notifier
from courtside.services.strategy_factory import get_notifier

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post("/sweep", response_model=SweepResponse)
async def sweep_endpoint(
    staff_id: int = Depends(require_staff),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    notifier: Notifier = Depends(get_notifier),
):
    """Run one expiry pass now instead of waiting for the next interval."""
    with sweep_duration.time():
        expired = await sweep_expired_payments(session_factory, notifier=notifier)
    if expired:
        await invalidate_event_cache()
    return SweepResponse(expired=expired)
