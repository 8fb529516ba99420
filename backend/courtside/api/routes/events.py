"""
Event endpoints with Redis caching on list operations.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.core.logging import get_logger
from courtside.core.security import require_staff
from courtside.db.session import get_db
from courtside.schemas.event import (
    EventCancelResponse,
    EventCreate,
    EventListResponse,
    EventResponse,
    EventUpdate,
)
from courtside.schemas.participant import ParticipantResponse
from courtside.services import notification_service
from courtside.services.cache_service import get_cached_events, invalidate_event_cache, set_cached_events
from courtside.services.event_service import cancel_event, create_event, get_event, list_events, update_event
from courtside.services.interfaces.notifier import Notifier
from courtside.services.strategy_factory import get_notifier
from courtside.services.waitlist_service import list_participants

logger = get_logger(__name__)
router = APIRouter(prefix="/events", tags=["Events"])


@router.post("", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    event_data: EventCreate,
    staff_id: int = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Create a new event. Staff only."""
    event = await create_event(db, event_data, staff_id)
    await invalidate_event_cache()
    return event


@router.get("", response_model=EventListResponse)
async def list_events_endpoint(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    upcoming_only: bool = Query(True),
    db: AsyncSession = Depends(get_db),
):
    """
    List scheduled events with pagination.
    Results are cached in Redis for REDIS_CACHE_TTL seconds and invalidated
    whenever an event or its seat count changes.
    """
    cached = await get_cached_events(page, page_size, upcoming_only)
    if cached:
        cached["cached"] = True
        return EventListResponse(**cached)

    events, total = await list_events(db, page, page_size, upcoming_only)

    response_data = {
        "events": [EventResponse.model_validate(e).model_dump(mode="json") for e in events],
        "total": total,
        "page": page,
        "page_size": page_size,
        "cached": False,
    }
    await set_cached_events(page, page_size, upcoming_only, response_data)

    return EventListResponse(**response_data)


@router.get("/{event_id}", response_model=EventResponse)
async def get_event_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get a single event by ID. Not cached (real-time seat counts)."""
    return await get_event(db, event_id)


@router.get("/{event_id}/participants", response_model=list[ParticipantResponse])
async def list_participants_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Confirmed players first, then the waitlist in queue order."""
    await get_event(db, event_id)
    return await list_participants(db, event_id)


@router.patch("/{event_id}", response_model=EventResponse)
async def update_event_endpoint(
    event_id: int,
    changes: EventUpdate,
    staff_id: int = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Edit an event. Raising max_seats promotes waiting players."""
    result = await update_event(db, event_id, changes)
    await invalidate_event_cache()
    await notification_service.notify_promoted(db, notifier, event_id, result.promoted)
    return result.event


@router.post("/{event_id}/cancel", response_model=EventCancelResponse)
async def cancel_event_endpoint(
    event_id: int,
    staff_id: int = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    result = await cancel_event(db, event_id)
    await invalidate_event_cache()
    return EventCancelResponse(
        event_id=result.event.id,
        status=result.event.status,
        participants_canceled=result.participants_canceled,
        refunds_required=result.refunds_required,
    )
