"""
Pydantic schemas for event-related request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field

from courtside.models.event import EventStatus, EventType


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    event_type: EventType = EventType.TRAINING
    event_date: datetime
    duration_minutes: int = Field(90, gt=0, le=24 * 60)
    location: Optional[str] = Field(None, max_length=255)
    level: Optional[str] = Field(None, max_length=20)
    description: Optional[str] = Field(None, max_length=1000)
    max_seats: int = Field(..., gt=0, le=1000)
    price: Decimal = Field(Decimal("0"), ge=0, max_digits=10, decimal_places=2)


class EventUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    event_date: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(None, gt=0, le=24 * 60)
    location: Optional[str] = Field(None, max_length=255)
    level: Optional[str] = Field(None, max_length=20)
    description: Optional[str] = Field(None, max_length=1000)
    max_seats: Optional[int] = Field(None, gt=0, le=1000)
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)


class EventResponse(BaseModel):
    id: int
    title: str
    event_type: EventType
    event_date: datetime
    duration_minutes: int
    location: Optional[str]
    level: Optional[str]
    description: Optional[str]
    max_seats: int
    current_seats: int
    price: Decimal
    status: EventStatus
    created_by: Optional[int]
    created_at: datetime

    model_config = {"from_attributes": True}


class EventListResponse(BaseModel):
    events: list[EventResponse]
    total: int
    page: int
    page_size: int
    cached: bool = False


class EventCancelResponse(BaseModel):
    event_id: int
    status: EventStatus
    participants_canceled: int
    refunds_required: int
