"""
Pydantic schemas for registration and cancellation.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from courtside.models.participant import ParticipantStatus
from courtside.schemas.payment import PaymentResponse


class RegistrationCreate(BaseModel):
    event_id: int
    user_id: Optional[int] = None  # defaults to the caller


class RegistrationResponse(BaseModel):
    participant_id: int
    event_id: int
    status: ParticipantStatus
    queue_position: Optional[int]
    payment: Optional[PaymentResponse] = None


class CancellationResponse(BaseModel):
    canceled: bool
    refund_required: bool = False
    promoted: list[int] = []


class ParticipantResponse(BaseModel):
    id: int
    event_id: int
    user_id: int
    status: ParticipantStatus
    queue_position: Optional[int]
    registered_at: datetime
    canceled_at: Optional[datetime]

    model_config = {"from_attributes": True}


class SweepResponse(BaseModel):
    expired: int
