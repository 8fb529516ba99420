"""
Pydantic schemas for payment obligations, the countdown projection and
gateway webhook payloads.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, Field

from courtside.models.payment import PaymentStatus


class PaymentResponse(BaseModel):
    id: int
    participant_id: int
    event_id: int
    user_id: int
    amount: Decimal
    currency: str
    status: PaymentStatus
    payment_deadline: datetime
    paid_at: Optional[datetime]
    payment_url: Optional[str]
    refund_required: bool

    model_config = {"from_attributes": True}


class PaymentCountdown(BaseModel):
    """Read-only projection of the deadline that drives the client timer."""

    payment_id: int
    payment_deadline: datetime
    seconds_remaining: int
    expired: bool


class PaymentDetailResponse(PaymentResponse):
    countdown: Optional[PaymentCountdown] = None


class CheckoutResponse(BaseModel):
    payment_id: int
    payment_url: str
    payment_deadline: datetime


class ExpireResponse(BaseModel):
    payment_id: int
    expired: bool
    status: PaymentStatus


class WebhookAmount(BaseModel):
    value: Decimal
    currency: str


class WebhookObject(BaseModel):
    id: str
    status: Optional[str] = None
    amount: Optional[WebhookAmount] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class WebhookPayload(BaseModel):
    type: str = "notification"
    event: str
    object: WebhookObject


class WebhookAck(BaseModel):
    status: str = "ok"
    applied: bool = False
