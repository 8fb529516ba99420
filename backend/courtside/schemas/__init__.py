from courtside.schemas.event import EventCreate, EventUpdate, EventResponse, EventListResponse, EventCancelResponse
from courtside.schemas.payment import (
    PaymentResponse, PaymentCountdown, PaymentDetailResponse, CheckoutResponse,
    ExpireResponse, WebhookPayload, WebhookAck,
)
from courtside.schemas.participant import (
    RegistrationCreate, RegistrationResponse, CancellationResponse, ParticipantResponse, SweepResponse,
)

__all__ = [
    "EventCreate", "EventUpdate", "EventResponse", "EventListResponse", "EventCancelResponse",
    "PaymentResponse", "PaymentCountdown", "PaymentDetailResponse", "CheckoutResponse",
    "ExpireResponse", "WebhookPayload", "WebhookAck",
    "RegistrationCreate", "RegistrationResponse", "CancellationResponse", "ParticipantResponse",
    "SweepResponse",
]
