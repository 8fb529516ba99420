from courtside.models.user import User, UserRole
from courtside.models.event import Event, EventStatus, EventType
from courtside.models.participant import Participant, ParticipantStatus
from courtside.models.payment import Payment, PaymentStatus

__all__ = [
    "User",
    "UserRole",
    "Event",
    "EventStatus",
    "EventType",
    "Participant",
    "ParticipantStatus",
    "Payment",
    "PaymentStatus",
]
