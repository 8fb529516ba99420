"""
Domain exceptions raised by the allocation engine.

Services raise these; the API layer renders them through a single
exception handler (see courtside.api.errors). Capacity races are never
raised: they surface as a ``waiting`` status instead.
"""

from typing import Any, Optional


class CourtsideError(Exception):
    """Base exception carrying a stable error code and an HTTP status."""

    status_code = 400

    def __init__(
        self,
        code: str,
        message: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message or code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(CourtsideError):
    status_code = 404

    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} {identifier} not found"
        super().__init__(
            code=f"{resource.upper()}_NOT_FOUND",
            message=message,
            details={"resource": resource},
        )


class PermissionDeniedError(CourtsideError):
    status_code = 403


class ConflictError(CourtsideError):
    status_code = 409


class AlreadyRegisteredError(ConflictError):
    def __init__(self, event_id: int, user_id: int):
        super().__init__(
            code="ALREADY_REGISTERED",
            message="User already has an active registration for this event",
            details={"event_id": event_id, "user_id": user_id},
        )


class PaymentExpiredError(CourtsideError):
    """The payment window closed before the gateway confirmed the payment."""

    status_code = 410

    def __init__(self, payment_id: int):
        super().__init__(
            code="PAYMENT_EXPIRED",
            message="Payment deadline has passed; the reservation was released",
            details={"payment_id": payment_id},
        )


class ExternalServiceError(CourtsideError):
    """Payment gateway (or another upstream) is unreachable or answered non-2xx."""

    status_code = 502

    def __init__(self, service: str, message: Optional[str] = None, upstream_status: Optional[int] = None):
        details: dict[str, Any] = {"service": service, "retryable": True}
        if upstream_status is not None:
            details["upstream_status"] = upstream_status
        super().__init__(
            code="EXTERNAL_SERVICE_ERROR",
            message=message or f"External service {service} is unavailable",
            details=details,
        )
