"""
Offline payment gateway - no hosted checkout.
Players pay the club directly; staff confirm through mark-paid.
"""

from decimal import Decimal
from typing import Any

from courtside.core.exceptions import ConflictError
from courtside.services.interfaces.payment_gateway import (
    GatewayPaymentStatus,
    PaymentGateway,
    PaymentIntent,
)


class OfflineGateway(PaymentGateway):
    """
    No provider behind it.

    Use when:
    - The club collects cash or bank transfers at the court
    - Local development and tests without gateway credentials
    """

    name = "offline"

    async def create_intent(
        self,
        amount: Decimal,
        currency: str,
        description: str,
        metadata: dict[str, Any],
        return_url: str,
        idempotence_key: str,
    ) -> PaymentIntent:
        raise ConflictError(
            code="CHECKOUT_UNAVAILABLE",
            message="Online checkout is disabled; pay the club directly",
        )

    async def get_status(self, external_id: str) -> GatewayPaymentStatus:
        """Nothing to query - staff confirmation is the only source."""
        return GatewayPaymentStatus(external_id=external_id, status="pending")
