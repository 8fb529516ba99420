"""
Payment gateway interface.
Lets the obligation tracker talk to a hosted checkout without knowing
which provider sits behind it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional


@dataclass
class PaymentIntent:
    external_id: str
    checkout_url: Optional[str]


@dataclass
class GatewayPaymentStatus:
    external_id: str
    status: str  # pending, waiting_for_capture, succeeded, canceled
    paid: bool = False
    amount: Optional[Decimal] = None
    metadata: dict[str, Any] = field(default_factory=dict)


class PaymentGateway(ABC):
    """
    Interface for payment providers.

    Implementations:
    - YooKassaGateway: hosted checkout through the YooKassa REST API
    - OfflineGateway: cash/transfer collected by staff, confirmed via mark-paid
    """

    name: str = "gateway"

    @abstractmethod
    async def create_intent(
        self,
        amount: Decimal,
        currency: str,
        description: str,
        metadata: dict[str, Any],
        return_url: str,
        idempotence_key: str,
    ) -> PaymentIntent:
        """
        Create a payment at the provider.

        Raises:
            ExternalServiceError: provider unreachable or answered non-2xx
        """
        pass

    @abstractmethod
    async def get_status(self, external_id: str) -> GatewayPaymentStatus:
        """
        Query the provider for the current status of a payment.

        Raises:
            ExternalServiceError: provider unreachable or answered non-2xx
        """
        pass

    async def close(self) -> None:
        """Release network resources on shutdown."""
        pass
