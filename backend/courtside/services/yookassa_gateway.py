"""
YooKassa payment gateway.
Implements PaymentGateway over the YooKassa v3 REST API with httpx.

Failure policy:
  Network errors and non-2xx answers become ExternalServiceError (502,
  retryable). Nothing is written locally when the provider call fails, so
  a retry starts from the same state. Each create call carries an
  Idempotence-Key derived from the local payment id and deadline, so a
  retried request after a timeout cannot create a second payment for the
  same window.
"""

from decimal import Decimal
from typing import Any, Optional

import httpx

from courtside.core.config import get_settings
from courtside.core.exceptions import ExternalServiceError
from courtside.core.logging import get_logger
from courtside.core.metrics import record_gateway_error
from courtside.services.interfaces.payment_gateway import (
    GatewayPaymentStatus,
    PaymentGateway,
    PaymentIntent,
)

logger = get_logger(__name__)
settings = get_settings()


class YooKassaGateway(PaymentGateway):
    """
    Hosted checkout through YooKassa.

    Payments are created with capture=true and a redirect confirmation;
    the player is sent to `confirmation.confirmation_url`.
    """

    name = "yookassa"

    def __init__(
        self,
        shop_id: str,
        secret_key: str,
        base_url: str = "https://api.yookassa.ru/v3",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            auth=httpx.BasicAuth(shop_id, secret_key),
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def _request(self, operation: str, method: str, url: str, **kwargs) -> dict[str, Any]:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            record_gateway_error(operation)
            logger.error("gateway_error", gateway=self.name, operation=operation, error=str(e))
            raise ExternalServiceError(self.name, f"YooKassa request failed: {e.__class__.__name__}")

        if response.is_error:
            record_gateway_error(operation)
            logger.error(
                "gateway_error",
                gateway=self.name,
                operation=operation,
                upstream_status=response.status_code,
                body=response.text[:500],
            )
            raise ExternalServiceError(
                self.name,
                f"YooKassa answered {response.status_code}",
                upstream_status=response.status_code,
            )
        return response.json()

    async def create_intent(
        self,
        amount: Decimal,
        currency: str,
        description: str,
        metadata: dict[str, Any],
        return_url: str,
        idempotence_key: str,
    ) -> PaymentIntent:
        body = {
            "amount": {"value": f"{amount:.2f}", "currency": currency},
            "capture": True,
            "confirmation": {"type": "redirect", "return_url": return_url},
            "description": description[:128],
            "metadata": {key: str(value) for key, value in metadata.items()},
        }
        data = await self._request(
            "create_intent",
            "POST",
            "/payments",
            json=body,
            headers={"Idempotence-Key": idempotence_key},
        )
        confirmation = data.get("confirmation") or {}
        intent = PaymentIntent(external_id=data["id"], checkout_url=confirmation.get("confirmation_url"))
        logger.info("gateway_intent_created", gateway=self.name, external_id=intent.external_id)
        return intent

    async def get_status(self, external_id: str) -> GatewayPaymentStatus:
        data = await self._request("get_status", "GET", f"/payments/{external_id}")
        amount = data.get("amount") or {}
        return GatewayPaymentStatus(
            external_id=data.get("id", external_id),
            status=data.get("status", "pending"),
            paid=bool(data.get("paid", False)),
            amount=Decimal(amount["value"]) if "value" in amount else None,
            metadata=data.get("metadata") or {},
        )

    async def close(self) -> None:
        await self._client.aclose()
