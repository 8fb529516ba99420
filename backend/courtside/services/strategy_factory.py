"""
Collaborator factory.
Configures which payment gateway and notifier the services use.
"""

from typing import Optional

from courtside.core.config import get_settings
from courtside.core.logging import get_logger
from courtside.services.interfaces.notifier import LoggingNotifier, Notifier
from courtside.services.interfaces.offline_gateway import OfflineGateway
from courtside.services.interfaces.payment_gateway import PaymentGateway
from courtside.services.telegram_notifier import TelegramNotifier
from courtside.services.yookassa_gateway import YooKassaGateway

logger = get_logger(__name__)


def build_payment_gateway() -> PaymentGateway:
    """
    Gateway selection via PAYMENT_GATEWAY:
    - yookassa: hosted checkout (requires shop id and secret key)
    - offline: staff confirm payments with mark-paid
    """
    settings = get_settings()
    if settings.PAYMENT_GATEWAY == "yookassa":
        if not settings.YOOKASSA_SHOP_ID or not settings.YOOKASSA_SECRET_KEY:
            logger.warning("yookassa_not_configured", fallback="offline")
            return OfflineGateway()
        return YooKassaGateway(
            shop_id=settings.YOOKASSA_SHOP_ID,
            secret_key=settings.YOOKASSA_SECRET_KEY,
            base_url=settings.YOOKASSA_API_URL,
            timeout=settings.GATEWAY_TIMEOUT_SECONDS,
        )
    return OfflineGateway()


def build_notifier() -> Notifier:
    settings = get_settings()
    if settings.NOTIFICATIONS_ENABLED and settings.TELEGRAM_BOT_TOKEN:
        return TelegramNotifier(settings.TELEGRAM_BOT_TOKEN, api_url=settings.TELEGRAM_API_URL)
    return LoggingNotifier()


# Singleton instances
_gateway: Optional[PaymentGateway] = None
_notifier: Optional[Notifier] = None


def get_payment_gateway() -> PaymentGateway:
    """Get payment gateway singleton (also a FastAPI dependency)."""
    global _gateway
    if _gateway is None:
        _gateway = build_payment_gateway()
    return _gateway


def get_notifier() -> Notifier:
    global _notifier
    if _notifier is None:
        _notifier = build_notifier()
    return _notifier


async def close_collaborators() -> None:
    global _gateway, _notifier
    if _gateway is not None:
        await _gateway.close()
        _gateway = None
    if _notifier is not None:
        await _notifier.close()
        _notifier = None
