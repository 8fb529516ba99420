"""
Service interfaces for dependency inversion.
Allows swapping payment providers and notification channels without
changing allocation logic.
"""

from .payment_gateway import PaymentGateway, PaymentIntent, GatewayPaymentStatus
from .offline_gateway import OfflineGateway
from .notifier import Notifier, LoggingNotifier

__all__ = [
    'PaymentGateway', 'PaymentIntent', 'GatewayPaymentStatus', 'OfflineGateway',
    'Notifier', 'LoggingNotifier',
]
