"""
Notifier interface for user-facing messages (payment received, promoted
from the waitlist, reservation expired).
"""

from abc import ABC, abstractmethod

from courtside.core.logging import get_logger

logger = get_logger(__name__)


class Notifier(ABC):
    @abstractmethod
    async def send(self, telegram_id: int, text: str) -> None:
        """Deliver one message. Implementations may raise on delivery failure."""
        pass

    async def close(self) -> None:
        pass


class LoggingNotifier(Notifier):
    """Writes messages to the log instead of delivering them."""

    async def send(self, telegram_id: int, text: str) -> None:
        logger.info("notification_suppressed", telegram_id=telegram_id, text=text)
