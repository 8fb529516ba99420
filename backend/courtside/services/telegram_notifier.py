"""
Telegram Bot API notifier (sendMessage).
"""

from typing import Optional

import httpx

from courtside.core.logging import get_logger
from courtside.services.interfaces.notifier import Notifier

logger = get_logger(__name__)


class TelegramNotifier(Notifier):
    def __init__(
        self,
        bot_token: str,
        api_url: str = "https://api.telegram.org",
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=f"{api_url}/bot{bot_token}",
            timeout=timeout,
            transport=transport,
        )

    async def send(self, telegram_id: int, text: str) -> None:
        response = await self._client.post(
            "/sendMessage",
            json={"chat_id": telegram_id, "text": text, "parse_mode": "HTML"},
        )
        response.raise_for_status()
        logger.debug("telegram_message_sent", telegram_id=telegram_id)

    async def close(self) -> None:
        await self._client.aclose()
