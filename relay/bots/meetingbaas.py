"""
MeetingBaas client - creates and removes meeting bots.

The bot joins the meeting and streams its audio (16 kHz mono) to the
relay's /ws/bot endpoint, given here as the webhook URL.
"""

import logging
from typing import Optional

import httpx

from relay.config import get_config

logger = logging.getLogger(__name__)


def to_websocket_url(url: str) -> str:
    """Normalise a webhook URL to ws:// or wss://."""
    if url.startswith("http://"):
        return "ws://" + url[len("http://"):]
    if url.startswith("https://"):
        return "wss://" + url[len("https://"):]
    if not url.startswith(("ws://", "wss://")):
        return f"ws://{url}"
    return url


class MeetingBaasClient:
    """
    Bot Manager API client.

    Usage:
        client = MeetingBaasClient()
        bot_id = await client.create_bot(meeting_url, "Relay Bot", webhook_url)
        ...
        await client.remove_bot(bot_id)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_config()
        self.api_key = api_key if api_key is not None else settings.meeting_baas_api_key
        self.api_url = (api_url or settings.meeting_baas_api_url).rstrip("/")
        self._client = client

        if not self.api_key:
            logger.error("MeetingBaas API key not found. Please set MEETING_BAAS_API_KEY in .env")
        logger.info(f"Initialized with API URL: {self.api_url}")

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=30.0)
        return self._client

    def _headers(self) -> dict:
        return {"x-meeting-baas-api-key": self.api_key}

    async def create_bot(
        self,
        meeting_url: str,
        bot_name: str,
        webhook_url: Optional[str] = None,
    ) -> Optional[str]:
        """
        Send a bot into a meeting.

        Args:
            meeting_url: URL of the meeting to join
            bot_name: Display name of the bot
            webhook_url: Where the bot streams audio (converted to ws/wss)

        Returns:
            The bot id, or None on failure
        """
        if not self.api_key:
            return None

        ws_webhook_url = to_websocket_url(webhook_url) if webhook_url else None
        payload = {
            "bot_name": bot_name,
            "meeting_url": meeting_url,
            "reserved": False,
            "deduplication_key": bot_name,
            "webhook_url": ws_webhook_url,
            "streaming": {
                "output": ws_webhook_url,
                "format": "wav",
                "sample_rate": 16000,
                "channels": 1,
            },
        }

        logger.info(f"Connecting to meeting: {meeting_url}")
        try:
            client = await self._get_client()
            response = await client.post(
                f"{self.api_url}/bots",
                json=payload,
                headers=self._headers(),
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"API Error: {e.response.status_code} - {e.response.text}")
            return None
        except (httpx.RequestError, ValueError) as e:
            logger.error(f"Error connecting to meeting: {e}")
            return None

        bot_id = data.get("bot_id") if isinstance(data, dict) else None
        if not bot_id:
            logger.error(f"No bot_id in response: {data}")
            return None

        logger.info(f"Bot created with ID: {bot_id}")
        return str(bot_id)

    async def remove_bot(self, bot_id: str) -> bool:
        """
        Remove a bot from its meeting.

        Returns:
            True if the API accepted the removal
        """
        if not self.api_key:
            return False

        try:
            client = await self._get_client()
            response = await client.delete(
                f"{self.api_url}/bots/{bot_id}",
                headers=self._headers(),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Error removing bot {bot_id}: {e.response.status_code} - {e.response.text}")
            return False
        except httpx.RequestError as e:
            logger.error(f"Error removing bot {bot_id}: {e}")
            return False

        logger.info(f"Bot {bot_id} successfully removed")
        return True

    async def close(self):
        """Clean up HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
