"""Expo push notifications for settled signals."""

from __future__ import annotations

import logging

from signal_settler.common.http import HttpClient
from signal_settler.config import get_settings

logger = logging.getLogger(__name__)

_SEND_PATH = "/--/api/v2/push/send"


class PushNotifier:
    """Send push notifications to device tokens via the Expo push service.

    All errors are logged but never raised. A failed notification must not
    undo or block a settlement that is already stored.
    """

    def __init__(
        self,
        access_token: str | None = None,
        base_url: str | None = None,
        enabled: bool | None = None,
        client: HttpClient | None = None,
    ) -> None:
        settings = get_settings()
        self._access_token = access_token or settings.push_access_token
        self._base_url = base_url or settings.push_api_url
        self._enabled = settings.push_enabled if enabled is None else enabled
        self._client = client

    async def _get_client(self) -> HttpClient:
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self._access_token:
                headers["Authorization"] = f"Bearer {self._access_token}"
            self._client = HttpClient(base_url=self._base_url, headers=headers)
        return self._client

    async def send(
        self,
        token: str,
        title: str,
        body: str,
        data: dict[str, str] | None = None,
    ) -> bool:
        """Send one notification.

        Returns True if the push service accepted it, False otherwise.
        """
        if not self._enabled:
            logger.debug("Push notifications disabled, skipping message")
            return False
        if not token:
            logger.info("No push token, skipping message")
            return False

        try:
            client = await self._get_client()
            resp = await client.post(
                _SEND_PATH,
                json={
                    "to": token,
                    "title": title,
                    "body": body,
                    "data": data or {},
                    "sound": "default",
                },
            )
            ticket = resp.json().get("data", {})
        except Exception:
            logger.warning("Failed to send push notification", exc_info=True)
            return False

        if isinstance(ticket, list):
            ticket = ticket[0] if ticket else {}
        if not isinstance(ticket, dict):
            ticket = {}
        if ticket.get("status") != "ok":
            details = ticket.get("details") or {}
            logger.warning(
                "Push service rejected notification: %s (%s)",
                ticket.get("message", "no message"),
                details.get("error", "unknown"),
            )
            return False
        return True

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
