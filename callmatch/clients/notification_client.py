import logging
from typing import Any, Dict, Optional

import httpx

from callmatch.clients.base_provider_client import BaseProviderClient

logger = logging.getLogger(__name__)


class NotificationClient(BaseProviderClient):
    """Push notification gateway client using httpx.

    Delivery is best-effort: nothing in pairing or session lifecycle depends
    on a notification arriving, so failures are logged and dropped.
    """

    def get_provider_type(self) -> str:
        """Return 'notification'."""
        return "notification"

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    async def notify(
        self, uid: str, event: str, data: Optional[Dict[str, Any]] = None
    ) -> bool:
        """Send one notification. Returns False if it was not delivered."""
        if not self.enabled:
            return False
        payload = {"uid": uid, "event": event, "data": data or {}}
        try:
            await self._post("/notifications", payload)
        except httpx.HTTPError as e:
            logger.warning("Notification %s to %s failed: %s", event, uid, e)
            return False
        return True
