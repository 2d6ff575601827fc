from abc import ABC, abstractmethod
from typing import Any, Dict

import httpx


class BaseProviderClient(ABC):
    """Abstract base class for external collaborator services."""

    def __init__(self, base_url: str, api_key: str, timeout: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    @abstractmethod
    def get_provider_type(self) -> str:
        """Return provider type: 'voice_token' or 'notification'."""

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST a JSON payload and return the decoded response body.

        Raises:
            httpx.HTTPError: on transport failures and non-2xx responses.
        """
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                f"{self.base_url}{path}", json=payload, headers=self._headers()
            )
            response.raise_for_status()
            data: Dict[str, Any] = response.json() if response.content else {}

            return data
