from typing import Any, Dict

from callmatch.clients.base_provider_client import BaseProviderClient


class VoiceTokenClient(BaseProviderClient):
    """Voice transport token issuer client using httpx.

    The issuer is opaque to this service: it receives a channel name (the
    room id) and a participant uid and hands back a join token.
    """

    def get_provider_type(self) -> str:
        """Return 'voice_token'."""
        return "voice_token"

    async def issue_token(
        self, channel: str, uid: str, expire_seconds: int
    ) -> Dict[str, Any]:
        """Request a publisher token for `uid` on `channel`."""
        payload = {
            "channel": channel,
            "uid": uid,
            "role": "publisher",
            "expire_seconds": expire_seconds,
        }
        return await self._post("/tokens", payload)

    def extract_token(self, response_data: Dict[str, Any]) -> str:
        """Extract the token string from the issuer response."""
        token = response_data.get("token")
        if not token:
            raise ValueError("Voice token issuer returned no token")
        return str(token)
