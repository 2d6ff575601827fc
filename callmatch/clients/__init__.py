from callmatch.config import (
    NOTIFICATION_API_KEY,
    NOTIFICATION_SERVICE_URL,
    VOICE_TOKEN_API_KEY,
    VOICE_TOKEN_ISSUER_URL,
)

from .base_provider_client import BaseProviderClient
from .notification_client import NotificationClient
from .voice_token_client import VoiceTokenClient


def get_notification_client() -> NotificationClient:
    return NotificationClient(
        base_url=NOTIFICATION_SERVICE_URL, api_key=NOTIFICATION_API_KEY
    )


def get_voice_token_client() -> VoiceTokenClient:
    return VoiceTokenClient(base_url=VOICE_TOKEN_ISSUER_URL, api_key=VOICE_TOKEN_API_KEY)


__all__ = [
    "BaseProviderClient",
    "NotificationClient",
    "VoiceTokenClient",
    "get_notification_client",
    "get_voice_token_client",
]
