"""Environment configuration and matching policy."""

import os
from dataclasses import dataclass
from typing import FrozenSet

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


# Service
ENV = os.getenv("ENV")
ENV_IS_PROD = ENV == "prod"
COMMIT_HASH = os.getenv("COMMIT_HASH")
APP_ADDR = os.getenv("HOST", "0.0.0.0")
APP_PORT = int(os.getenv("PORT", "8000"))
AUTO_CREATE_SCHEMA = _env_bool("AUTO_CREATE_SCHEMA", "false")

# Auth
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
OPS_API_KEY = os.getenv("OPS_API_KEY", "")

# Collaborators
VOICE_TOKEN_ISSUER_URL = os.getenv("VOICE_TOKEN_ISSUER_URL", "http://localhost:8003")
VOICE_TOKEN_API_KEY = os.getenv("VOICE_TOKEN_API_KEY", "")
NOTIFICATION_SERVICE_URL = os.getenv("NOTIFICATION_SERVICE_URL", "")
NOTIFICATION_API_KEY = os.getenv("NOTIFICATION_API_KEY", "")

# Sweeps
SWEEP_SCHEDULER_ENABLED = _env_bool("SWEEP_SCHEDULER_ENABLED", "true")


@dataclass(frozen=True)
class MatchingPolicy:
    """Timing and policy constants shared by pairing, lifecycle and sweeps."""

    candidate_pool_size: int = 5
    pairing_max_attempts: int = 3
    pending_timeout_seconds: int = 60
    live_stale_seconds: int = 20
    waiting_timeout_seconds: int = 120
    default_call_seconds: int = 600
    max_minutes_cap: int = 60
    allowed_extension_seconds: FrozenSet[int] = frozenset({420, 600})
    sweep_interval_seconds: int = 60
    voice_token_ttl_seconds: int = 1800


def _parse_increments(raw: str) -> FrozenSet[int]:
    values = frozenset(int(part) for part in raw.split(",") if part.strip())
    if not values or any(value <= 0 for value in values):
        raise ValueError("ALLOWED_EXTENSION_SECONDS must list positive integers")
    return values


def load_policy() -> MatchingPolicy:
    """Build the policy from environment variables, falling back to defaults."""
    defaults = MatchingPolicy()
    policy = MatchingPolicy(
        candidate_pool_size=int(
            os.getenv("CANDIDATE_POOL_SIZE", defaults.candidate_pool_size)
        ),
        pairing_max_attempts=int(
            os.getenv("PAIRING_MAX_ATTEMPTS", defaults.pairing_max_attempts)
        ),
        pending_timeout_seconds=int(
            os.getenv("PENDING_TIMEOUT_SECONDS", defaults.pending_timeout_seconds)
        ),
        live_stale_seconds=int(
            os.getenv("LIVE_STALE_SECONDS", defaults.live_stale_seconds)
        ),
        waiting_timeout_seconds=int(
            os.getenv("WAITING_TIMEOUT_SECONDS", defaults.waiting_timeout_seconds)
        ),
        default_call_seconds=int(
            os.getenv("DEFAULT_CALL_SECONDS", defaults.default_call_seconds)
        ),
        max_minutes_cap=int(os.getenv("MAX_MINUTES_CAP", defaults.max_minutes_cap)),
        allowed_extension_seconds=_parse_increments(
            os.getenv(
                "ALLOWED_EXTENSION_SECONDS",
                ",".join(str(v) for v in sorted(defaults.allowed_extension_seconds)),
            )
        ),
        sweep_interval_seconds=int(
            os.getenv("SWEEP_INTERVAL_SECONDS", defaults.sweep_interval_seconds)
        ),
        voice_token_ttl_seconds=int(
            os.getenv("VOICE_TOKEN_TTL_SECONDS", defaults.voice_token_ttl_seconds)
        ),
    )
    if policy.candidate_pool_size < 1:
        raise ValueError("CANDIDATE_POOL_SIZE must be at least 1")
    if policy.pairing_max_attempts < 1:
        raise ValueError("PAIRING_MAX_ATTEMPTS must be at least 1")
    return policy


POLICY = load_policy()
