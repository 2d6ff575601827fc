# API models for request/response contracts
from .blocks import BlockRequest, BlockResponse
from .ops import ForceMatchResponse, PairingResultResponse, SweepReportResponse
from .presence import PresenceResponse
from .queue import CancelResponse, EnqueueRequest, HeartbeatResponse, QueueEntryResponse
from .rooms import RoomResponse, VoiceTokenResponse
from .sessions import (
    CallSessionResponse,
    EndSessionResponse,
    ExtendSessionRequest,
    ExtensionRecord,
)

__all__ = [
    "BlockRequest",
    "BlockResponse",
    "CallSessionResponse",
    "CancelResponse",
    "EndSessionResponse",
    "EnqueueRequest",
    "ExtendSessionRequest",
    "ExtensionRecord",
    "ForceMatchResponse",
    "HeartbeatResponse",
    "PairingResultResponse",
    "PresenceResponse",
    "QueueEntryResponse",
    "RoomResponse",
    "SweepReportResponse",
    "VoiceTokenResponse",
]
