# Export all models
from .api import (
    BlockRequest,
    BlockResponse,
    CallSessionResponse,
    EnqueueRequest,
    ExtendSessionRequest,
    PresenceResponse,
    QueueEntryResponse,
    RoomResponse,
)
from .db import (
    BlockModel,
    CallSessionModel,
    ParticipantModel,
    QueueEntryModel,
    RoomModel,
)

__all__ = [
    # API models
    "BlockRequest",
    "BlockResponse",
    "CallSessionResponse",
    "EnqueueRequest",
    "ExtendSessionRequest",
    "PresenceResponse",
    "QueueEntryResponse",
    "RoomResponse",
    # DB models
    "BlockModel",
    "CallSessionModel",
    "ParticipantModel",
    "QueueEntryModel",
    "RoomModel",
]
