# Repository classes for database operations
from .base_repository import BaseRepository
from .block_repository import BlockRepository
from .call_session_repository import CallSessionRepository
from .participant_repository import ParticipantRepository
from .queue_repository import QueueRepository
from .room_repository import RoomRepository

__all__ = [
    "BaseRepository",
    "BlockRepository",
    "CallSessionRepository",
    "ParticipantRepository",
    "QueueRepository",
    "RoomRepository",
]
