# SQLAlchemy database models
from .block_model import BlockModel
from .call_session_model import CallSessionModel
from .participant_model import ParticipantModel
from .queue_entry_model import QueueEntryModel
from .room_model import RoomModel

__all__ = [
    "BlockModel",
    "CallSessionModel",
    "ParticipantModel",
    "QueueEntryModel",
    "RoomModel",
]
