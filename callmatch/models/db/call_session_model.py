from sqlalchemy import JSON, Column, Integer, String, Uuid

from callmatch.clock import utcnow
from callmatch.database import Base, UTCDateTime


class CallSessionModel(Base):
    """SQLAlchemy model for call_sessions table.

    The id is shared with the room it times. Members are copied from the room
    so an orphaned session can still unwind presence after the room is gone.
    """

    __tablename__ = "call_sessions"

    id = Column(Uuid(as_uuid=True), primary_key=True)
    user1 = Column(String(128), nullable=False)
    user2 = Column(String(128), nullable=False)
    status = Column(String(20), nullable=False, default="active", index=True)
    started_at = Column(UTCDateTime, nullable=False)
    ends_at = Column(UTCDateTime, nullable=False, index=True)
    max_minutes_cap = Column(Integer, nullable=False)
    extension_history = Column(JSON, default=list)
    created_at = Column(UTCDateTime, default=utcnow)
    ended_at = Column(UTCDateTime)
    end_reason = Column(String(32))

    # Constraints (enforced by database CHECK constraints in migrations)
    # status IN ('active', 'ended')

    @property
    def users(self) -> list:
        return [self.user1, self.user2]
