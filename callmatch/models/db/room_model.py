import uuid
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import CheckConstraint, Column, String, Uuid

from callmatch.clock import utcnow
from callmatch.database import Base, UTCDateTime


class RoomModel(Base):
    """SQLAlchemy model for rooms table."""

    __tablename__ = "rooms"
    __table_args__ = (CheckConstraint("user1 <> user2", name="ck_rooms_distinct_users"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user1 = Column(String(128), nullable=False, index=True)
    user2 = Column(String(128), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="pending")
    created_at = Column(UTCDateTime, default=utcnow)
    user1_heartbeat_at = Column(UTCDateTime)
    user2_heartbeat_at = Column(UTCDateTime)

    # Constraints (enforced by database CHECK constraints in migrations)
    # status IN ('pending', 'active', 'ended')

    @property
    def users(self) -> List[str]:
        return [self.user1, self.user2]

    def has_member(self, uid: str) -> bool:
        return uid in (self.user1, self.user2)

    def heartbeat_of(self, uid: str) -> Optional[datetime]:
        if uid == self.user1:
            return self.user1_heartbeat_at
        if uid == self.user2:
            return self.user2_heartbeat_at
        return None

    def touch_heartbeat(self, uid: str, at: datetime) -> None:
        if uid == self.user1:
            self.user1_heartbeat_at = at
        elif uid == self.user2:
            self.user2_heartbeat_at = at

    @property
    def heartbeat(self) -> Dict[str, Optional[datetime]]:
        return {self.user1: self.user1_heartbeat_at, self.user2: self.user2_heartbeat_at}
