from sqlalchemy import Column, String, Uuid

from callmatch.clock import utcnow
from callmatch.database import Base, UTCDateTime


class ParticipantModel(Base):
    """SQLAlchemy model for participants table (presence subset of the profile)."""

    __tablename__ = "participants"

    uid = Column(String(128), primary_key=True)
    # Not a foreign key: a dangling pointer must be representable so sweeps can heal it
    active_room_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    match_phase = Column(String(10), nullable=False, default="idle")
    last_heartbeat_at = Column(UTCDateTime)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    # Constraints (enforced by database CHECK constraints in migrations)
    # match_phase IN ('idle', 'matched')
