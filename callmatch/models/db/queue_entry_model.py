from sqlalchemy import JSON, Column, String

from callmatch.clock import utcnow
from callmatch.database import Base, UTCDateTime


class QueueEntryModel(Base):
    """SQLAlchemy model for queue_entries table."""

    __tablename__ = "queue_entries"

    # One entry per participant: the uid is the natural key
    uid = Column(String(128), primary_key=True)
    status = Column(String(20), nullable=False, default="waiting")
    gender = Column(String(32))
    want_gender = Column(String(32))
    exclusions = Column(JSON, default=list)
    enqueued_at = Column(UTCDateTime, nullable=False, index=True)
    last_heartbeat_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    # Constraints (enforced by database CHECK constraints in migrations)
    # status IN ('waiting', 'locking', 'error')
