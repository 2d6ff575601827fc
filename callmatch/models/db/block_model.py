from sqlalchemy import JSON, Column, String, Text

from callmatch.clock import utcnow
from callmatch.database import Base, UTCDateTime

DEFAULT_EFFECT_SCOPES = ["match", "message", "call"]


class BlockModel(Base):
    """SQLAlchemy model for blocks table (directional: blocker -> blocked)."""

    __tablename__ = "blocks"

    blocker_uid = Column(String(128), primary_key=True)
    blocked_uid = Column(String(128), primary_key=True, index=True)
    status = Column(String(20), nullable=False, default="active")
    reason_code = Column(String(64))
    note = Column(Text, default="")
    source = Column(String(32), default="call")
    effect_scopes = Column(JSON, default=lambda: list(DEFAULT_EFFECT_SCOPES))
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    # Constraints (enforced by database CHECK constraints in migrations)
    # status IN ('active', 'inactive')
