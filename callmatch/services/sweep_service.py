"""Reconciliation sweeps.

Heartbeats are the only liveness signal, so these jobs are what eventually
frees participants whose clients vanished. Every sweep is idempotent and
handles each entity in its own short transaction so it can run alongside
live traffic and alongside itself.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from callmatch.clock import Clock, utcnow
from callmatch.config import POLICY, MatchingPolicy
from callmatch.models.db.room_model import RoomModel
from callmatch.repositories.call_session_repository import CallSessionRepository
from callmatch.repositories.participant_repository import ParticipantRepository
from callmatch.repositories.queue_repository import QueueRepository
from callmatch.repositories.room_repository import RoomRepository
from callmatch.services.room_teardown import RoomTeardown

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    stale_rooms_removed: int = 0
    dangling_presence_healed: int = 0
    stale_queue_entries_removed: int = 0
    expired_sessions_ended: int = 0
    errors: int = 0

    def merge(self, other: "SweepReport") -> "SweepReport":
        return SweepReport(
            **{key: value + getattr(other, key) for key, value in asdict(self).items()}
        )


def room_is_stale(room: RoomModel, now: datetime, policy: MatchingPolicy) -> bool:
    """
    Staleness rules:
    - pending: a member never heartbeated, or the oldest heartbeat is past
      the pending timeout
    - active: every member is past the live-staleness threshold (one silent
      side is tolerated as transient network loss)
    """
    beats = [room.heartbeat_of(uid) for uid in room.users]

    if room.status == "pending":
        if any(beat is None for beat in beats):
            return True
        cutoff = now - timedelta(seconds=policy.pending_timeout_seconds)
        return min(beats) < cutoff

    if room.status == "active":
        cutoff = now - timedelta(seconds=policy.live_stale_seconds)
        return all(beat is None or beat < cutoff for beat in beats)

    # An 'ended' row should already have been deleted
    return True


class SweepService:
    """Service running the stale-room, stale-queue and session-expiry sweeps."""

    def __init__(
        self, db: AsyncSession, policy: MatchingPolicy = POLICY, clock: Clock = utcnow
    ):
        self.db = db
        self.policy = policy
        self.clock = clock
        self.room_repo = RoomRepository(db)
        self.session_repo = CallSessionRepository(db)
        self.participant_repo = ParticipantRepository(db)
        self.queue_repo = QueueRepository(db)
        self.teardown = RoomTeardown(db)

    async def run_all(self) -> SweepReport:
        report = SweepReport()
        report = report.merge(await self.sweep_stale_rooms())
        report = report.merge(await self.sweep_stale_queue())
        report = report.merge(await self.sweep_expired_sessions())
        logger.info("Sweep finished: %s", asdict(report))
        return report

    async def sweep_stale_rooms(self) -> SweepReport:
        """Tear down abandoned rooms, then heal presence pointers to missing rooms."""
        report = SweepReport()

        room_ids = await self.room_repo.list_ids()
        await self.db.rollback()
        for room_id in room_ids:
            removed = await self._expire_room_if_stale(room_id, report)
            if removed:
                report.stale_rooms_removed += 1

        uids = await self.participant_repo.dangling_uids()
        await self.db.rollback()
        for uid in uids:
            healed = await self._heal_dangling(uid, report)
            if healed:
                report.dangling_presence_healed += 1

        return report

    async def sweep_stale_queue(self) -> SweepReport:
        """Delete queue entries whose owner stopped heartbeating."""
        report = SweepReport()
        cutoff = self.clock() - timedelta(seconds=self.policy.waiting_timeout_seconds)
        try:
            uids = await self.queue_repo.delete_stale(cutoff)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error("Stale queue sweep failed: %s", e, exc_info=True)
            report.errors += 1
            return report

        if uids:
            logger.info("Removed %d ghost queue entries: %s", len(uids), uids)
        report.stale_queue_entries_removed = len(uids)
        return report

    async def sweep_expired_sessions(self) -> SweepReport:
        """End sessions past their deadline, whether or not their room survives."""
        report = SweepReport()

        session_ids = await self.session_repo.expired_active_ids(self.clock())
        await self.db.rollback()
        for session_id in session_ids:
            try:
                room, call_session = await self.teardown.load(session_id)
                now = self.clock()
                if (
                    call_session is None
                    or call_session.status != "active"
                    or call_session.ends_at > now
                ):
                    # Ended or extended since the scan
                    await self.db.rollback()
                    continue
                await self.teardown.teardown(
                    session_id,
                    reason="expired",
                    now=now,
                    room=room,
                    call_session=call_session,
                    loaded=True,
                )
                await self.db.commit()
                report.expired_sessions_ended += 1
            except Exception as e:
                await self.db.rollback()
                logger.error(
                    "Expiring session %s failed: %s", session_id, e, exc_info=True
                )
                report.errors += 1

        return report

    async def _expire_room_if_stale(self, room_id: UUID, report: SweepReport) -> bool:
        try:
            room, call_session = await self.teardown.load(room_id)
            now = self.clock()
            if room is None or not room_is_stale(room, now, self.policy):
                # Gone, or a heartbeat arrived since the scan
                await self.db.rollback()
                return False
            await self.teardown.teardown(
                room_id,
                reason=f"stale_{room.status}",
                now=now,
                room=room,
                call_session=call_session,
                loaded=True,
            )
            await self.db.commit()
            return True
        except Exception as e:
            await self.db.rollback()
            logger.error("Expiring room %s failed: %s", room_id, e, exc_info=True)
            report.errors += 1
            return False

    async def _heal_dangling(self, uid: str, report: SweepReport) -> bool:
        try:
            presence = await self.participant_repo.get(uid)
            room_id: Optional[UUID] = presence.active_room_id if presence else None
            if room_id is None or await self.room_repo.get(room_id) is not None:
                await self.db.rollback()
                return False
            if not await self.teardown.release(uid, room_id):
                # Moved on since the scan
                await self.db.rollback()
                return False
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error("Healing presence of %s failed: %s", uid, e, exc_info=True)
            report.errors += 1
            return False

        logger.info("Healed dangling room pointer %s for %s", room_id, uid)
        return True
