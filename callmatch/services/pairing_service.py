import logging
import uuid
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from callmatch.clients import NotificationClient, get_notification_client
from callmatch.clock import Clock, utcnow
from callmatch.config import POLICY, MatchingPolicy
from callmatch.database import AsyncSessionLocal
from callmatch.models.db.queue_entry_model import QueueEntryModel
from callmatch.models.db.room_model import RoomModel
from callmatch.repositories.block_repository import BlockRepository
from callmatch.repositories.participant_repository import ParticipantRepository
from callmatch.repositories.queue_repository import QueueRepository
from callmatch.repositories.room_repository import RoomRepository

logger = logging.getLogger(__name__)

PAIRED = "paired"
EMPTY = "empty"
INVALID_ENTRY = "invalid_entry"
NO_CANDIDATE = "no_candidate"
ALREADY_PLACED = "already_placed"


@dataclass
class PairingResult:
    """Outcome of one pairing attempt. Anything but PAIRED is a no-op."""

    outcome: str
    room_id: Optional[uuid.UUID] = None
    users: List[str] = field(default_factory=list)

    @property
    def paired(self) -> bool:
        return self.outcome == PAIRED


class PairingService:
    """Service that turns two compatible queue entries into one room."""

    def __init__(
        self,
        db: AsyncSession,
        policy: MatchingPolicy = POLICY,
        clock: Clock = utcnow,
        notifier: Optional[NotificationClient] = None,
    ):
        self.db = db
        self.policy = policy
        self.clock = clock
        self.notifier = notifier or get_notification_client()
        self.queue_repo = QueueRepository(db)
        self.block_repo = BlockRepository(db)
        self.participant_repo = ParticipantRepository(db)
        self.room_repo = RoomRepository(db)

    async def try_pair(self) -> PairingResult:
        """
        Run the pairing transaction once:
        1. Lock the oldest waiting entry (A)
        2. Lock a bounded pool of gender-compatible waiting entries
        3. Pick the first candidate (B) not excluded or blocked either way
        4. Re-check that neither A nor B is already placed
        5. Create the room, point both presences at it, delete both entries

        Conflicting concurrent writes roll the attempt back and re-execute it;
        callers see the transaction either fully applied or not at all.
        """
        attempts = self.policy.pairing_max_attempts
        for attempt in range(1, attempts + 1):
            try:
                result = await self._pair_once()
                await self.db.commit()
            except (IntegrityError, OperationalError) as e:
                await self.db.rollback()
                if attempt == attempts:
                    logger.warning(
                        "Pairing gave up after %d conflicting attempts: %s",
                        attempts,
                        e,
                    )
                    raise
                logger.info("Pairing attempt %d conflicted, retrying", attempt)
                continue
            except Exception:
                await self.db.rollback()
                raise

            if result.paired:
                logger.info("Paired %s into room %s", result.users, result.room_id)
                await self._notify_matched(result)
            else:
                logger.debug("Pairing no-op: %s", result.outcome)
            return result

        # Unreachable: the loop either returns or raises on the last attempt
        raise RuntimeError("pairing retry loop exhausted")

    async def drain(self, max_rounds: int = 1) -> List[PairingResult]:
        """Repeat the transaction until it stops pairing or `max_rounds` is hit."""
        results = []
        for _ in range(max_rounds):
            result = await self.try_pair()
            results.append(result)
            if not result.paired:
                break
        return results

    async def _pair_once(self) -> PairingResult:
        # Step 1: longest-waiting candidate
        entry_a = await self.queue_repo.oldest_waiting()
        if entry_a is None:
            return PairingResult(outcome=EMPTY)

        # Step 2: a malformed entry must not block the head of the queue
        if not entry_a.gender or not entry_a.want_gender:
            entry_a.status = "error"
            logger.warning("Queue entry %s is missing gender fields", entry_a.uid)
            return PairingResult(outcome=INVALID_ENTRY, users=[entry_a.uid])

        # Step 3: bounded, FIFO, gender-compatible pool
        pool = await self.queue_repo.compatible_candidates(
            entry_a, limit=self.policy.candidate_pool_size
        )
        if not pool:
            return PairingResult(outcome=NO_CANDIDATE, users=[entry_a.uid])

        # Step 4: first candidate passing the exclusion and block filters
        entry_b = await self._first_eligible(entry_a, pool)
        if entry_b is None:
            return PairingResult(outcome=NO_CANDIDATE, users=[entry_a.uid])

        # Step 5: neither side may already be placed
        presence_a = await self.participant_repo.get_or_create(
            entry_a.uid, for_update=True
        )
        presence_b = await self.participant_repo.get_or_create(
            entry_b.uid, for_update=True
        )
        if presence_a.active_room_id is not None or presence_b.active_room_id is not None:
            return PairingResult(
                outcome=ALREADY_PLACED, users=[entry_a.uid, entry_b.uid]
            )

        # Step 6: lock, create room, place both, consume both entries
        now = self.clock()
        entry_a.status = "locking"
        entry_b.status = "locking"

        room = self.room_repo.add(
            RoomModel(
                id=uuid.uuid4(),
                user1=entry_a.uid,
                user2=entry_b.uid,
                status="pending",
                created_at=now,
                user1_heartbeat_at=now,
                user2_heartbeat_at=now,
            )
        )

        for presence in (presence_a, presence_b):
            presence.active_room_id = room.id
            presence.match_phase = "matched"

        await self.db.flush()
        await self.db.delete(entry_a)
        await self.db.delete(entry_b)
        await self.db.flush()

        return PairingResult(
            outcome=PAIRED, room_id=room.id, users=[entry_a.uid, entry_b.uid]
        )

    async def _first_eligible(
        self, entry_a: QueueEntryModel, pool: List[QueueEntryModel]
    ) -> Optional[QueueEntryModel]:
        blocked = await self.block_repo.blocked_counterparts(
            entry_a.uid, [candidate.uid for candidate in pool]
        )
        a_exclusions = set(entry_a.exclusions or [])

        for candidate in pool:
            if candidate.uid == entry_a.uid:
                continue
            if candidate.uid in a_exclusions:
                continue
            if entry_a.uid in set(candidate.exclusions or []):
                continue
            if candidate.uid in blocked:
                continue
            return candidate
        return None

    async def _notify_matched(self, result: PairingResult) -> None:
        for uid in result.users:
            partner = [other for other in result.users if other != uid]
            await self.notifier.notify(
                uid,
                "matched",
                {"room_id": str(result.room_id), "partner_uid": partner[0]},
            )


async def trigger_pairing(
    session_factory: Optional[async_sessionmaker] = None, max_rounds: int = 1
) -> List[PairingResult]:
    """Event trigger entry point: run pairing in a fresh session.

    Used from request background tasks, where the request's own session is
    already closed. Failures are logged, never raised: the next trigger
    retries.
    """
    factory = session_factory or AsyncSessionLocal
    async with factory() as session:
        try:
            return await PairingService(session).drain(max_rounds=max_rounds)
        except Exception as e:
            logger.error("Triggered pairing failed: %s", e, exc_info=True)
            return []
