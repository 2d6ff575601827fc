from datetime import timedelta
from typing import Any, Generator, List
from unittest.mock import patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from callmatch.errors import AlreadyPlacedError
from callmatch.models.api.queue import EnqueueRequest
from callmatch.models.db.participant_model import ParticipantModel
from callmatch.models.db.queue_entry_model import QueueEntryModel
from callmatch.models.db.room_model import RoomModel
from callmatch.repositories.base_repository import BaseRepository
from callmatch.repositories.participant_repository import ParticipantRepository
from callmatch.repositories.queue_repository import QueueRepository
from callmatch.repositories.room_repository import RoomRepository
from callmatch.services.pairing_service import PairingService
from callmatch.services.queue_service import QueueService


class TestQueueService:
    """Integration tests for queue admission, cancel and heartbeats."""

    @pytest.fixture
    def service(self, test_db: AsyncSession, clock: Any) -> QueueService:
        return QueueService(test_db, clock=clock)

    @pytest.fixture
    def request_m(self) -> EnqueueRequest:
        return EnqueueRequest(gender="m", want_gender="f", exclusions=["b", "b", "a"])

    @pytest.mark.asyncio
    async def test_enqueue_creates_waiting_entry(
        self,
        service: QueueService,
        test_db: AsyncSession,
        request_m: EnqueueRequest,
        clock: Any,
    ) -> None:
        entry = await service.enqueue("a", request_m)

        assert entry.uid == "a"
        assert entry.status == "waiting"
        assert entry.enqueued_at == clock()
        # Duplicates and self-exclusion are dropped
        assert entry.exclusions == ["b"]
        presence = await test_db.get(ParticipantModel, "a")
        assert presence.match_phase == "idle"
        assert presence.last_heartbeat_at == clock()

    @pytest.mark.asyncio
    async def test_re_enqueue_keeps_fifo_position(
        self, service: QueueService, request_m: EnqueueRequest, clock: Any
    ) -> None:
        first = await service.enqueue("a", request_m)
        clock.advance(40)

        refreshed = await service.enqueue(
            "a", EnqueueRequest(gender="m", want_gender="any")
        )

        assert refreshed.enqueued_at == first.enqueued_at
        assert refreshed.last_heartbeat_at == clock()
        assert refreshed.want_gender == "any"
        assert refreshed.exclusions == []

    @pytest.mark.asyncio
    async def test_re_enqueue_after_error_resets_position(
        self,
        service: QueueService,
        make_entry: Any,
        request_m: EnqueueRequest,
        clock: Any,
    ) -> None:
        await make_entry("a", gender=None, status="error")
        clock.advance(40)

        entry = await service.enqueue("a", request_m)

        assert entry.status == "waiting"
        assert entry.enqueued_at == clock()

    @pytest.mark.asyncio
    async def test_enqueue_rejects_placed_participant(
        self,
        service: QueueService,
        test_db: AsyncSession,
        make_room: Any,
        request_m: EnqueueRequest,
    ) -> None:
        await make_room("a", "z")

        with pytest.raises(AlreadyPlacedError):
            await service.enqueue("a", request_m)

        assert await test_db.get(QueueEntryModel, "a") is None

    @pytest.mark.asyncio
    async def test_cancel_before_pairing_removes_entry(
        self, service: QueueService, test_db: AsyncSession, request_m: EnqueueRequest
    ) -> None:
        await service.enqueue("a", request_m)

        result = await service.cancel("a")

        assert result.removed_queue_entry
        assert result.ended_room_id is None
        assert await test_db.get(QueueEntryModel, "a") is None

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self, service: QueueService) -> None:
        first = await service.cancel("nobody")
        second = await service.cancel("nobody")

        assert not first.removed_queue_entry
        assert not second.removed_queue_entry

    @pytest.mark.asyncio
    async def test_repeated_cancel_leaves_partner_requeue_alone(
        self,
        service: QueueService,
        test_db: AsyncSession,
        clock: Any,
        notifier: Any,
    ) -> None:
        await service.enqueue("a", EnqueueRequest(gender="m", want_gender="f"))
        clock.advance(1)
        await service.enqueue("b", EnqueueRequest(gender="f", want_gender="m"))
        paired = await PairingService(test_db, clock=clock, notifier=notifier).try_pair()
        assert paired.users == ["a", "b"]

        first = await service.cancel("a")
        clock.advance(5)
        requeued = await service.enqueue(
            "b", EnqueueRequest(gender="f", want_gender="any")
        )
        second = await service.cancel("a")

        assert first.ended_room_id == str(paired.room_id)
        assert second.ended_room_id is None
        assert not second.removed_queue_entry
        entry = await service.get_entry("b")
        assert entry == requeued
        presence = await test_db.get(ParticipantModel, "b")
        assert presence.active_room_id is None
        assert presence.last_heartbeat_at == clock()

    @pytest.mark.asyncio
    async def test_cancel_after_pairing_tears_down_room(
        self, service: QueueService, test_db: AsyncSession, make_room: Any
    ) -> None:
        room = await make_room("a", "b")

        result = await service.cancel("a")

        assert result.ended_room_id == str(room.id)
        assert await test_db.get(RoomModel, room.id) is None
        for uid in ("a", "b"):
            presence = await test_db.get(ParticipantModel, uid)
            assert presence.active_room_id is None
            assert presence.match_phase == "idle"

        again = await service.cancel("a")
        assert again.ended_room_id is None

    @pytest.mark.asyncio
    async def test_cancel_heals_dangling_pointer(
        self, service: QueueService, test_db: AsyncSession, make_room: Any
    ) -> None:
        room = await make_room("a", "b")
        await test_db.delete(room)
        await test_db.commit()

        result = await service.cancel("a")

        assert result.ended_room_id is None
        presence = await test_db.get(ParticipantModel, "a")
        assert presence.active_room_id is None
        assert presence.match_phase == "idle"

    @pytest.mark.asyncio
    async def test_heartbeat_refreshes_room_when_placed(
        self, service: QueueService, make_room: Any, clock: Any
    ) -> None:
        room = await make_room("a", "b")
        clock.advance(15)

        result = await service.heartbeat("b")

        assert result.target == "room"
        assert result.room_id == str(room.id)
        assert room.heartbeat_of("b") == clock()
        assert room.heartbeat_of("a") == clock() - timedelta(seconds=15)

    @pytest.mark.asyncio
    async def test_heartbeat_refreshes_queue_entry_when_waiting(
        self,
        service: QueueService,
        request_m: EnqueueRequest,
        clock: Any,
    ) -> None:
        await service.enqueue("a", request_m)
        clock.advance(50)

        result = await service.heartbeat("a")
        entry = await service.get_entry("a")

        assert result.target == "queue"
        assert entry.last_heartbeat_at == clock()
        assert entry.enqueued_at == clock() - timedelta(seconds=50)

    @pytest.mark.asyncio
    async def test_heartbeat_without_any_record(self, service: QueueService) -> None:
        result = await service.heartbeat("ghost")

        assert result.target == "none"
        assert result.room_id is None

    @pytest.mark.asyncio
    async def test_presence_defaults_to_idle(self, service: QueueService) -> None:
        presence = await service.get_presence("new")

        assert presence.uid == "new"
        assert presence.active_room_id is None
        assert presence.match_phase == "idle"


class TestRowLockOrder:
    """Participant-scoped writes lock the queue entry before the presence row,
    the order pairing uses, so the two never wait on each other in a cycle."""

    @pytest.fixture
    def lock_log(self) -> Generator[List[str], Any, None]:
        log: List[str] = []

        def recording(name: str) -> Any:
            async def get(self: Any, key: Any, for_update: bool = False) -> Any:
                if for_update:
                    log.append(name)
                return await BaseRepository.get(self, key, for_update=for_update)

            return get

        with patch.object(QueueRepository, "get", recording("queue")), patch.object(
            ParticipantRepository, "get", recording("presence")
        ), patch.object(RoomRepository, "get", recording("room")):
            yield log

    @pytest.fixture
    def service(self, test_db: AsyncSession, clock: Any) -> QueueService:
        return QueueService(test_db, clock=clock)

    @pytest.mark.asyncio
    async def test_enqueue(self, service: QueueService, lock_log: List[str]) -> None:
        await service.enqueue("a", EnqueueRequest(gender="m", want_gender="any"))

        assert lock_log == ["queue", "presence"]

    @pytest.mark.asyncio
    async def test_cancel_while_waiting(
        self, service: QueueService, make_entry: Any, lock_log: List[str]
    ) -> None:
        await make_entry("a")

        await service.cancel("a")

        assert lock_log == ["queue", "presence"]

    @pytest.mark.asyncio
    async def test_cancel_while_placed_locks_room_first_after_backing_off(
        self, service: QueueService, make_room: Any, lock_log: List[str]
    ) -> None:
        await make_room("a", "b")

        await service.cancel("a")

        # Participant locks are released before the room-first teardown
        assert lock_log == [
            "queue",
            "presence",
            "room",
            "queue",
            "presence",
            "queue",
            "presence",
        ]

    @pytest.mark.asyncio
    async def test_heartbeat_while_waiting(
        self, service: QueueService, make_entry: Any, lock_log: List[str]
    ) -> None:
        await make_entry("a")

        await service.heartbeat("a")

        assert lock_log == ["queue", "presence"]
