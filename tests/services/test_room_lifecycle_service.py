import uuid
from datetime import timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from callmatch.config import MatchingPolicy
from callmatch.errors import (
    ExtensionNotAllowedError,
    ExtensionOverCapError,
    NotRoomMemberError,
    RoomNotActiveError,
    RoomNotFoundError,
    SessionNotActiveError,
    SessionNotFoundError,
    VoiceTokenError,
)
from callmatch.models.db.call_session_model import CallSessionModel
from callmatch.models.db.participant_model import ParticipantModel
from callmatch.models.db.queue_entry_model import QueueEntryModel
from callmatch.models.db.room_model import RoomModel
from callmatch.services.room_lifecycle_service import RoomLifecycleService


class TestRoomLifecycleService:
    """Integration tests for entering, extending and ending calls."""

    @pytest.fixture
    def voice_tokens(self) -> MagicMock:
        client = MagicMock()
        client.issue_token = AsyncMock(return_value={"token": "tok-123"})
        client.extract_token = MagicMock(return_value="tok-123")
        return client

    @pytest.fixture
    def service(
        self,
        test_db: AsyncSession,
        policy: MatchingPolicy,
        clock: Any,
        notifier: Any,
        voice_tokens: MagicMock,
    ) -> RoomLifecycleService:
        return RoomLifecycleService(
            test_db,
            policy=policy,
            clock=clock,
            notifier=notifier,
            voice_tokens=voice_tokens,
        )

    @pytest.mark.asyncio
    async def test_enter_activates_room_and_starts_session(
        self, service: RoomLifecycleService, make_room: Any, clock: Any
    ) -> None:
        room = await make_room("x", "y", heartbeats=(None, None))
        clock.advance(5)

        session = await service.enter_room("x", room.id)

        assert session.id == room.id
        assert session.status == "active"
        assert session.started_at == clock()
        assert session.ends_at == clock() + timedelta(seconds=600)
        assert session.max_minutes_cap == 60
        assert session.extension_history == []
        assert room.status == "active"
        assert room.heartbeat_of("x") == clock()
        assert room.heartbeat_of("y") is None

    @pytest.mark.asyncio
    async def test_second_entry_keeps_existing_session(
        self, service: RoomLifecycleService, make_room: Any, clock: Any
    ) -> None:
        room = await make_room("x", "y")
        first = await service.enter_room("x", room.id)
        clock.advance(30)

        second = await service.enter_room("y", room.id)

        assert second.started_at == first.started_at
        assert second.ends_at == first.ends_at
        assert room.heartbeat_of("y") == clock()

    @pytest.mark.asyncio
    async def test_enter_rejects_non_member(
        self, service: RoomLifecycleService, make_room: Any, test_db: AsyncSession
    ) -> None:
        room = await make_room("x", "y")

        with pytest.raises(NotRoomMemberError):
            await service.enter_room("intruder", room.id)

        assert await test_db.get(CallSessionModel, room.id) is None

    @pytest.mark.asyncio
    async def test_enter_missing_room(self, service: RoomLifecycleService) -> None:
        with pytest.raises(RoomNotFoundError):
            await service.enter_room("x", uuid.uuid4())

    @pytest.mark.asyncio
    async def test_extend_near_deadline_adds_to_deadline(
        self, service: RoomLifecycleService, make_room: Any, clock: Any
    ) -> None:
        room = await make_room("x", "y")
        session = await service.enter_room("x", room.id)
        deadline = session.ends_at
        clock.now = deadline - timedelta(seconds=30)

        extended = await service.extend_session("y", room.id, 420)

        assert extended.ends_at == deadline + timedelta(seconds=420)
        assert len(extended.extension_history) == 1
        record = extended.extension_history[0]
        assert record.actor == "y"
        assert record.seconds == 420
        assert record.at == clock()

    @pytest.mark.asyncio
    async def test_extend_after_deadline_counts_from_now(
        self, service: RoomLifecycleService, make_room: Any, clock: Any
    ) -> None:
        room = await make_room("x", "y")
        session = await service.enter_room("x", room.id)
        clock.now = session.ends_at + timedelta(seconds=10)

        extended = await service.extend_session("x", room.id, 600)

        assert extended.ends_at == clock() + timedelta(seconds=600)

    @pytest.mark.asyncio
    async def test_extend_rejects_increment_outside_allowed_set(
        self, service: RoomLifecycleService, make_room: Any
    ) -> None:
        room = await make_room("x", "y")
        session = await service.enter_room("x", room.id)

        with pytest.raises(ExtensionNotAllowedError):
            await service.extend_session("x", room.id, 300)

        reloaded = await service.session_repo.get(room.id)
        assert reloaded.ends_at == session.ends_at
        assert reloaded.extension_history == []

    @pytest.mark.asyncio
    async def test_extend_rejects_past_cap(
        self, service: RoomLifecycleService, make_room: Any
    ) -> None:
        """600s base plus 600s steps reaches exactly 60 minutes; one more fails."""
        room = await make_room("x", "y")
        await service.enter_room("x", room.id)
        for _ in range(5):
            await service.extend_session("x", room.id, 600)

        session = await service.session_repo.get(room.id)
        assert session.ends_at == session.started_at + timedelta(minutes=60)

        with pytest.raises(ExtensionOverCapError):
            await service.extend_session("y", room.id, 420)

        reloaded = await service.session_repo.get(room.id)
        assert reloaded.ends_at == session.started_at + timedelta(minutes=60)
        assert len(reloaded.extension_history) == 5

    @pytest.mark.asyncio
    async def test_extend_rejects_non_member(
        self, service: RoomLifecycleService, make_room: Any
    ) -> None:
        room = await make_room("x", "y")
        await service.enter_room("x", room.id)

        with pytest.raises(NotRoomMemberError):
            await service.extend_session("intruder", room.id, 420)

    @pytest.mark.asyncio
    async def test_extend_without_session(
        self, service: RoomLifecycleService, make_room: Any
    ) -> None:
        room = await make_room("x", "y")

        with pytest.raises(SessionNotFoundError):
            await service.extend_session("x", room.id, 420)

    @pytest.mark.asyncio
    async def test_extend_ended_session(
        self, service: RoomLifecycleService, make_room: Any
    ) -> None:
        room = await make_room("x", "y")
        await service.enter_room("x", room.id)
        await service.end_session("x", room.id)

        with pytest.raises(SessionNotActiveError):
            await service.extend_session("x", room.id, 420)

    @pytest.mark.asyncio
    async def test_end_releases_both_members(
        self,
        service: RoomLifecycleService,
        test_db: AsyncSession,
        make_room: Any,
        clock: Any,
        notifier: Any,
    ) -> None:
        room = await make_room("x", "y")
        await service.enter_room("x", room.id)
        clock.advance(90)

        result = await service.end_session("x", room.id)

        assert result.room_removed
        assert result.session_ended
        assert sorted(result.released) == ["x", "y"]
        assert await test_db.get(RoomModel, room.id) is None
        session = await test_db.get(CallSessionModel, room.id)
        assert session.status == "ended"
        assert session.ended_at == clock()
        assert session.end_reason == "ended_by_user"
        for uid in ("x", "y"):
            presence = await test_db.get(ParticipantModel, uid)
            assert presence.active_room_id is None
            assert presence.match_phase == "idle"
        notifier.notify.assert_awaited_once_with(
            "y", "session_ended", {"room_id": str(room.id)}
        )

    @pytest.mark.asyncio
    async def test_both_members_ending_converge(
        self, service: RoomLifecycleService, test_db: AsyncSession, make_room: Any
    ) -> None:
        room = await make_room("x", "y")
        await service.enter_room("x", room.id)

        first = await service.end_session("x", room.id)
        second = await service.end_session("y", room.id)

        assert first.room_removed and first.session_ended
        assert not second.room_removed
        assert not second.session_ended
        assert second.released == []
        assert (await test_db.execute(select(RoomModel))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_end_unknown_room_is_a_no_op(
        self, service: RoomLifecycleService
    ) -> None:
        result = await service.end_session("x", uuid.uuid4())

        assert not result.room_removed
        assert not result.session_ended
        assert result.released == []

    @pytest.mark.asyncio
    async def test_end_rejects_non_member(
        self, service: RoomLifecycleService, test_db: AsyncSession, make_room: Any
    ) -> None:
        room = await make_room("x", "y")

        with pytest.raises(NotRoomMemberError):
            await service.end_session("intruder", room.id)

        assert await test_db.get(RoomModel, room.id) is not None

    @pytest.mark.asyncio
    async def test_end_pending_room_without_session(
        self, service: RoomLifecycleService, test_db: AsyncSession, make_room: Any
    ) -> None:
        room = await make_room("x", "y")
        test_db.add(
            QueueEntryModel(
                uid="x",
                gender="m",
                want_gender="any",
                enqueued_at=room.created_at,
                last_heartbeat_at=room.created_at,
            )
        )
        await test_db.commit()

        result = await service.end_session("y", room.id)

        assert result.room_removed
        assert not result.session_ended
        assert await test_db.get(QueueEntryModel, "x") is None

    @pytest.mark.asyncio
    async def test_get_room_includes_session_once_started(
        self, service: RoomLifecycleService, make_room: Any
    ) -> None:
        room = await make_room("x", "y")
        snapshot, session = await service.get_room("x", room.id)
        assert snapshot.status == "pending"
        assert session is None

        await service.enter_room("y", room.id)
        snapshot, session = await service.get_room("x", room.id)

        assert snapshot.status == "active"
        assert session is not None
        assert set(snapshot.heartbeat) == {"x", "y"}

    @pytest.mark.asyncio
    async def test_get_room_guards(
        self, service: RoomLifecycleService, make_room: Any
    ) -> None:
        room = await make_room("x", "y")

        with pytest.raises(NotRoomMemberError):
            await service.get_room("intruder", room.id)
        with pytest.raises(RoomNotFoundError):
            await service.get_room("x", uuid.uuid4())

    @pytest.mark.asyncio
    async def test_voice_token_for_active_room(
        self, service: RoomLifecycleService, make_room: Any, voice_tokens: MagicMock
    ) -> None:
        room = await make_room("x", "y", status="active")

        token = await service.issue_voice_token("x", room.id)

        assert token.token == "tok-123"
        assert token.channel == str(room.id)
        assert token.expire_seconds == 1800
        voice_tokens.issue_token.assert_awaited_once_with(
            channel=str(room.id), uid="x", expire_seconds=1800
        )

    @pytest.mark.asyncio
    async def test_voice_token_requires_active_room(
        self, service: RoomLifecycleService, make_room: Any
    ) -> None:
        room = await make_room("x", "y")

        with pytest.raises(RoomNotActiveError):
            await service.issue_voice_token("x", room.id)

    @pytest.mark.asyncio
    async def test_voice_token_issuer_failure(
        self, service: RoomLifecycleService, make_room: Any, voice_tokens: MagicMock
    ) -> None:
        room = await make_room("x", "y", status="active")
        voice_tokens.issue_token.side_effect = httpx.ConnectError("refused")

        with pytest.raises(VoiceTokenError):
            await service.issue_voice_token("x", room.id)
