import logging
from datetime import timedelta
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from callmatch.clients import (
    NotificationClient,
    VoiceTokenClient,
    get_notification_client,
    get_voice_token_client,
)
from callmatch.clock import Clock, utcnow
from callmatch.config import POLICY, MatchingPolicy
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
from callmatch.models.api.rooms import RoomResponse, VoiceTokenResponse
from callmatch.models.api.sessions import CallSessionResponse, EndSessionResponse
from callmatch.models.db.call_session_model import CallSessionModel
from callmatch.repositories.call_session_repository import CallSessionRepository
from callmatch.repositories.room_repository import RoomRepository
from callmatch.services.room_teardown import RoomTeardown, TeardownResult

logger = logging.getLogger(__name__)


class RoomLifecycleService:
    """Service for the pending -> active -> ended room state machine."""

    def __init__(
        self,
        db: AsyncSession,
        policy: MatchingPolicy = POLICY,
        clock: Clock = utcnow,
        notifier: Optional[NotificationClient] = None,
        voice_tokens: Optional[VoiceTokenClient] = None,
    ):
        self.db = db
        self.policy = policy
        self.clock = clock
        self.notifier = notifier or get_notification_client()
        self.voice_tokens = voice_tokens or get_voice_token_client()
        self.room_repo = RoomRepository(db)
        self.session_repo = CallSessionRepository(db)
        self.teardown = RoomTeardown(db)

    async def get_room(
        self, uid: str, room_id: UUID
    ) -> Tuple[RoomResponse, Optional[CallSessionResponse]]:
        """Room snapshot (and its session, if started) for one of its members."""
        room = await self.room_repo.get(room_id)
        if room is None:
            raise RoomNotFoundError(f"Room {room_id} not found")
        if not room.has_member(uid):
            raise NotRoomMemberError("Not a participant of this room")
        call_session = await self.session_repo.get(room_id)
        return (
            self.room_repo._to_pydantic(room),
            self.session_repo._to_pydantic(call_session) if call_session else None,
        )

    async def enter_room(self, uid: str, room_id: UUID) -> CallSessionResponse:
        """
        Caller joins the voice transport for their room:
        1. Room must exist and the caller must be a member
        2. Room becomes active, caller heartbeat recorded
        3. CallSession created on first entry
        """
        try:
            room = await self.room_repo.get(room_id, for_update=True)
            if room is None:
                raise RoomNotFoundError(f"Room {room_id} not found")
            if not room.has_member(uid):
                raise NotRoomMemberError("Not a participant of this room")

            now = self.clock()
            call_session = await self.session_repo.get(room_id, for_update=True)
            if call_session is None:
                call_session = self.session_repo.add(
                    CallSessionModel(
                        id=room.id,
                        user1=room.user1,
                        user2=room.user2,
                        status="active",
                        started_at=now,
                        ends_at=now
                        + timedelta(seconds=self.policy.default_call_seconds),
                        max_minutes_cap=self.policy.max_minutes_cap,
                        extension_history=[],
                        created_at=now,
                    )
                )
                logger.info("Started call session %s", room.id)

            if room.status != "active":
                logger.info("Room %s %s -> active (entered by %s)", room.id, room.status, uid)
                room.status = "active"
            room.touch_heartbeat(uid, now)

            await self.db.flush()
            response = self.session_repo._to_pydantic(call_session)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return response

    async def extend_session(
        self, uid: str, room_id: UUID, increment_seconds: int
    ) -> CallSessionResponse:
        """
        Extend an active session by an allowed increment:
        new ends_at = max(ends_at, now) + increment, never past the cap.
        """
        if increment_seconds not in self.policy.allowed_extension_seconds:
            allowed = sorted(self.policy.allowed_extension_seconds)
            raise ExtensionNotAllowedError(
                f"Increment must be one of {allowed} seconds"
            )

        try:
            call_session = await self.session_repo.get(room_id, for_update=True)
            if call_session is None:
                raise SessionNotFoundError(f"Session {room_id} not found")
            if uid not in call_session.users:
                raise NotRoomMemberError("Not a participant of this session")
            if call_session.status != "active":
                raise SessionNotActiveError("Session is not active")

            now = self.clock()
            base = max(call_session.ends_at, now)
            next_ends = base + timedelta(seconds=increment_seconds)
            cap = call_session.started_at + timedelta(
                minutes=call_session.max_minutes_cap
            )
            if next_ends > cap:
                raise ExtensionOverCapError(
                    f"Extension would end at {next_ends.isoformat()}, "
                    f"past the {call_session.max_minutes_cap} minute cap"
                )

            call_session.ends_at = next_ends
            # Reassign so the JSON column is flagged dirty; the list is append-only
            call_session.extension_history = list(
                call_session.extension_history or []
            ) + [{"actor": uid, "seconds": increment_seconds, "at": now.isoformat()}]

            await self.db.flush()
            response = self.session_repo._to_pydantic(call_session)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "Session %s extended by %ss by %s, ends_at=%s",
            room_id,
            increment_seconds,
            uid,
            next_ends.isoformat(),
        )
        return response

    async def end_session(self, uid: str, room_id: UUID) -> EndSessionResponse:
        """Explicit end by a member. Idempotent once the room and session are gone."""
        try:
            room, call_session = await self.teardown.load(room_id)
            members = (
                room.users
                if room is not None
                else call_session.users
                if call_session is not None
                else None
            )
            if members is not None and uid not in members:
                raise NotRoomMemberError("Not a participant of this room")

            result = await self.teardown.teardown(
                room_id,
                reason="ended_by_user",
                now=self.clock(),
                room=room,
                call_session=call_session,
                loaded=True,
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self._notify_ended(result, actor=uid)
        return EndSessionResponse(
            room_id=room_id,
            room_removed=result.room_removed,
            session_ended=result.session_ended,
            released=result.released,
        )

    async def issue_voice_token(self, uid: str, room_id: UUID) -> VoiceTokenResponse:
        """Voice transport token for a member of an active room."""
        room = await self.room_repo.get(room_id)
        if room is None:
            raise RoomNotFoundError(f"Room {room_id} not found")
        if not room.has_member(uid):
            raise NotRoomMemberError("Not a participant of this room")
        if room.status != "active":
            raise RoomNotActiveError("Room is not active yet")

        expire_seconds = self.policy.voice_token_ttl_seconds
        try:
            response_data = await self.voice_tokens.issue_token(
                channel=str(room_id), uid=uid, expire_seconds=expire_seconds
            )
            token = self.voice_tokens.extract_token(response_data)
        except Exception as e:
            logger.error("Voice token issue failed for room %s: %s", room_id, e)
            raise VoiceTokenError("Voice token issuer unavailable") from e

        return VoiceTokenResponse(
            token=token, channel=str(room_id), uid=uid, expire_seconds=expire_seconds
        )

    async def _notify_ended(self, result: TeardownResult, actor: str) -> None:
        for member in result.released:
            if member == actor:
                continue
            await self.notifier.notify(
                member, "session_ended", {"room_id": str(result.room_id)}
            )
