"""Incremental message delivery, read cursors and unread counting."""

from datetime import datetime

import structlog

from app.core.clock import as_utc, utcnow
from app.core.exceptions import (
    EmptyTextError,
    InvalidCursorError,
    NotAssignedError,
    SchemaUnsupportedError,
    SessionClosedError,
    SessionNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from app.core.settings import ChatConfig
from app.models.chat_message import ChatMessage
from app.repositories.chat_repo import ChatRepository, SessionRecord
from app.repositories.user_repo import UserRepository
from app.schemas.auth_schema import ActorRole, CurrentActor
from app.schemas.message_schema import (
    MessagePageResponse,
    MessageResponse,
    SessionState,
)
from app.schemas.session_schema import ReadReceiptResponse
from app.services.alias_service import AliasService

logger = structlog.get_logger()


def parse_cursor(raw: str | None) -> datetime | None:
    """Parse an ISO-8601 ``after`` cursor. Raises InvalidCursorError."""
    if raw is None or not raw.strip():
        return None
    try:
        return as_utc(datetime.fromisoformat(raw.strip()))
    except ValueError as exc:
        raise InvalidCursorError(str(exc)) from exc


def can_view(session: SessionRecord, actor: CurrentActor) -> bool:
    """Private rooms belong to their creator and companion; group rooms to all."""
    if session.is_group:
        return True
    if actor.is_companion:
        return session.companion_id == actor.id
    return session.created_by == actor.id


def to_message_response(message: ChatMessage, viewer_id: int) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        session_id=message.session_id,
        sender_id=message.sender_id,
        display_name=message.display_name,
        text=message.text,
        is_companion=message.is_companion,
        is_system=message.is_system,
        is_own=not message.is_system and message.sender_id == viewer_id,
        created_at=as_utc(message.created_at),
    )


class DeliveryService:
    """Cursor-based message fetches, sends and per-role read tracking.

    Clients poll ``list_messages`` with the ``cursor`` of the previous page.
    Comparison is strictly newer-than on the stored timestamp, so messages
    sharing the boundary timestamp may be delivered twice; consumers
    deduplicate by message id.
    """

    def __init__(
        self,
        chat_repo: ChatRepository,
        user_repo: UserRepository,
        alias_service: AliasService,
        config: ChatConfig,
    ) -> None:
        self._chat_repo = chat_repo
        self._user_repo = user_repo
        self._alias_service = alias_service
        self._config = config

    async def _get_visible_session(
        self, session_id: int, actor: CurrentActor
    ) -> SessionRecord:
        session = await self._chat_repo.find_session(session_id)
        if session is None or not can_view(session, actor):
            raise SessionNotFoundError()
        return session

    async def list_messages(
        self, actor: CurrentActor, session_id: int, after: str | None = None
    ) -> MessagePageResponse:
        """Full history, or only messages strictly newer than ``after``."""
        after_at = parse_cursor(after)
        session = await self._get_visible_session(session_id, actor)
        server_time = utcnow()

        messages = await self._chat_repo.find_messages(session_id, after=after_at)
        if messages:
            cursor = as_utc(messages[-1].created_at)
        else:
            cursor = after_at or server_time

        return MessagePageResponse(
            messages=[to_message_response(m, actor.id) for m in messages],
            session=SessionState(
                id=session.id, status=session.status, room_type=session.room_type
            ),
            server_time=server_time,
            cursor=cursor,
        )

    async def send_message(
        self, actor: CurrentActor, session_id: int, text: str
    ) -> MessageResponse:
        """Append a message from ``actor`` to an active session."""
        session = await self._get_visible_session(session_id, actor)
        if session.is_closed:
            raise SessionClosedError()

        body = text.strip()
        if not body:
            raise EmptyTextError()
        if len(body) > self._config.message_max_length:
            raise ValidationError(
                message=(
                    f"Message exceeds {self._config.message_max_length} characters"
                ),
                code="MESSAGE_TOO_LONG",
            )

        if actor.is_companion:
            user = await self._user_repo.find_by_id(actor.id)
            if user is None:
                raise UserNotFoundError()
            display_name = user.display_name
        else:
            display_name = await self._alias_service.get_label(actor.id)

        message = await self._chat_repo.create_message(
            session_id=session_id,
            sender_id=actor.id,
            display_name=display_name,
            text=body,
            is_companion=actor.is_companion,
        )
        logger.info(
            "Message sent",
            session_id=session_id,
            message_id=message.id,
            role=actor.role,
        )
        return to_message_response(message, actor.id)

    async def compute_unread_count(self, session_id: int, for_role: ActorRole) -> int:
        """Messages from the other role that ``for_role`` has not read yet."""
        session = await self._chat_repo.find_session(session_id)
        if session is None:
            raise SessionNotFoundError()
        return await self.unread_count_for(session, for_role)

    async def unread_count_for(self, session: SessionRecord, for_role: ActorRole) -> int:
        """Unread count against an already loaded session.

        Without a persisted read cursor, the reader's own latest message
        stands in for it: replying implies having read what came before.
        """
        reader_is_companion = for_role == "companion"
        last_read = session.last_read_at(for_role)
        if last_read is None:
            last_read = await self._chat_repo.find_last_authored_at(
                session.id, is_companion=reader_is_companion
            )
        return await self._chat_repo.count_messages_by_role(
            session.id, is_companion=not reader_is_companion, after=last_read
        )

    async def mark_read(
        self, role: ActorRole, session_id: int, reader_id: int
    ) -> ReadReceiptResponse:
        """Stamp the reader role's last-read cursor to now.

        Succeeds with ``tracked=False`` when the store predates read tracking.
        """
        session = await self._chat_repo.find_session(session_id)
        if session is None:
            raise SessionNotFoundError()

        if role == "companion":
            assigned = session.companion_id == reader_id
            if not assigned and not (session.is_group and session.companion_id is None):
                raise NotAssignedError()
        elif session.created_by != reader_id and not session.is_group:
            raise SessionNotFoundError()

        now = utcnow()
        try:
            await self._chat_repo.stamp_last_read(session_id, role, now)
        except SchemaUnsupportedError as exc:
            logger.warning(
                "Read tracking unavailable, receipt not stored",
                session_id=session_id,
                role=role,
                feature=exc.feature,
            )
            return ReadReceiptResponse(session_id=session_id, role=role, tracked=False)

        return ReadReceiptResponse(
            session_id=session_id, role=role, tracked=True, read_at=now
        )
