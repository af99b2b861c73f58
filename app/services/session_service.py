"""Chat session lifecycle: create, close, delete and list."""

import structlog
from sqlalchemy.exc import SQLAlchemyError

from app.core.clock import as_utc, utcnow
from app.core.exceptions import (
    AuthorizationError,
    MigrationRequiredError,
    NotAssignedError,
    NotGroupRoomError,
    SchemaUnsupportedError,
    SessionNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from app.core.settings import ChatConfig
from app.models.chat_session import ROOM_GROUP, ROOM_PRIVATE, STATUS_CLOSED
from app.repositories.capabilities import ROOM_LIFECYCLE
from app.repositories.chat_repo import ChatRepository, SessionRecord
from app.repositories.user_repo import UserRepository
from app.schemas.auth_schema import CurrentActor
from app.schemas.session_schema import (
    CloseSessionResponse,
    SessionResponse,
    SessionSummary,
)
from app.services.alias_service import AliasService
from app.services.delivery_service import DeliveryService

logger = structlog.get_logger()

PREVIEW_LENGTH = 80


def to_session_response(session: SessionRecord) -> SessionResponse:
    return SessionResponse(
        id=session.id,
        topic=session.topic,
        created_by=session.created_by,
        companion_id=session.companion_id,
        room_type=session.room_type,
        status=session.status,
        created_at=session.created_at,
        closed_at=session.closed_at,
        closed_by=session.closed_by,
    )


class SessionService:
    """Governs the ``active -> closed`` state machine of chat sessions.

    Only companions close sessions, and only group rooms. Closing appends a
    system message on a best-effort basis: a failed insert is logged and the
    close stands.
    """

    def __init__(
        self,
        chat_repo: ChatRepository,
        user_repo: UserRepository,
        alias_service: AliasService,
        delivery_service: DeliveryService,
        config: ChatConfig,
    ) -> None:
        self._chat_repo = chat_repo
        self._user_repo = user_repo
        self._alias_service = alias_service
        self._delivery_service = delivery_service
        self._config = config

    async def create_session(
        self,
        actor: CurrentActor,
        topic: str,
        companion_id: int | None = None,
    ) -> SessionResponse:
        """Open a private room with a named companion, or a group room."""
        topic = topic.strip()
        if not topic:
            raise ValidationError(message="Topic is required", code="EMPTY_TOPIC")

        if companion_id is not None:
            companion = await self._user_repo.find_by_id(companion_id)
            if companion is None:
                raise UserNotFoundError()
            if companion.role != "companion":
                raise ValidationError(
                    message="Selected user is not a companion", code="NOT_A_COMPANION"
                )
            room_type = ROOM_PRIVATE
        elif actor.is_companion:
            companion_id = actor.id
            room_type = ROOM_GROUP
        else:
            room_type = ROOM_GROUP

        if not actor.is_companion:
            await self._alias_service.ensure_alias(actor.id)

        session = await self._chat_repo.create_session(
            created_by=actor.id,
            topic=topic,
            companion_id=companion_id,
            room_type=room_type,
        )
        logger.info(
            "Session created",
            session_id=session.id,
            room_type=session.room_type,
            created_by=actor.id,
        )
        return to_session_response(session)

    async def close_session(
        self, companion_id: int, session_id: int
    ) -> CloseSessionResponse:
        """Close a group room. Closing an already closed room is a no-op."""
        session = await self._chat_repo.find_session(session_id)
        if session is None:
            raise SessionNotFoundError()
        if not self._chat_repo.capabilities.supports(ROOM_LIFECYCLE):
            raise MigrationRequiredError(ROOM_LIFECYCLE)

        if session.companion_id is not None and session.companion_id != companion_id:
            raise NotAssignedError()
        if session.is_closed:
            return CloseSessionResponse(
                session_id=session_id, status=STATUS_CLOSED, already_closed=True
            )
        if not session.is_group:
            raise NotGroupRoomError()

        try:
            closed = await self._chat_repo.close_session(
                session_id, closed_by=companion_id, closed_at=utcnow()
            )
        except SchemaUnsupportedError as exc:
            raise MigrationRequiredError(exc.feature) from exc
        if not closed:
            return CloseSessionResponse(
                session_id=session_id, status=STATUS_CLOSED, already_closed=True
            )

        logger.info("Session closed", session_id=session_id, closed_by=companion_id)
        await self._append_closed_notice(session_id)
        return CloseSessionResponse(session_id=session_id, status=STATUS_CLOSED)

    async def _append_closed_notice(self, session_id: int) -> None:
        try:
            async with self._chat_repo.savepoint():
                await self._chat_repo.create_message(
                    session_id=session_id,
                    sender_id=None,
                    display_name=self._config.system_display_name,
                    text=self._config.room_closed_text,
                    is_system=True,
                )
        except SQLAlchemyError as exc:
            logger.warning(
                "Failed to append closed notice", session_id=session_id, error=str(exc)
            )

    async def delete_session(self, requester_id: int, session_id: int) -> None:
        """Hard-delete a session. Only its creator may do this."""
        session = await self._chat_repo.find_session(session_id)
        if session is None:
            raise SessionNotFoundError()
        if session.created_by != requester_id:
            raise AuthorizationError(message="Only the creator can delete this session")
        await self._chat_repo.delete_session(session_id)
        logger.info("Session deleted", session_id=session_id, requester_id=requester_id)

    async def list_sessions(self, actor: CurrentActor) -> list[SessionSummary]:
        """Sessions visible to ``actor``, most recently active first."""
        if actor.is_companion:
            sessions = await self._chat_repo.find_sessions_for_companion(actor.id)
            sessions = [s for s in sessions if not s.is_closed]
            aliases = await self._user_repo.find_aliases(
                sorted({s.created_by for s in sessions})
            )
        else:
            sessions = await self._chat_repo.find_sessions_for_user(actor.id)
            aliases = {}

        summaries = []
        for session in sessions:
            last_message = await self._chat_repo.find_last_message(session.id)
            summary = SessionSummary(
                id=session.id,
                topic=session.topic,
                room_type=session.room_type,
                status=session.status,
                created_at=session.created_at,
                companion_id=session.companion_id,
                is_creator=session.created_by == actor.id,
                message_count=await self._chat_repo.count_messages(session.id),
                last_message=(
                    last_message.text[:PREVIEW_LENGTH] if last_message else None
                ),
                last_message_at=(
                    as_utc(last_message.created_at)
                    if last_message
                    else session.created_at
                ),
                unread_count=await self._delivery_service.unread_count_for(
                    session, actor.role
                ),
            )
            if actor.is_companion:
                alias = aliases.get(session.created_by)
                summary = summary.model_copy(
                    update={
                        "creator_anon_number": alias,
                        "creator_label": self._alias_service.label_for(alias),
                    }
                )
            summaries.append(summary)

        summaries.sort(key=lambda s: s.last_message_at, reverse=True)
        return summaries
