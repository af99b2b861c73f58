"""Chat repository for session and message database operations."""

from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeVar

import structlog
from sqlalchemy import (
    Executable,
    Result,
    and_,
    delete,
    func,
    insert,
    or_,
    select,
    update,
)
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction

from app.core.clock import as_utc, utcnow
from app.core.exceptions import SchemaUnsupportedError
from app.models.chat_message import ChatMessage
from app.models.chat_session import (
    ROOM_GROUP,
    ROOM_PRIVATE,
    STATUS_ACTIVE,
    STATUS_CLOSED,
    ChatSession,
)
from app.repositories.capabilities import (
    FULL_CAPABILITIES,
    READ_TRACKING,
    ROOM_LIFECYCLE,
    StoreCapabilities,
    missing_feature,
)

logger = structlog.get_logger()

T = TypeVar("T")

_CORE_COLUMNS = (
    ChatSession.id,
    ChatSession.topic,
    ChatSession.created_by,
    ChatSession.companion_id,
    ChatSession.created_at,
)
_READ_TRACKING_COLUMNS = (
    ChatSession.companion_last_read_at,
    ChatSession.user_last_read_at,
)
_LIFECYCLE_COLUMNS = (
    ChatSession.room_type,
    ChatSession.status,
    ChatSession.closed_at,
    ChatSession.closed_by,
)

_LAST_READ_COLUMN = {
    "companion": "companion_last_read_at",
    "user": "user_last_read_at",
}


def _optional_utc(value: datetime | None) -> datetime | None:
    return as_utc(value) if value is not None else None


@dataclass(frozen=True)
class SessionRecord:
    """Immutable view of a chat session row.

    Fields backed by optional columns carry their defaults when the store
    lacks them: ``private``/``active`` and no read or close timestamps.
    """

    id: int
    topic: str
    created_by: int
    companion_id: int | None
    created_at: datetime
    room_type: str = ROOM_PRIVATE
    status: str = STATUS_ACTIVE
    closed_at: datetime | None = None
    closed_by: int | None = None
    companion_last_read_at: datetime | None = None
    user_last_read_at: datetime | None = None

    @property
    def is_closed(self) -> bool:
        return self.status == STATUS_CLOSED

    @property
    def is_group(self) -> bool:
        return self.room_type == ROOM_GROUP

    def last_read_at(self, role: str) -> datetime | None:
        """Persisted read cursor for ``role`` (``companion`` or ``user``)."""
        return getattr(self, _LAST_READ_COLUMN[role])


class ChatRepository:
    """Encapsulates chat session and message database queries.

    Optional columns are resolved through ``StoreCapabilities``. A statement
    that trips over a missing optional column is retried once per feature
    with that feature switched off, and the reduced capabilities stick for
    the lifetime of the repository (one request).
    """

    def __init__(
        self,
        session: AsyncSession,
        capabilities: StoreCapabilities = FULL_CAPABILITIES,
    ) -> None:
        self._session = session
        self._capabilities = capabilities

    @property
    def capabilities(self) -> StoreCapabilities:
        return self._capabilities

    def savepoint(self) -> AbstractAsyncContextManager[AsyncSessionTransaction]:
        """Open a nested transaction for best-effort writes."""
        return self._session.begin_nested()

    # --- Optional schema handling ---

    async def _execute_guarded(self, stmt: Executable) -> Result[Any]:
        """Execute inside a savepoint, classifying unknown-column failures."""
        try:
            async with self._session.begin_nested():
                return await self._session.execute(stmt)
        except DBAPIError as exc:
            feature = missing_feature(exc)
            if feature is None:
                raise
            raise SchemaUnsupportedError(feature) from exc

    async def _with_fallback(
        self, run: Callable[[StoreCapabilities], Awaitable[T]]
    ) -> T:
        """Run ``run`` with the current capabilities, degrading on demand."""
        while True:
            try:
                return await run(self._capabilities)
            except SchemaUnsupportedError as exc:
                if not self._capabilities.supports(exc.feature):
                    raise
                logger.warning(
                    "Optional schema feature unavailable, retrying without it",
                    feature=exc.feature,
                )
                self._capabilities = self._capabilities.without(exc.feature)

    def _require(self, feature: str) -> None:
        if not self._capabilities.supports(feature):
            raise SchemaUnsupportedError(feature)

    # --- Sessions ---

    @staticmethod
    def _session_columns(caps: StoreCapabilities) -> list[Any]:
        columns: list[Any] = list(_CORE_COLUMNS)
        if caps.read_tracking:
            columns.extend(_READ_TRACKING_COLUMNS)
        if caps.room_lifecycle:
            columns.extend(_LIFECYCLE_COLUMNS)
        return columns

    @staticmethod
    def _to_record(row: Any) -> SessionRecord:
        data = row._mapping
        values: dict[str, Any] = {
            "id": data["id"],
            "topic": data["topic"],
            "created_by": data["created_by"],
            "companion_id": data["companion_id"],
            "created_at": as_utc(data["created_at"]),
        }
        if "room_type" in data:
            values["room_type"] = data["room_type"] or ROOM_PRIVATE
            values["status"] = data["status"] or STATUS_ACTIVE
            values["closed_at"] = _optional_utc(data["closed_at"])
            values["closed_by"] = data["closed_by"]
        if "companion_last_read_at" in data:
            values["companion_last_read_at"] = _optional_utc(
                data["companion_last_read_at"]
            )
            values["user_last_read_at"] = _optional_utc(data["user_last_read_at"])
        return SessionRecord(**values)

    async def find_session(self, session_id: int) -> SessionRecord | None:
        """Find a chat session by primary key."""

        async def run(caps: StoreCapabilities) -> SessionRecord | None:
            stmt = select(*self._session_columns(caps)).where(
                ChatSession.id == session_id
            )
            row = (await self._execute_guarded(stmt)).first()
            return self._to_record(row) if row is not None else None

        return await self._with_fallback(run)

    async def find_sessions_for_user(self, user_id: int) -> list[SessionRecord]:
        """Sessions a user created plus every active group room."""

        async def run(caps: StoreCapabilities) -> list[SessionRecord]:
            condition: Any = ChatSession.created_by == user_id
            if caps.room_lifecycle:
                condition = or_(
                    condition,
                    and_(
                        ChatSession.room_type == ROOM_GROUP,
                        ChatSession.status == STATUS_ACTIVE,
                    ),
                )
            stmt = (
                select(*self._session_columns(caps))
                .where(condition)
                .order_by(ChatSession.created_at.desc(), ChatSession.id.desc())
            )
            result = await self._execute_guarded(stmt)
            return [self._to_record(row) for row in result]

        return await self._with_fallback(run)

    async def find_sessions_for_companion(
        self, companion_id: int
    ) -> list[SessionRecord]:
        """Open sessions assigned to a companion plus unassigned group rooms."""

        async def run(caps: StoreCapabilities) -> list[SessionRecord]:
            condition: Any = ChatSession.companion_id == companion_id
            if caps.room_lifecycle:
                condition = and_(
                    or_(
                        condition,
                        and_(
                            ChatSession.companion_id.is_(None),
                            ChatSession.room_type == ROOM_GROUP,
                        ),
                    ),
                    ChatSession.status != STATUS_CLOSED,
                )
            stmt = (
                select(*self._session_columns(caps))
                .where(condition)
                .order_by(ChatSession.created_at.desc(), ChatSession.id.desc())
            )
            result = await self._execute_guarded(stmt)
            return [self._to_record(row) for row in result]

        return await self._with_fallback(run)

    async def create_session(
        self,
        created_by: int,
        topic: str,
        companion_id: int | None,
        room_type: str,
    ) -> SessionRecord:
        """Insert a new active session and return it."""

        async def run(caps: StoreCapabilities) -> int:
            values: dict[str, Any] = {
                "topic": topic,
                "created_by": created_by,
                "companion_id": companion_id,
                "created_at": utcnow(),
            }
            if caps.room_lifecycle:
                values["room_type"] = room_type
                values["status"] = STATUS_ACTIVE
            result = await self._execute_guarded(
                insert(ChatSession.__table__).values(**values)
            )
            return int(result.inserted_primary_key[0])  # type: ignore[attr-defined]

        session_id = await self._with_fallback(run)
        record = await self.find_session(session_id)
        if record is None:
            raise RuntimeError(f"Session {session_id} vanished after insert")
        return record

    async def close_session(
        self, session_id: int, closed_by: int, closed_at: datetime
    ) -> bool:
        """Mark a session closed. Returns False if it was already closed.

        Raises SchemaUnsupportedError when the lifecycle columns are missing.
        """
        self._require(ROOM_LIFECYCLE)
        result = await self._execute_guarded(
            update(ChatSession)
            .where(
                and_(
                    ChatSession.id == session_id,
                    ChatSession.status != STATUS_CLOSED,
                )
            )
            .values(status=STATUS_CLOSED, closed_at=closed_at, closed_by=closed_by)
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)  # type: ignore[attr-defined]

    async def stamp_last_read(self, session_id: int, role: str, at: datetime) -> None:
        """Persist the read cursor of ``role``.

        Raises SchemaUnsupportedError when the read tracking columns are missing.
        """
        self._require(READ_TRACKING)
        column = _LAST_READ_COLUMN[role]
        try:
            await self._execute_guarded(
                update(ChatSession)
                .where(ChatSession.id == session_id)
                .values({column: at})
                .execution_options(synchronize_session=False)
            )
        except SchemaUnsupportedError as exc:
            self._capabilities = self._capabilities.without(exc.feature)
            raise

    async def delete_session(self, session_id: int) -> None:
        """Hard-delete a session and all of its messages."""
        await self._session.execute(
            delete(ChatMessage)
            .where(ChatMessage.session_id == session_id)
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(
            delete(ChatSession)
            .where(ChatSession.id == session_id)
            .execution_options(synchronize_session=False)
        )

    # --- Messages ---

    async def create_message(
        self,
        session_id: int,
        sender_id: int | None,
        display_name: str,
        text: str,
        is_companion: bool = False,
        is_system: bool = False,
    ) -> ChatMessage:
        """Append a message to a session."""
        message = ChatMessage(
            session_id=session_id,
            sender_id=sender_id,
            display_name=display_name,
            text=text,
            is_companion=is_companion,
            is_system=is_system,
        )
        self._session.add(message)
        await self._session.flush()
        await self._session.refresh(message)
        return message

    async def find_messages(
        self, session_id: int, after: datetime | None = None
    ) -> list[ChatMessage]:
        """Messages of a session ascending by (created_at, id).

        With ``after``, only messages strictly newer than it.
        """
        stmt = select(ChatMessage).where(ChatMessage.session_id == session_id)
        if after is not None:
            stmt = stmt.where(ChatMessage.created_at > after)
        stmt = stmt.order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def find_last_message(self, session_id: int) -> ChatMessage | None:
        """Most recent message of a session, system messages included."""
        result = await self._session.execute(
            select(ChatMessage)
            .where(ChatMessage.session_id == session_id)
            .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def count_messages(self, session_id: int) -> int:
        """Total number of messages in a session."""
        result = await self._session.execute(
            select(func.count())
            .select_from(ChatMessage)
            .where(ChatMessage.session_id == session_id)
        )
        return int(result.scalar_one())

    async def find_last_authored_at(
        self, session_id: int, is_companion: bool
    ) -> datetime | None:
        """Timestamp of the newest non-system message written by a role."""
        result = await self._session.execute(
            select(func.max(ChatMessage.created_at)).where(
                and_(
                    ChatMessage.session_id == session_id,
                    ChatMessage.is_companion == is_companion,
                    ChatMessage.is_system.is_(False),
                )
            )
        )
        value = result.scalar_one_or_none()
        return _optional_utc(value)

    async def count_messages_by_role(
        self,
        session_id: int,
        is_companion: bool,
        after: datetime | None = None,
    ) -> int:
        """Count non-system messages of a role, optionally newer than ``after``."""
        stmt = (
            select(func.count())
            .select_from(ChatMessage)
            .where(
                and_(
                    ChatMessage.session_id == session_id,
                    ChatMessage.is_companion == is_companion,
                    ChatMessage.is_system.is_(False),
                )
            )
        )
        if after is not None:
            stmt = stmt.where(ChatMessage.created_at > after)
        result = await self._session.execute(stmt)
        return int(result.scalar_one())
