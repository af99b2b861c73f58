"""Chat session database model."""

from datetime import datetime

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.clock import utcnow
from app.core.database import Base
from app.models.types import Timestamp

ROOM_PRIVATE = "private"
ROOM_GROUP = "group"
STATUS_ACTIVE = "active"
STATUS_CLOSED = "closed"


class ChatSession(Base):
    """Chat room between a user and a companion, or a group room.

    ``companion_last_read_at``/``user_last_read_at`` and the room lifecycle
    columns arrive through later migrations and may be missing on older
    databases; repositories never load this entity as a whole.
    """

    __tablename__ = "chat_sessions"
    __table_args__ = (
        Index("ix_chat_sessions_companion_id_created_at", "companion_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    topic: Mapped[str] = mapped_column(String(200), nullable=False)
    created_by: Mapped[int] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )
    companion_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(Timestamp, default=utcnow)

    # Read tracking
    companion_last_read_at: Mapped[datetime | None] = mapped_column(
        Timestamp, nullable=True
    )
    user_last_read_at: Mapped[datetime | None] = mapped_column(
        Timestamp, nullable=True
    )

    # Room lifecycle
    room_type: Mapped[str] = mapped_column(
        String(10), nullable=False, server_default=ROOM_PRIVATE
    )
    status: Mapped[str] = mapped_column(
        String(10), nullable=False, server_default=STATUS_ACTIVE
    )
    closed_at: Mapped[datetime | None] = mapped_column(Timestamp, nullable=True)
    closed_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"), nullable=True
    )
