"""Message delivery API schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.session_schema import RoomType, SessionStatus


class SendMessageRequest(BaseModel):
    """Request to append a message to a session."""

    session_id: int = Field(..., ge=1)
    text: str


class MessageResponse(BaseModel):
    """Single message within a session."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    session_id: int
    sender_id: int | None = None
    display_name: str
    text: str
    is_companion: bool = False
    is_system: bool = False
    is_own: bool = False
    created_at: datetime


class SessionState(BaseModel):
    """Session status riding along with every message page."""

    model_config = ConfigDict(frozen=True)

    id: int
    status: SessionStatus
    room_type: RoomType


class MessagePageResponse(BaseModel):
    """Incremental message fetch result.

    ``cursor`` is the value to send back as ``after`` on the next poll.
    """

    model_config = ConfigDict(frozen=True)

    messages: list[MessageResponse]
    session: SessionState
    server_time: datetime
    cursor: datetime
