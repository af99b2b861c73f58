"""Chat session API schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

RoomType = Literal["private", "group"]
SessionStatus = Literal["active", "closed"]


class CreateSessionRequest(BaseModel):
    """Request to open a new chat room."""

    topic: str = Field(..., max_length=200)
    companion_id: int | None = Field(
        default=None, description="Companion to pair with; omit for a group room"
    )


class SessionIdRequest(BaseModel):
    """Body carrying only a session id."""

    session_id: int = Field(..., ge=1)


class SessionResponse(BaseModel):
    """A single chat session."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    topic: str
    created_by: int
    companion_id: int | None = None
    room_type: RoomType
    status: SessionStatus
    created_at: datetime
    closed_at: datetime | None = None
    closed_by: int | None = None


class SessionSummary(BaseModel):
    """Session list entry with delivery statistics."""

    model_config = ConfigDict(frozen=True)

    id: int
    topic: str
    room_type: RoomType
    status: SessionStatus
    created_at: datetime
    companion_id: int | None = None
    is_creator: bool = False
    creator_anon_number: int | None = None
    creator_label: str | None = None
    message_count: int = 0
    last_message: str | None = None
    last_message_at: datetime
    unread_count: int = 0


class SessionListResponse(BaseModel):
    """Sessions visible to the caller, most recent activity first."""

    model_config = ConfigDict(frozen=True)

    sessions: list[SessionSummary]


class CloseSessionResponse(BaseModel):
    """Outcome of a close request."""

    model_config = ConfigDict(frozen=True)

    session_id: int
    status: SessionStatus
    already_closed: bool = False


class ReadReceiptResponse(BaseModel):
    """Outcome of a mark-read request.

    ``tracked`` is False when the store has no read tracking columns yet.
    """

    model_config = ConfigDict(frozen=True)

    session_id: int
    role: Literal["user", "companion"]
    tracked: bool
    read_at: datetime | None = None
