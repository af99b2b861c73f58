"""Authenticated actor and profile schemas."""

from typing import Literal

from pydantic import BaseModel, ConfigDict

ActorRole = Literal["user", "companion"]


class CurrentActor(BaseModel):
    """Authenticated actor extracted from request state."""

    model_config = ConfigDict(frozen=True)

    id: int
    role: ActorRole

    @property
    def is_companion(self) -> bool:
        return self.role == "companion"


class ProfileResponse(BaseModel):
    """The caller's own identity as other participants see it."""

    model_config = ConfigDict(frozen=True)

    id: int
    role: ActorRole
    display_name: str
    anon_number: int | None = None
    anon_label: str
