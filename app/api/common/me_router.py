"""Caller identity endpoint."""

from typing import Annotated

from fastapi import APIRouter, Depends

from app.dependencies import get_alias_service, get_current_actor
from app.schemas.auth_schema import CurrentActor, ProfileResponse
from app.schemas.response_schema import ApiResponse, success_response
from app.services.alias_service import AliasService

router = APIRouter(prefix="/api", tags=["me"])


@router.get("/me", response_model=ApiResponse[ProfileResponse])
async def get_me(
    actor: Annotated[CurrentActor, Depends(get_current_actor)],
    alias_service: Annotated[AliasService, Depends(get_alias_service)],
) -> dict:
    """Return the caller's profile and anonymous label."""
    result = await alias_service.get_profile(actor)
    return success_response(result)
