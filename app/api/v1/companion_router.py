"""Companion-only session actions."""

from typing import Annotated

from fastapi import APIRouter, Depends

from app.dependencies import get_delivery_service, get_session_service, require_role
from app.schemas.auth_schema import CurrentActor
from app.schemas.response_schema import ApiResponse, success_response
from app.schemas.session_schema import (
    CloseSessionResponse,
    ReadReceiptResponse,
    SessionIdRequest,
)
from app.services.delivery_service import DeliveryService
from app.services.session_service import SessionService

router = APIRouter(prefix="/api/v1/companion", tags=["companion"])

CompanionDep = Annotated[CurrentActor, Depends(require_role("companion"))]


@router.post("/close", response_model=ApiResponse[CloseSessionResponse])
async def close_session(
    body: SessionIdRequest,
    service: Annotated[SessionService, Depends(get_session_service)],
    companion: CompanionDep,
) -> dict:
    """Close a group room and notify its participants."""
    result = await service.close_session(companion.id, body.session_id)
    message = "Session already closed" if result.already_closed else "Session closed"
    return success_response(result, message=message)


@router.post("/read", response_model=ApiResponse[ReadReceiptResponse])
async def mark_read(
    body: SessionIdRequest,
    service: Annotated[DeliveryService, Depends(get_delivery_service)],
    companion: CompanionDep,
) -> dict:
    """Record that the companion has read the session up to now."""
    result = await service.mark_read("companion", body.session_id, reader_id=companion.id)
    return success_response(result)
