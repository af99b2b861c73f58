"""Chat session API router."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from app.dependencies import (
    get_current_actor,
    get_delivery_service,
    get_session_service,
    require_role,
)
from app.schemas.auth_schema import CurrentActor
from app.schemas.response_schema import ApiResponse, success_response
from app.schemas.session_schema import (
    CreateSessionRequest,
    ReadReceiptResponse,
    SessionIdRequest,
    SessionListResponse,
    SessionResponse,
)
from app.services.delivery_service import DeliveryService
from app.services.session_service import SessionService

router = APIRouter(prefix="/api/v1/sessions", tags=["sessions"])

SessionServiceDep = Annotated[SessionService, Depends(get_session_service)]
DeliveryServiceDep = Annotated[DeliveryService, Depends(get_delivery_service)]
CurrentActorDep = Annotated[CurrentActor, Depends(get_current_actor)]


@router.get("", response_model=ApiResponse[SessionListResponse])
async def list_sessions(
    service: SessionServiceDep,
    actor: CurrentActorDep,
) -> dict:
    """List sessions visible to the caller, most recent activity first."""
    sessions = await service.list_sessions(actor)
    return success_response(SessionListResponse(sessions=sessions))


@router.post(
    "",
    response_model=ApiResponse[SessionResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_session(
    body: CreateSessionRequest,
    service: SessionServiceDep,
    actor: CurrentActorDep,
) -> dict:
    """Open a private room with a companion, or a group room."""
    result = await service.create_session(
        actor, topic=body.topic, companion_id=body.companion_id
    )
    return success_response(result, status=201, message="Session created")


@router.delete("", response_model=ApiResponse[None])
async def delete_session(
    service: SessionServiceDep,
    actor: CurrentActorDep,
    session_id: int = Query(..., ge=1),
) -> dict:
    """Delete a session and its messages. Creator only."""
    await service.delete_session(requester_id=actor.id, session_id=session_id)
    return success_response(None, message="Session deleted")


@router.post("/read", response_model=ApiResponse[ReadReceiptResponse])
async def mark_session_read(
    body: SessionIdRequest,
    service: DeliveryServiceDep,
    actor: Annotated[CurrentActor, Depends(require_role("user"))],
) -> dict:
    """Record that the user has read the session up to now."""
    result = await service.mark_read("user", body.session_id, reader_id=actor.id)
    return success_response(result)
