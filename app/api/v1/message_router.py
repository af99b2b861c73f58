"""Message delivery API router."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from app.dependencies import get_current_actor, get_delivery_service
from app.schemas.auth_schema import CurrentActor
from app.schemas.message_schema import (
    MessagePageResponse,
    MessageResponse,
    SendMessageRequest,
)
from app.schemas.response_schema import ApiResponse, success_response
from app.services.delivery_service import DeliveryService

router = APIRouter(prefix="/api/v1/messages", tags=["messages"])

DeliveryServiceDep = Annotated[DeliveryService, Depends(get_delivery_service)]
CurrentActorDep = Annotated[CurrentActor, Depends(get_current_actor)]


@router.get("", response_model=ApiResponse[MessagePageResponse])
async def list_messages(
    service: DeliveryServiceDep,
    actor: CurrentActorDep,
    session_id: int = Query(..., ge=1),
    after: str | None = Query(
        default=None, description="ISO-8601 cursor from the previous page"
    ),
) -> dict:
    """Fetch a session's messages, optionally only those newer than ``after``."""
    result = await service.list_messages(actor, session_id=session_id, after=after)
    return success_response(result)


@router.post(
    "",
    response_model=ApiResponse[MessageResponse],
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    body: SendMessageRequest,
    service: DeliveryServiceDep,
    actor: CurrentActorDep,
) -> dict:
    """Append a message to an active session."""
    result = await service.send_message(actor, session_id=body.session_id, text=body.text)
    return success_response(result, status=201, message="Message sent")
