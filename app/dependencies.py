"""Global dependencies for the application."""

from collections.abc import Callable

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_async_session
from app.core.exceptions import AuthenticationError, AuthorizationError
from app.repositories.chat_repo import ChatRepository
from app.repositories.user_repo import UserRepository
from app.schemas.auth_schema import CurrentActor
from app.services.alias_service import AliasService
from app.services.delivery_service import DeliveryService
from app.services.session_service import SessionService

# --- Auth dependencies ---


def get_current_actor(request: Request) -> CurrentActor:
    """Extract the authenticated actor from middleware-populated state."""
    state = getattr(request, "state", None)
    user_id = getattr(state, "user_id", None) if state else None
    if user_id is None:
        raise AuthenticationError(message="Not authenticated")
    return CurrentActor(id=user_id, role=state.role)


def require_role(*allowed_roles: str) -> Callable[..., CurrentActor]:
    """Dependency factory that enforces role-based access control."""

    def _check(
        current_actor: CurrentActor = Depends(get_current_actor),
    ) -> CurrentActor:
        if current_actor.role not in allowed_roles:
            raise AuthorizationError(
                message=f"Role '{current_actor.role}' is not permitted"
            )
        return current_actor

    return _check


# --- Repositories ---


def get_user_repository(
    session: AsyncSession = Depends(get_async_session),
) -> UserRepository:
    """Get UserRepository bound to the current session."""
    return UserRepository(session)


def get_chat_repository(
    session: AsyncSession = Depends(get_async_session),
) -> ChatRepository:
    """Get ChatRepository bound to the current session."""
    return ChatRepository(session)


# --- Services ---


def get_alias_service(
    user_repo: UserRepository = Depends(get_user_repository),
) -> AliasService:
    """Get AliasService with the configured alias range."""
    return AliasService(user_repo=user_repo, config=settings.chat)


def get_delivery_service(
    chat_repo: ChatRepository = Depends(get_chat_repository),
    user_repo: UserRepository = Depends(get_user_repository),
    alias_service: AliasService = Depends(get_alias_service),
) -> DeliveryService:
    """Get DeliveryService with all dependencies."""
    return DeliveryService(
        chat_repo=chat_repo,
        user_repo=user_repo,
        alias_service=alias_service,
        config=settings.chat,
    )


def get_session_service(
    chat_repo: ChatRepository = Depends(get_chat_repository),
    user_repo: UserRepository = Depends(get_user_repository),
    alias_service: AliasService = Depends(get_alias_service),
    delivery_service: DeliveryService = Depends(get_delivery_service),
) -> SessionService:
    """Get SessionService with all dependencies."""
    return SessionService(
        chat_repo=chat_repo,
        user_repo=user_repo,
        alias_service=alias_service,
        delivery_service=delivery_service,
        config=settings.chat,
    )
