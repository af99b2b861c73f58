"""Anonymous alias allocation for chat participants."""

import random

import structlog
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import StoreError, UserNotFoundError
from app.core.settings import ChatConfig
from app.repositories.user_repo import UserRepository
from app.schemas.auth_schema import CurrentActor, ProfileResponse

logger = structlog.get_logger()


def format_label(alias: int | None, prefix: str = "Pengguna") -> str:
    """Render an alias as ``"<prefix> 042"``, or ``"<prefix> ---"`` when unset."""
    if alias is None or alias <= 0:
        return f"{prefix} ---"
    return f"{prefix} {alias:03d}"


class AliasService:
    """Assigns each user a unique small-integer alias on first use.

    Candidates are drawn uniformly from the configured range and written with
    a conditional update, so the unique index on ``users.anon_number`` is the
    only arbiter between concurrent requests. A lost write is followed by a
    re-read: if another request already gave this user an alias, that one
    wins; otherwise drawing continues until the attempt budget runs out.
    """

    def __init__(
        self,
        user_repo: UserRepository,
        config: ChatConfig,
        rng: random.Random | None = None,
    ) -> None:
        self._user_repo = user_repo
        self._config = config
        self._rng = rng or random.SystemRandom()

    async def ensure_alias(self, user_id: int) -> int | None:
        """Return the user's alias, assigning one if needed.

        ``None`` means no free alias was found within the attempt budget.
        """
        try:
            return await self._ensure_alias(user_id)
        except SQLAlchemyError as exc:
            logger.error("Alias allocation failed", user_id=user_id, exc_info=exc)
            raise StoreError() from exc

    async def _ensure_alias(self, user_id: int) -> int | None:
        user = await self._user_repo.find_by_id(user_id)
        if user is None:
            raise UserNotFoundError()
        if user.anon_number:
            return user.anon_number

        for attempt in range(1, self._config.alias_max_attempts + 1):
            candidate = self._rng.randint(self._config.alias_min, self._config.alias_max)
            if await self._user_repo.alias_taken(candidate):
                continue

            if await self._user_repo.assign_alias(user_id, candidate):
                logger.info(
                    "Alias assigned", user_id=user_id, alias=candidate, attempt=attempt
                )
                return candidate

            current = await self._user_repo.find_alias(user_id)
            if current:
                return current

        current = await self._user_repo.find_alias(user_id)
        if not current:
            logger.warning(
                "Alias pool exhausted",
                user_id=user_id,
                attempts=self._config.alias_max_attempts,
                pool_size=self._config.alias_pool_size,
            )
            return None
        return current

    def label_for(self, alias: int | None) -> str:
        return format_label(alias, self._config.alias_label_prefix)

    async def get_label(self, user_id: int) -> str:
        """Alias label of a user, assigning an alias first if needed."""
        return self.label_for(await self.ensure_alias(user_id))

    async def get_profile(self, actor: CurrentActor) -> ProfileResponse:
        """The actor's identity, with an alias assigned to users on first call."""
        user = await self._user_repo.find_by_id(actor.id)
        if user is None:
            raise UserNotFoundError()
        alias = None if actor.is_companion else await self.ensure_alias(actor.id)
        return ProfileResponse(
            id=user.id,
            role=actor.role,
            display_name=user.display_name,
            anon_number=alias,
            anon_label=self.label_for(alias),
        )
