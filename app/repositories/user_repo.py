"""User repository for database operations."""

import structlog
from sqlalchemy import and_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User

logger = structlog.get_logger()


class UserRepository:
    """Encapsulates user-related database queries."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_by_id(self, user_id: int) -> User | None:
        """Find a user by primary key."""
        result = await self._session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def create(
        self,
        display_name: str,
        role: str = "user",
        anon_number: int | None = None,
    ) -> User:
        """Create a new user record."""
        user = User(display_name=display_name, role=role, anon_number=anon_number)
        self._session.add(user)
        await self._session.flush()
        return user

    async def find_alias(self, user_id: int) -> int | None:
        """Read the stored alias straight from the table, bypassing the identity map."""
        result = await self._session.execute(
            select(User.anon_number).where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def find_aliases(self, user_ids: list[int]) -> dict[int, int | None]:
        """Map user ids to their stored aliases."""
        if not user_ids:
            return {}
        result = await self._session.execute(
            select(User.id, User.anon_number).where(User.id.in_(user_ids))
        )
        return {row.id: row.anon_number for row in result}

    async def alias_taken(self, alias: int) -> bool:
        """Check whether any user already owns an alias."""
        result = await self._session.execute(
            select(User.id).where(User.anon_number == alias).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def assign_alias(self, user_id: int, alias: int) -> bool:
        """Persist an alias if the user has none yet.

        Returns False when the write lost a race: either another request
        assigned this user first, or another user took the alias (unique
        violation). Callers re-read to learn the outcome.
        """
        try:
            async with self._session.begin_nested():
                result = await self._session.execute(
                    update(User)
                    .where(and_(User.id == user_id, User.anon_number.is_(None)))
                    .values(anon_number=alias)
                )
        except IntegrityError:
            logger.warning("Alias write conflicted", user_id=user_id, alias=alias)
            return False
        return bool(result.rowcount)  # type: ignore[attr-defined]
