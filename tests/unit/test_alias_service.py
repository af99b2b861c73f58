"""Tests for alias allocation."""

import asyncio
import random
import sqlite3
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import StoreError, UserNotFoundError
from app.repositories.user_repo import UserRepository
from app.services.alias_service import AliasService, format_label


class ScriptedRandom(random.Random):
    """Returns queued values from ``randint``, then falls back to seeded draws."""

    def __init__(self, values: list[int]) -> None:
        super().__init__(7)
        self._values = list(values)

    def randint(self, a: int, b: int) -> int:
        if self._values:
            return self._values.pop(0)
        return super().randint(a, b)


class FakeUserRepository:
    """In-memory stand-in that yields to the loop between every call.

    Uniqueness is enforced in ``assign_alias`` the way the unique index
    does it in the database.
    """

    def __init__(self, aliases: dict[int, int | None] | None = None) -> None:
        self.aliases: dict[int, int | None] = dict(aliases or {})
        self.taken_checks = 0

    async def find_by_id(self, user_id: int) -> SimpleNamespace | None:
        await asyncio.sleep(0)
        if user_id not in self.aliases:
            return None
        return SimpleNamespace(id=user_id, anon_number=self.aliases[user_id])

    async def alias_taken(self, alias: int) -> bool:
        await asyncio.sleep(0)
        self.taken_checks += 1
        return alias in self.aliases.values()

    async def assign_alias(self, user_id: int, alias: int) -> bool:
        await asyncio.sleep(0)
        if self.aliases[user_id] is not None or alias in self.aliases.values():
            return False
        self.aliases[user_id] = alias
        return True

    async def find_alias(self, user_id: int) -> int | None:
        await asyncio.sleep(0)
        return self.aliases.get(user_id)


class TestFormatLabel:
    """Pure label rendering."""

    def test_zero_padded(self) -> None:
        assert format_label(42) == "Pengguna 042"
        assert format_label(7) == "Pengguna 007"
        assert format_label(999) == "Pengguna 999"

    def test_unset_renders_dashes(self) -> None:
        assert format_label(None) == "Pengguna ---"
        assert format_label(0) == "Pengguna ---"
        assert format_label(-3) == "Pengguna ---"

    def test_custom_prefix(self) -> None:
        assert format_label(5, prefix="Teman") == "Teman 005"


class TestEnsureAliasDatabase:
    """Allocation against the real store."""

    @pytest.fixture
    def service(self, db_session: AsyncSession) -> AliasService:
        return AliasService(UserRepository(db_session), settings.chat, random.Random(1))

    async def test_assigns_alias_in_range(
        self, service: AliasService, create_user
    ) -> None:
        user = await create_user("Budi")
        alias = await service.ensure_alias(user.id)
        assert alias is not None
        assert 1 <= alias <= 999

    async def test_idempotent(self, service: AliasService, create_user) -> None:
        user = await create_user("Budi")
        first = await service.ensure_alias(user.id)
        second = await service.ensure_alias(user.id)
        assert first == second

    async def test_existing_alias_untouched(
        self, service: AliasService, create_user
    ) -> None:
        user = await create_user("Budi", anon_number=123)
        assert await service.ensure_alias(user.id) == 123

    async def test_distinct_users_distinct_aliases(
        self, service: AliasService, create_user
    ) -> None:
        users = [await create_user(f"u{i}") for i in range(30)]
        aliases = [await service.ensure_alias(u.id) for u in users]
        assert None not in aliases
        assert len(set(aliases)) == len(aliases)

    async def test_missing_user(self, service: AliasService) -> None:
        with pytest.raises(UserNotFoundError):
            await service.ensure_alias(4242)

    async def test_get_label(self, db_session: AsyncSession, create_user) -> None:
        user = await create_user("Budi")
        service = AliasService(
            UserRepository(db_session), settings.chat, ScriptedRandom([42])
        )
        assert await service.get_label(user.id) == "Pengguna 042"


class TestEnsureAliasRaces:
    """Allocation under interleaved requests and a full pool."""

    async def test_collision_on_same_candidate_is_resolved(self) -> None:
        repo = FakeUserRepository({1: None, 2: None})
        service = AliasService(repo, settings.chat, ScriptedRandom([7, 7, 8, 9]))

        first, second = await asyncio.gather(
            service.ensure_alias(1), service.ensure_alias(2)
        )

        assert first is not None and second is not None
        assert first != second
        assert 7 in (first, second)

    async def test_many_concurrent_users_get_distinct_aliases(self) -> None:
        repo = FakeUserRepository({i: None for i in range(1, 101)})
        service = AliasService(repo, settings.chat, random.Random(3))

        aliases = await asyncio.gather(*(service.ensure_alias(i) for i in range(1, 101)))

        assert None not in aliases
        assert len(set(aliases)) == 100

    async def test_concurrent_calls_for_same_user_agree(self) -> None:
        repo = FakeUserRepository({1: None})
        service = AliasService(repo, settings.chat, ScriptedRandom([10, 20]))

        results = await asyncio.gather(service.ensure_alias(1), service.ensure_alias(1))

        assert results[0] == results[1] == repo.aliases[1]

    async def test_pool_exhaustion_returns_none(self) -> None:
        taken = {i: i for i in range(1, 1000)}
        repo = FakeUserRepository({**taken, 1000: None})
        service = AliasService(repo, settings.chat, random.Random(5))

        assert await service.ensure_alias(1000) is None
        assert repo.taken_checks == settings.chat.alias_max_attempts
        assert repo.aliases[1000] is None

    async def test_store_failure_becomes_store_error(self) -> None:
        repo = FakeUserRepository()

        async def broken(user_id: int) -> None:
            raise OperationalError("SELECT", {}, sqlite3.OperationalError("gone"))

        repo.find_by_id = broken  # type: ignore[method-assign]
        service = AliasService(repo, settings.chat)

        with pytest.raises(StoreError):
            await service.ensure_alias(1)
