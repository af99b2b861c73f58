"""Pytest configuration and fixtures."""

import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-chat-tests-only")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "development")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("RATE_LIMIT_DEFAULT", "10000/minute")

from collections.abc import AsyncGenerator, Callable  # noqa: E402
from datetime import UTC, datetime, timedelta  # noqa: E402
from types import SimpleNamespace  # noqa: E402

import jwt  # noqa: E402
import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.core.config import settings  # noqa: E402
from app.core.database import Base  # noqa: E402
from app.models.chat_message import ChatMessage  # noqa: E402, F401
from app.models.chat_session import ChatSession  # noqa: E402, F401
from app.models.user import User  # noqa: E402
from app.repositories.chat_repo import ChatRepository  # noqa: E402
from app.repositories.user_repo import UserRepository  # noqa: E402
from app.services.alias_service import AliasService  # noqa: E402
from app.services.delivery_service import DeliveryService  # noqa: E402
from app.services.session_service import SessionService  # noqa: E402

# --- Test DB (SQLite in-memory) ---

test_engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:", echo=False, poolclass=StaticPool
)
test_session_factory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)


@pytest.fixture(autouse=True)
async def setup_db() -> AsyncGenerator[None, None]:
    """Create all tables before each test, drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def override_get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a test database session."""
    async with test_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# --- Token helpers ---


def make_token(
    user_id: int,
    role: str = "user",
    token_type: str = "access",
    expires_in: timedelta = timedelta(minutes=30),
) -> str:
    """Sign a token the way the login service does."""
    payload = {
        "sub": str(user_id),
        "role": role,
        "type": token_type,
        "exp": datetime.now(UTC) + expires_in,
    }
    return jwt.encode(
        payload,
        settings.auth.secret_key.get_secret_value(),
        algorithm=settings.auth.algorithm,
    )


def make_auth_headers(user_id: int, role: str = "user") -> dict[str, str]:
    """Generate Authorization headers with a valid access token."""
    return {"Authorization": f"Bearer {make_token(user_id, role)}"}


@pytest.fixture
def token_factory() -> Callable[..., str]:
    """Token factory: ``token_factory(user_id, role, token_type, expires_in)``."""
    return make_token


@pytest.fixture
def auth_headers() -> Callable[..., dict[str, str]]:
    """Header factory: ``auth_headers(user_id, role)``."""
    return make_auth_headers


# --- App override & client fixtures ---


def _get_app():  # type: ignore[no-untyped-def]
    """Import app lazily and apply overrides."""
    from app.core.database import get_async_session as original_dep
    from app.main import app

    app.dependency_overrides[original_dep] = override_get_async_session
    return app


@pytest.fixture
def transport() -> ASGITransport:
    """ASGI transport bound to the app with the test database."""
    return ASGITransport(app=_get_app())


@pytest.fixture
async def async_client(transport: ASGITransport) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client for async tests."""
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# --- DB session for tests ---


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a raw async session for repository tests."""
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def create_user(db_session: AsyncSession) -> Callable[..., object]:
    """Factory that inserts a committed user row."""

    async def _create(
        display_name: str = "Budi",
        role: str = "user",
        anon_number: int | None = None,
    ) -> User:
        user = User(display_name=display_name, role=role, anon_number=anon_number)
        db_session.add(user)
        await db_session.commit()
        return user

    return _create


@pytest.fixture
def services(db_session: AsyncSession) -> SimpleNamespace:
    """Repositories and services wired to the test session."""
    chat_repo = ChatRepository(db_session)
    user_repo = UserRepository(db_session)
    alias = AliasService(user_repo, settings.chat)
    delivery = DeliveryService(chat_repo, user_repo, alias, settings.chat)
    sessions = SessionService(chat_repo, user_repo, alias, delivery, settings.chat)
    return SimpleNamespace(
        chat_repo=chat_repo,
        user_repo=user_repo,
        alias=alias,
        delivery=delivery,
        sessions=sessions,
    )
