"""Create a user or companion and print a development access token.

Usage:
    python -m scripts.create_user --name Rina --role companion
"""

import argparse
import asyncio
from datetime import UTC, datetime, timedelta

import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import Base, async_session_factory, engine
from app.models.user import User
from app.repositories.user_repo import UserRepository
from app.services.alias_service import AliasService


def issue_token(user_id: int, role: str, hours: int) -> str:
    """Sign an access token the auth middleware accepts."""
    payload = {
        "sub": str(user_id),
        "role": role,
        "type": "access",
        "exp": datetime.now(UTC) + timedelta(hours=hours),
    }
    return jwt.encode(
        payload,
        settings.auth.secret_key.get_secret_value(),
        algorithm=settings.auth.algorithm,
    )


async def create_user(name: str, role: str, hours: int) -> None:
    """Create the user, assign an alias to plain users, print a token."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_factory() as session:
        session: AsyncSession
        repo = UserRepository(session)
        user: User = await repo.create(display_name=name, role=role)
        label = "-"
        if role == "user":
            alias_service = AliasService(repo, settings.chat)
            label = alias_service.label_for(await alias_service.ensure_alias(user.id))
        await session.commit()
        print(f"Created {role} '{name}' (id={user.id}, alias={label})")
        print(issue_token(user.id, role, hours))

    await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Create a chat participant")
    parser.add_argument("--name", required=True, help="Display name")
    parser.add_argument(
        "--role", choices=["user", "companion"], default="user", help="Actor role"
    )
    parser.add_argument("--hours", type=int, default=24, help="Token lifetime")
    args = parser.parse_args()

    asyncio.run(create_user(args.name, args.role, args.hours))


if __name__ == "__main__":
    main()
