"""User database model."""

from datetime import datetime

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.clock import utcnow
from app.core.database import Base
from app.models.types import Timestamp


class User(Base):
    """Chat participant; companions are users with the ``companion`` role."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    display_name: Mapped[str] = mapped_column(String(50), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="user")
    anon_number: Mapped[int | None] = mapped_column(
        nullable=True, unique=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(Timestamp, default=utcnow)
