"""Optional schema features and unknown-column detection."""

import re
from dataclasses import dataclass, replace

from sqlalchemy.exc import DBAPIError

READ_TRACKING = "read_tracking"
ROOM_LIFECYCLE = "room_lifecycle"

# Optional chat_sessions columns, mapped to the feature that introduces them.
OPTIONAL_COLUMNS: dict[str, str] = {
    "companion_last_read_at": READ_TRACKING,
    "user_last_read_at": READ_TRACKING,
    "room_type": ROOM_LIFECYCLE,
    "closed_at": ROOM_LIFECYCLE,
    "closed_by": ROOM_LIFECYCLE,
    "status": ROOM_LIFECYCLE,
}

# Each pattern captures the bare column name of an unknown-column message.
_UNKNOWN_COLUMN_PATTERNS = (
    re.compile(r"no such column: (?:\w+\.)?(\w+)"),  # SQLite SELECT/UPDATE
    re.compile(r"has no column named (\w+)"),  # SQLite INSERT
    re.compile(r"unknown column '(?:\w+\.)?(\w+)'"),  # MySQL 1054
    re.compile(  # PostgreSQL 42703
        r'column "?(?:\w+\.)?(\w+)"?(?: of relation "\w+")? does not exist'
    ),
)


@dataclass(frozen=True)
class StoreCapabilities:
    """Which optional schema features the backing store supports."""

    read_tracking: bool = True
    room_lifecycle: bool = True

    def supports(self, feature: str) -> bool:
        return bool(getattr(self, feature))

    def without(self, feature: str) -> "StoreCapabilities":
        """Copy with ``feature`` switched off."""
        return replace(self, **{feature: False})


FULL_CAPABILITIES = StoreCapabilities()


def _primary_message(orig: BaseException | None) -> str:
    """The driver's own error line, without any echoed SQL."""
    diag = getattr(orig, "diag", None)
    primary = getattr(diag, "message_primary", None)
    if primary:
        return str(primary).lower()
    lines = str(orig).strip().splitlines()
    return lines[0].lower() if lines else ""


def missing_feature(exc: DBAPIError) -> str | None:
    """Return the optional feature whose column an error complains about.

    ``None`` means the error is not an unknown-column error on an optional
    column and must propagate.
    """
    message = _primary_message(exc.orig)
    for pattern in _UNKNOWN_COLUMN_PATTERNS:
        match = pattern.search(message)
        if match:
            return OPTIONAL_COLUMNS.get(match.group(1))
    return None
