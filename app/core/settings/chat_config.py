"""Chat domain configuration."""

from pydantic import BaseModel


class ChatConfig(BaseModel, frozen=True):
    """Alias allocation and message settings."""

    alias_min: int
    alias_max: int
    alias_max_attempts: int
    alias_label_prefix: str
    message_max_length: int
    system_display_name: str
    room_closed_text: str

    @property
    def alias_pool_size(self) -> int:
        """Number of aliases available in the configured range."""
        return self.alias_max - self.alias_min + 1
