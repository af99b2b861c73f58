"""Client poller configuration."""

from pydantic import BaseModel


class PollerConfig(BaseModel, frozen=True):
    """Polling client settings."""

    interval_seconds: float
    near_bottom_threshold: int
    api_base_url: str
