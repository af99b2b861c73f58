"""Async HTTP client for the chat API."""

from datetime import datetime
from types import TracebackType
from typing import Any

import httpx
import structlog

from app.core.settings import PollerConfig
from app.schemas.auth_schema import ProfileResponse
from app.schemas.message_schema import MessagePageResponse, MessageResponse
from app.schemas.session_schema import (
    CloseSessionResponse,
    ReadReceiptResponse,
    SessionResponse,
    SessionSummary,
)

logger = structlog.get_logger()


class ApiError(Exception):
    """Non-2xx response from the chat API."""

    def __init__(self, status: int, code: str, message: str) -> None:
        self.status = status
        self.code = code
        self.message = message
        super().__init__(f"{status} {code}: {message}")

    @property
    def is_session_closed(self) -> bool:
        return self.code == "SESSION_CLOSED"


class ChatApiClient:
    """Thin wrapper over ``httpx.AsyncClient`` that unwraps ``data`` envelopes."""

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {token}"},
            transport=transport,
            timeout=timeout,
        )

    @classmethod
    def from_config(cls, config: PollerConfig, token: str) -> "ChatApiClient":
        return cls(config.api_base_url, token)

    async def __aenter__(self) -> "ChatApiClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._client.request(method, path, **kwargs)
        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.is_error:
            error = ApiError(
                status=response.status_code,
                code=body.get("code", "HTTP_ERROR"),
                message=body.get("message", response.reason_phrase),
            )
            logger.debug("API error", method=method, path=path, code=error.code)
            raise error
        return body.get("data")

    async def get_me(self) -> ProfileResponse:
        data = await self._request("GET", "/api/me")
        return ProfileResponse.model_validate(data)

    async def list_sessions(self) -> list[SessionSummary]:
        data = await self._request("GET", "/api/v1/sessions")
        return [SessionSummary.model_validate(item) for item in data["sessions"]]

    async def create_session(
        self, topic: str, companion_id: int | None = None
    ) -> SessionResponse:
        payload: dict[str, Any] = {"topic": topic}
        if companion_id is not None:
            payload["companion_id"] = companion_id
        data = await self._request("POST", "/api/v1/sessions", json=payload)
        return SessionResponse.model_validate(data)

    async def delete_session(self, session_id: int) -> None:
        await self._request(
            "DELETE", "/api/v1/sessions", params={"session_id": session_id}
        )

    async def list_messages(
        self, session_id: int, after: datetime | None = None
    ) -> MessagePageResponse:
        """Fetch a message page; ``after`` is the cursor of the previous page."""
        params: dict[str, Any] = {"session_id": session_id}
        if after is not None:
            params["after"] = after.isoformat()
        data = await self._request("GET", "/api/v1/messages", params=params)
        return MessagePageResponse.model_validate(data)

    async def send_message(self, session_id: int, text: str) -> MessageResponse:
        data = await self._request(
            "POST", "/api/v1/messages", json={"session_id": session_id, "text": text}
        )
        return MessageResponse.model_validate(data)

    async def close_session(self, session_id: int) -> CloseSessionResponse:
        data = await self._request(
            "POST", "/api/v1/companion/close", json={"session_id": session_id}
        )
        return CloseSessionResponse.model_validate(data)

    async def mark_read(
        self, session_id: int, as_companion: bool = False
    ) -> ReadReceiptResponse:
        path = "/api/v1/companion/read" if as_companion else "/api/v1/sessions/read"
        data = await self._request("POST", path, json={"session_id": session_id})
        return ReadReceiptResponse.model_validate(data)
