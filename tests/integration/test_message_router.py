"""Integration tests for the message router."""

from httpx import AsyncClient


async def _open_room(client: AsyncClient, headers: dict, **body: object) -> int:
    resp = await client.post(
        "/api/v1/sessions", json={"topic": "Cerita", **body}, headers=headers
    )
    return resp.json()["data"]["id"]


class TestSendMessage:
    """POST /api/v1/messages"""

    async def test_send(
        self, async_client: AsyncClient, auth_headers, create_user
    ) -> None:
        user = await create_user("Budi")
        headers = auth_headers(user.id)
        session_id = await _open_room(async_client, headers)

        resp = await async_client.post(
            "/api/v1/messages",
            json={"session_id": session_id, "text": " halo "},
            headers=headers,
        )

        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["text"] == "halo"
        assert data["display_name"].startswith("Pengguna ")
        assert data["is_own"] is True
        assert data["is_system"] is False

    async def test_empty_text(
        self, async_client: AsyncClient, auth_headers, create_user
    ) -> None:
        user = await create_user("Budi")
        headers = auth_headers(user.id)
        session_id = await _open_room(async_client, headers)

        resp = await async_client.post(
            "/api/v1/messages",
            json={"session_id": session_id, "text": "   "},
            headers=headers,
        )

        assert resp.status_code == 400
        assert resp.json()["code"] == "EMPTY_TEXT"

    async def test_private_room_of_someone_else(
        self, async_client: AsyncClient, auth_headers, create_user
    ) -> None:
        owner = await create_user("Budi")
        other = await create_user("Sari")
        companion = await create_user("Rina", role="companion")
        session_id = await _open_room(
            async_client, auth_headers(owner.id), companion_id=companion.id
        )

        resp = await async_client.post(
            "/api/v1/messages",
            json={"session_id": session_id, "text": "halo"},
            headers=auth_headers(other.id),
        )

        assert resp.status_code == 404


class TestListMessages:
    """GET /api/v1/messages"""

    async def test_cursor_round_trip(
        self, async_client: AsyncClient, auth_headers, create_user
    ) -> None:
        user = await create_user("Budi")
        companion = await create_user("Rina", role="companion")
        user_headers = auth_headers(user.id)
        companion_headers = auth_headers(companion.id, "companion")
        session_id = await _open_room(
            async_client, user_headers, companion_id=companion.id
        )
        await async_client.post(
            "/api/v1/messages",
            json={"session_id": session_id, "text": "satu"},
            headers=user_headers,
        )

        first = await async_client.get(
            "/api/v1/messages", params={"session_id": session_id}, headers=user_headers
        )
        page = first.json()["data"]
        assert [m["text"] for m in page["messages"]] == ["satu"]
        assert page["session"] == {
            "id": session_id,
            "status": "active",
            "room_type": "private",
        }

        quiet = await async_client.get(
            "/api/v1/messages",
            params={"session_id": session_id, "after": page["cursor"]},
            headers=user_headers,
        )
        assert quiet.json()["data"]["messages"] == []

        await async_client.post(
            "/api/v1/messages",
            json={"session_id": session_id, "text": "dua"},
            headers=companion_headers,
        )
        fresh = await async_client.get(
            "/api/v1/messages",
            params={"session_id": session_id, "after": page["cursor"]},
            headers=user_headers,
        )
        messages = fresh.json()["data"]["messages"]
        assert [m["text"] for m in messages] == ["dua"]
        assert messages[0]["display_name"] == "Rina"
        assert messages[0]["is_companion"] is True
        assert messages[0]["is_own"] is False

    async def test_invalid_cursor(
        self, async_client: AsyncClient, auth_headers, create_user
    ) -> None:
        user = await create_user("Budi")
        headers = auth_headers(user.id)
        session_id = await _open_room(async_client, headers)

        resp = await async_client.get(
            "/api/v1/messages",
            params={"session_id": session_id, "after": "not-a-time"},
            headers=headers,
        )

        assert resp.status_code == 400
        assert resp.json()["code"] == "INVALID_CURSOR"

    async def test_missing_session_id(
        self, async_client: AsyncClient, auth_headers
    ) -> None:
        resp = await async_client.get("/api/v1/messages", headers=auth_headers(1))
        assert resp.status_code == 422
