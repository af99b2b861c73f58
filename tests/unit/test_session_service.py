"""Tests for SessionService lifecycle rules."""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from app.core.exceptions import (
    AuthorizationError,
    NotAssignedError,
    NotGroupRoomError,
    SessionNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from app.repositories.chat_repo import ChatRepository
from app.schemas.auth_schema import CurrentActor


@pytest.fixture
async def people(create_user) -> SimpleNamespace:
    budi = await create_user("Budi")
    sari = await create_user("Sari")
    rina = await create_user("Rina", role="companion")
    dewi = await create_user("Dewi", role="companion")
    return SimpleNamespace(
        budi=CurrentActor(id=budi.id, role="user"),
        sari=CurrentActor(id=sari.id, role="user"),
        rina=CurrentActor(id=rina.id, role="companion"),
        dewi=CurrentActor(id=dewi.id, role="companion"),
    )


class TestCreateSession:
    """Room kind selection and validation."""

    async def test_named_companion_makes_private_room(
        self, services: SimpleNamespace, people: SimpleNamespace
    ) -> None:
        session = await services.sessions.create_session(
            people.budi, "Susah tidur", people.rina.id
        )
        assert session.room_type == "private"
        assert session.status == "active"
        assert session.companion_id == people.rina.id
        assert session.created_by == people.budi.id

    async def test_no_companion_makes_group_room(
        self, services: SimpleNamespace, people: SimpleNamespace
    ) -> None:
        session = await services.sessions.create_session(people.budi, "Cerita")
        assert session.room_type == "group"
        assert session.companion_id is None

    async def test_companion_hosts_own_group_room(
        self, services: SimpleNamespace, people: SimpleNamespace
    ) -> None:
        session = await services.sessions.create_session(people.rina, "Sesi malam")
        assert session.room_type == "group"
        assert session.companion_id == people.rina.id

    async def test_topic_is_stripped_and_required(
        self, services: SimpleNamespace, people: SimpleNamespace
    ) -> None:
        session = await services.sessions.create_session(people.budi, "  Cemas  ")
        assert session.topic == "Cemas"
        with pytest.raises(ValidationError):
            await services.sessions.create_session(people.budi, "   ")

    async def test_named_companion_must_exist(
        self, services: SimpleNamespace, people: SimpleNamespace
    ) -> None:
        with pytest.raises(UserNotFoundError):
            await services.sessions.create_session(people.budi, "t", 9999)

    async def test_named_companion_must_be_companion(
        self, services: SimpleNamespace, people: SimpleNamespace
    ) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await services.sessions.create_session(people.budi, "t", people.sari.id)
        assert exc_info.value.code == "NOT_A_COMPANION"

    async def test_creator_gets_alias(
        self, services: SimpleNamespace, people: SimpleNamespace
    ) -> None:
        await services.sessions.create_session(people.budi, "t")
        assert await services.user_repo.find_alias(people.budi.id) is not None


class TestCloseSession:
    """Companion close rules and the closed notice."""

    async def test_close_group_room_appends_notice(
        self, services: SimpleNamespace, people: SimpleNamespace
    ) -> None:
        room = await services.sessions.create_session(people.budi, "Cerita")

        result = await services.sessions.close_session(people.rina.id, room.id)

        assert result.status == "closed"
        assert result.already_closed is False
        messages = await services.chat_repo.find_messages(room.id)
        assert len(messages) == 1
        notice = messages[0]
        assert notice.is_system is True
        assert notice.sender_id is None
        assert notice.display_name == "Sistem"
        assert notice.text == "Ruang grup ini telah ditutup oleh pendamping."

        stored = await services.chat_repo.find_session(room.id)
        assert stored.closed_by == people.rina.id

    async def test_close_is_idempotent(
        self, services: SimpleNamespace, people: SimpleNamespace
    ) -> None:
        room = await services.sessions.create_session(people.budi, "Cerita")
        await services.sessions.close_session(people.rina.id, room.id)

        again = await services.sessions.close_session(people.rina.id, room.id)

        assert again.already_closed is True
        assert await services.chat_repo.count_messages(room.id) == 1

    async def test_private_room_cannot_be_closed(
        self, services: SimpleNamespace, people: SimpleNamespace
    ) -> None:
        room = await services.sessions.create_session(
            people.budi, "Pribadi", people.rina.id
        )
        with pytest.raises(NotGroupRoomError):
            await services.sessions.close_session(people.rina.id, room.id)
        stored = await services.chat_repo.find_session(room.id)
        assert stored.status == "active"

    async def test_other_companion_is_rejected(
        self, services: SimpleNamespace, people: SimpleNamespace
    ) -> None:
        room = await services.sessions.create_session(people.rina, "Sesi malam")
        with pytest.raises(NotAssignedError):
            await services.sessions.close_session(people.dewi.id, room.id)

    async def test_missing_session(
        self, services: SimpleNamespace, people: SimpleNamespace
    ) -> None:
        with pytest.raises(SessionNotFoundError):
            await services.sessions.close_session(people.rina.id, 9999)

    async def test_failed_notice_does_not_undo_close(
        self, services: SimpleNamespace, people: SimpleNamespace
    ) -> None:
        room = await services.sessions.create_session(people.budi, "Cerita")
        chat_repo: ChatRepository = services.chat_repo
        chat_repo.create_message = AsyncMock(  # type: ignore[method-assign]
            side_effect=OperationalError("INSERT", {}, Exception("disk full"))
        )

        result = await services.sessions.close_session(people.rina.id, room.id)

        assert result.status == "closed"
        stored = await chat_repo.find_session(room.id)
        assert stored.is_closed


class TestDeleteSession:
    """Creator-only hard delete."""

    async def test_creator_deletes(
        self, services: SimpleNamespace, people: SimpleNamespace
    ) -> None:
        room = await services.sessions.create_session(people.budi, "t")
        await services.delivery.send_message(people.budi, room.id, "halo")

        await services.sessions.delete_session(people.budi.id, room.id)

        assert await services.chat_repo.find_session(room.id) is None
        assert await services.chat_repo.count_messages(room.id) == 0

    async def test_non_creator_rejected(
        self, services: SimpleNamespace, people: SimpleNamespace
    ) -> None:
        room = await services.sessions.create_session(people.budi, "t")
        with pytest.raises(AuthorizationError):
            await services.sessions.delete_session(people.sari.id, room.id)


class TestListSessions:
    """Visibility, statistics and ordering of session summaries."""

    async def test_user_sees_own_and_active_group_rooms(
        self, services: SimpleNamespace, people: SimpleNamespace
    ) -> None:
        own = await services.sessions.create_session(people.budi, "Milik", people.rina.id)
        group = await services.sessions.create_session(people.sari, "Grup")
        await services.sessions.create_session(people.sari, "Pribadi", people.rina.id)
        closed = await services.sessions.create_session(people.sari, "Tutup")
        await services.sessions.close_session(people.rina.id, closed.id)

        summaries = await services.sessions.list_sessions(people.budi)

        assert {s.id for s in summaries} == {own.id, group.id}
        mine = next(s for s in summaries if s.id == own.id)
        assert mine.is_creator is True
        assert mine.creator_label is None

    async def test_companion_view_is_anonymized(
        self, services: SimpleNamespace, people: SimpleNamespace
    ) -> None:
        room = await services.sessions.create_session(
            people.budi, "Cemas", people.rina.id
        )
        await services.delivery.send_message(people.budi, room.id, "halo kak")

        summaries = await services.sessions.list_sessions(people.rina)

        assert len(summaries) == 1
        summary = summaries[0]
        alias = await services.user_repo.find_alias(people.budi.id)
        assert summary.creator_anon_number == alias
        assert summary.creator_label == f"Pengguna {alias:03d}"
        assert "Budi" not in summary.model_dump_json()
        assert summary.message_count == 1
        assert summary.last_message == "halo kak"
        assert summary.unread_count == 1

    async def test_companion_does_not_see_closed_rooms(
        self, services: SimpleNamespace, people: SimpleNamespace
    ) -> None:
        room = await services.sessions.create_session(people.rina, "Sesi")
        await services.sessions.close_session(people.rina.id, room.id)
        assert await services.sessions.list_sessions(people.rina) == []

    async def test_sorted_by_last_activity(
        self, services: SimpleNamespace, people: SimpleNamespace
    ) -> None:
        older = await services.sessions.create_session(people.budi, "Lama")
        newer = await services.sessions.create_session(people.budi, "Baru")
        await services.delivery.send_message(people.budi, older.id, "naik lagi")

        summaries = await services.sessions.list_sessions(people.budi)

        assert [s.id for s in summaries] == [older.id, newer.id]
        assert summaries[1].last_message_at == newer.created_at

    async def test_preview_is_truncated(
        self, services: SimpleNamespace, people: SimpleNamespace
    ) -> None:
        room = await services.sessions.create_session(people.budi, "t")
        await services.delivery.send_message(people.budi, room.id, "a" * 300)
        summaries = await services.sessions.list_sessions(people.budi)
        assert len(summaries[0].last_message) == 80
