"""Per-session client state for the polling loop."""

from dataclasses import dataclass, field
from datetime import datetime

from app.core.clock import utcnow
from app.schemas.message_schema import MessageResponse


@dataclass
class ChatContext:
    """Everything the poller knows about the selected session.

    ``generation`` increases on every selection change; responses started
    under an older generation belong to a previous session and are dropped.
    Pending (unconfirmed) messages carry negative ids.
    """

    session_id: int | None = None
    messages: list[MessageResponse] = field(default_factory=list)
    message_ids: set[int] = field(default_factory=set)
    cursor: datetime | None = None
    closed: bool = False
    fetching: bool = False
    sending: bool = False
    visible: bool = True
    generation: int = 0
    _next_pending_id: int = -1

    @property
    def should_poll(self) -> bool:
        return self.session_id is not None and self.visible and not self.closed

    @property
    def is_initial_load(self) -> bool:
        return self.cursor is None

    def select(self, session_id: int | None) -> None:
        """Switch to another session and forget everything about the last one."""
        self.session_id = session_id
        self.messages = []
        self.message_ids = set()
        self.cursor = None
        self.closed = False
        self.fetching = False
        self.sending = False
        self.generation += 1

    def replace(self, messages: list[MessageResponse]) -> None:
        """Load a full history page, keeping sends that are still pending."""
        pending = [m for m in self.messages if m.id < 0]
        self.messages = [*messages, *pending]
        self.message_ids = {m.id for m in self.messages}

    def append_new(self, messages: list[MessageResponse]) -> list[MessageResponse]:
        """Append messages not seen before. Returns only the ones appended."""
        fresh = []
        for message in messages:
            if message.id in self.message_ids:
                continue
            self.message_ids.add(message.id)
            self.messages.append(message)
            fresh.append(message)
        return fresh

    def add_pending(
        self, sender_id: int, display_name: str, text: str, is_companion: bool
    ) -> MessageResponse:
        """Show a message locally before the server has confirmed it."""
        if self.session_id is None:
            raise RuntimeError("No session selected")
        pending = MessageResponse(
            id=self._next_pending_id,
            session_id=self.session_id,
            sender_id=sender_id,
            display_name=display_name,
            text=text,
            is_companion=is_companion,
            is_own=True,
            created_at=utcnow(),
        )
        self._next_pending_id -= 1
        self.messages.append(pending)
        self.message_ids.add(pending.id)
        return pending

    def discard(self, message_id: int) -> None:
        self.messages = [m for m in self.messages if m.id != message_id]
        self.message_ids.discard(message_id)

    def confirm(self, pending_id: int, confirmed: MessageResponse) -> None:
        """Swap a pending message for its stored record, unless polling beat us."""
        if confirmed.id in self.message_ids:
            self.discard(pending_id)
            return
        if pending_id in self.message_ids:
            self.messages = [
                confirmed if m.id == pending_id else m for m in self.messages
            ]
            self.message_ids.discard(pending_id)
        else:
            self.messages.append(confirmed)
        self.message_ids.add(confirmed.id)
