"""Polling loop that keeps a chat view in sync without a push channel."""

import asyncio
from collections.abc import Sequence
from typing import Protocol

import httpx
import structlog

from app.client.api_client import ApiError, ChatApiClient
from app.client.context import ChatContext
from app.core.settings import PollerConfig
from app.schemas.message_schema import MessagePageResponse, MessageResponse

logger = structlog.get_logger()


class Renderer(Protocol):
    """What the poller needs from a chat view."""

    def render(self, messages: Sequence[MessageResponse], force_scroll: bool) -> None: ...

    def is_near_bottom(self, threshold: int) -> bool: ...

    def show_closed(self) -> None: ...

    def show_error(self, message: str) -> None: ...


def _error_text(exc: Exception) -> str:
    if isinstance(exc, ApiError):
        return exc.message
    return "Koneksi ke server gagal. Mencoba lagi..."


class MessagePoller:
    """Drives incremental fetches for the selected session.

    A single ``asyncio.Task`` owns the timer. It runs only while a session
    is selected, the view is visible and the session is open. A tick that
    finds a fetch still in flight is skipped, so fetches never overlap.
    """

    def __init__(
        self,
        api: ChatApiClient,
        renderer: Renderer,
        config: PollerConfig,
        sender_id: int,
        display_name: str,
        is_companion: bool = False,
        context: ChatContext | None = None,
    ) -> None:
        self._api = api
        self._renderer = renderer
        self._config = config
        self._sender_id = sender_id
        self._display_name = display_name
        self._is_companion = is_companion
        self._context = context or ChatContext()
        self._task: asyncio.Task[None] | None = None

    @property
    def context(self) -> ChatContext:
        return self._context

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # --- Timer ---

    def start(self, load_first: bool = False) -> None:
        """Start the timer if polling makes sense and it is not running.

        With ``load_first`` the first fetch runs immediately instead of after
        one interval.
        """
        if self.running or not self._context.should_poll:
            return
        self._task = asyncio.create_task(self._run(load_first))
        logger.debug("Polling started", session_id=self._context.session_id)

    def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        if task is not asyncio.current_task():
            task.cancel()
        logger.debug("Polling stopped", session_id=self._context.session_id)

    async def aclose(self) -> None:
        """Stop the timer and wait for it to unwind."""
        task = self._task
        self.stop()
        if task is not None and task is not asyncio.current_task():
            await asyncio.gather(task, return_exceptions=True)

    async def _run(self, load_first: bool = False) -> None:
        delay = 0.0 if load_first else self._config.interval_seconds
        while self._context.should_poll:
            await asyncio.sleep(delay)
            delay = self._config.interval_seconds
            if not self._context.should_poll:
                break
            try:
                await self.refresh()
            except Exception as exc:
                logger.exception("Polling tick failed", session_id=self._context.session_id)
                self._renderer.show_error(_error_text(exc))

    # --- Selection and visibility ---

    async def select_session(self, session_id: int | None) -> None:
        """Switch sessions: stop the old timer, load history, start a new one.

        A hidden view defers the history load until it becomes visible.
        """
        self.stop()
        self._context.select(session_id)
        if session_id is None or not self._context.visible:
            self._renderer.render([], force_scroll=True)
            return
        await self.refresh()
        self.start()

    def set_visible(self, visible: bool) -> None:
        self._context.visible = visible
        if visible:
            self.start(load_first=self._context.is_initial_load)
        else:
            self.stop()

    # --- Fetching ---

    async def refresh(self) -> None:
        """Fetch what is new for the selected session and render it."""
        ctx = self._context
        if ctx.session_id is None:
            return
        if ctx.fetching:
            logger.debug("Fetch in flight, skipping tick", session_id=ctx.session_id)
            return

        session_id, generation = ctx.session_id, ctx.generation
        ctx.fetching = True
        try:
            page = await self._api.list_messages(session_id, after=ctx.cursor)
        except (ApiError, httpx.HTTPError) as exc:
            if generation == ctx.generation:
                self._handle_error(exc)
            return
        finally:
            if generation == ctx.generation:
                ctx.fetching = False

        if generation != ctx.generation:
            logger.debug("Discarding stale page", session_id=session_id)
            return
        self._apply(page)

    def _apply(self, page: MessagePageResponse) -> None:
        ctx = self._context
        if ctx.is_initial_load:
            ctx.replace(page.messages)
            ctx.cursor = page.cursor
            self._renderer.render(ctx.messages, force_scroll=True)
        elif page.messages:
            follow = self._renderer.is_near_bottom(self._config.near_bottom_threshold)
            fresh = ctx.append_new(page.messages)
            ctx.cursor = page.messages[-1].created_at
            if fresh:
                logger.debug(
                    "New messages received", session_id=ctx.session_id, count=len(fresh)
                )
                self._renderer.render(ctx.messages, force_scroll=follow)

        if page.session.status == "closed":
            self._handle_closed()

    def _handle_closed(self) -> None:
        ctx = self._context
        self.stop()
        if ctx.closed:
            return
        ctx.closed = True
        logger.info("Session closed, polling suspended", session_id=ctx.session_id)
        self._renderer.show_closed()

    def _handle_error(self, exc: ApiError | httpx.HTTPError) -> None:
        if isinstance(exc, ApiError) and exc.is_session_closed:
            self._handle_closed()
            return
        logger.warning(
            "Message fetch failed", session_id=self._context.session_id, error=str(exc)
        )
        self._renderer.show_error(_error_text(exc))

    # --- Sending ---

    async def send(self, text: str) -> MessageResponse | None:
        """Send optimistically. Returns the stored message, or None if not sent."""
        ctx = self._context
        body = text.strip()
        if ctx.session_id is None or not body or ctx.closed:
            return None
        if ctx.sending:
            logger.debug("Send already in flight, rejecting", session_id=ctx.session_id)
            return None

        session_id, generation = ctx.session_id, ctx.generation
        ctx.sending = True
        pending = ctx.add_pending(
            self._sender_id, self._display_name, body, self._is_companion
        )
        self._renderer.render(ctx.messages, force_scroll=True)
        try:
            confirmed = await self._api.send_message(session_id, body)
        except (ApiError, httpx.HTTPError) as exc:
            if generation == ctx.generation:
                ctx.discard(pending.id)
                self._renderer.render(ctx.messages, force_scroll=False)
                self._handle_error(exc)
            return None
        finally:
            if generation == ctx.generation:
                ctx.sending = False

        if generation == ctx.generation:
            ctx.confirm(pending.id, confirmed)
            self._renderer.render(ctx.messages, force_scroll=True)
        return confirmed
