"""Per-chat polling subscriptions.

A :class:`Subscription` owns at most one background loop that keeps calling a
caller-supplied coroutine until it is cancelled. Every ``start`` mints a fresh
single-use :class:`CancelToken`; ``start`` and ``stop`` serialize on one lock
per subscription so the "cancel old token, mint new token" swap is atomic.

The loop imposes no pacing of its own: callbacks must pace themselves, usually
by ending each iteration with ``await token.sleep(interval)``. The loop still
yields to the event loop between invocations, so a callback that never awaits
cannot starve ``stop`` or other chats.

A callback that raises stops its own subscription; the error is logged and
never reaches the shared task group.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Protocol

import anyio
import anyio.lowlevel

from .logging import get_logger

if TYPE_CHECKING:
    from anyio.abc import TaskGroup

logger = get_logger(__name__)

__all__ = [
    "CancelToken",
    "ChatRef",
    "PollCallback",
    "Subscription",
    "Subscriptions",
]


class ChatRef(Protocol):
    @property
    def id(self) -> int: ...


class CancelToken:
    """Single-use cancellation signal owned by one polling loop."""

    __slots__ = ("_event",)

    def __init__(self) -> None:
        self._event = anyio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        if self._event.is_set():
            raise RuntimeError("cancel token was already signalled")
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, delay: float) -> bool:
        """Sleep for ``delay`` seconds or until cancelled.

        Returns ``True`` when the token was cancelled.
        """
        with anyio.move_on_after(delay):
            await self._event.wait()
        return self.cancelled


PollCallback = Callable[[CancelToken], Awaitable[None]]


class Subscription:
    def __init__(
        self,
        chat: ChatRef,
        *,
        task_group: TaskGroup,
        params: Mapping[str, str] | None = None,
    ) -> None:
        self.chat = chat
        self.last_ids: list[str] = []
        self.params: dict[str, str] = dict(params or {})
        self._task_group = task_group
        self._lock = anyio.Lock()
        self._token: CancelToken | None = None
        self._running = False
        self._loop_done: anyio.Event | None = None

    @property
    def chat_id(self) -> int:
        return self.chat.id

    @property
    def running(self) -> bool:
        return self._running

    @property
    def token(self) -> CancelToken | None:
        return self._token

    async def start(
        self,
        callback: PollCallback,
        *,
        params: Mapping[str, str] | None = None,
    ) -> bool:
        """Start polling, replacing the active loop if there is one.

        Returns ``True`` when a running loop was replaced.

        The new loop does not invoke ``callback`` until the previous loop has
        exited, so two loops never run their callbacks at the same time.
        This call itself never waits for that.
        """
        async with self._lock:
            restarted = self._running
            if restarted:
                assert self._token is not None
                self._token.cancel()
            token = CancelToken()
            done = anyio.Event()
            previous = self._loop_done
            self._token = token
            self._loop_done = done
            if params is not None:
                self.params = dict(params)
            self._running = True
            self._task_group.start_soon(self._run, token, callback, previous, done)
        logger.info(
            "subscription.restarted" if restarted else "subscription.started",
            chat_id=self.chat_id,
            params=self.params,
        )
        return restarted

    async def stop(self) -> bool:
        """Request termination of the active loop; no-op when stopped.

        Returns ``True`` when a running loop was told to stop. Does not wait
        for an in-flight callback invocation to finish, use
        :meth:`wait_stopped` for that.
        """
        stopped = await self._release(None)
        if stopped:
            logger.info("subscription.stopped", chat_id=self.chat_id)
        return stopped

    async def wait_stopped(self) -> None:
        """Wait until the most recently scheduled loop has exited."""
        done = self._loop_done
        if done is not None:
            await done.wait()

    async def _release(self, owner: CancelToken | None) -> bool:
        # owner=None releases whatever loop is active; otherwise only that token
        async with self._lock:
            if not self._running:
                return False
            token = self._token
            assert token is not None
            if owner is not None and token is not owner:
                return False
            self._token = None
            self._running = False
            token.cancel()
        return True

    async def _run(
        self,
        token: CancelToken,
        callback: PollCallback,
        previous: anyio.Event | None,
        done: anyio.Event,
    ) -> None:
        try:
            if previous is not None:
                await previous.wait()
            while not token.cancelled:
                try:
                    await callback(token)
                except Exception as exc:
                    logger.exception(
                        "subscription.callback_failed",
                        chat_id=self.chat_id,
                        error=str(exc),
                        error_type=exc.__class__.__name__,
                    )
                    await self._release(token)
                    return
                await anyio.lowlevel.checkpoint()
        finally:
            done.set()
            logger.debug("subscription.loop_exited", chat_id=self.chat_id)


class Subscriptions:
    """Table of subscriptions keyed by chat id, sharing one task group."""

    def __init__(self, task_group: TaskGroup) -> None:
        self._task_group = task_group
        self._by_chat: dict[int, Subscription] = {}

    def __len__(self) -> int:
        return len(self._by_chat)

    def __contains__(self, chat_id: object) -> bool:
        return chat_id in self._by_chat

    def get(self, chat_id: int) -> Subscription | None:
        return self._by_chat.get(chat_id)

    def get_or_create(self, chat: ChatRef) -> Subscription:
        subscription = self._by_chat.get(chat.id)
        if subscription is None:
            subscription = Subscription(chat, task_group=self._task_group)
            self._by_chat[chat.id] = subscription
            logger.debug("subscriptions.created", chat_id=chat.id)
        return subscription

    async def remove(self, chat_id: int) -> Subscription | None:
        subscription = self._by_chat.pop(chat_id, None)
        if subscription is not None:
            await subscription.stop()
        return subscription

    async def stop_all(self) -> None:
        subscriptions = list(self._by_chat.values())
        self._by_chat.clear()
        for subscription in subscriptions:
            await subscription.stop()
        if subscriptions:
            logger.info("subscriptions.stopped_all", count=len(subscriptions))
