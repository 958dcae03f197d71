from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Protocol

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

log = logging.getLogger(__name__)

RefreshHandler = Callable[[str], Awaitable[Any]]
ErrorHandler = Callable[[str, BaseException], None]


class RefreshQueue(Protocol):
    def enqueue(self, user_id: str) -> None: ...


class NoopRefreshQueue:
    def enqueue(self, user_id: str) -> None:  # type: ignore[override]
        return None


class BackgroundRefreshQueue:
    """
    Summary refresh work, decoupled from the request path.

    - enqueue() is sync and never raises; a user already waiting is coalesced
    - a single consumer (run) drains the stream inside the app task group
    - handler failures go to on_error (and the log), never to the producer

    Lifecycle:
      queue = BackgroundRefreshQueue(on_error=...)
      async with anyio.create_task_group() as tg:
          tg.start_soon(queue.run, service.refresh_summary_if_needed)
          ...
          await queue.aclose()   # stop intake; run() drains and returns
    """

    def __init__(self, *, max_pending: int = 1000, on_error: ErrorHandler | None = None):
        self._send: MemoryObjectSendStream[str]
        self._receive: MemoryObjectReceiveStream[str]
        self._send, self._receive = anyio.create_memory_object_stream[str](max_pending)
        self._pending: set[str] = set()
        self._active = 0
        self._closed = False
        self._idle: anyio.Event | None = None
        self.on_error = on_error
        self.failures = 0
        self.processed = 0

    @property
    def pending(self) -> int:
        return len(self._pending)

    def enqueue(self, user_id: str) -> None:
        if self._closed:
            log.warning("refresh queue closed; dropping refresh for %s", user_id)
            return
        if user_id in self._pending:
            return
        try:
            self._send.send_nowait(user_id)
        except anyio.WouldBlock:
            log.warning("refresh queue full; dropping refresh for %s", user_id)
            return
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            log.warning("refresh queue closed; dropping refresh for %s", user_id)
            return
        self._pending.add(user_id)

    async def run(self, handler: RefreshHandler) -> None:
        async with self._receive:
            async for user_id in self._receive:
                # discard first: a new event during the refresh queues another pass
                self._pending.discard(user_id)
                self._active += 1
                try:
                    await handler(user_id)
                except Exception as exc:
                    self._report(user_id, exc)
                finally:
                    self._active -= 1
                    self.processed += 1
                    self._wake_if_idle()

    def _report(self, user_id: str, exc: BaseException) -> None:
        self.failures += 1
        log.error("summary refresh failed for %s: %r", user_id, exc)
        if self.on_error is not None:
            try:
                self.on_error(user_id, exc)
            except Exception as cb_exc:
                log.error("refresh error handler raised: %r", cb_exc)

    def _wake_if_idle(self) -> None:
        if self._idle is not None and not self._pending and not self._active:
            self._idle.set()
            self._idle = None

    async def join(self) -> None:
        """Wait until nothing is pending or running."""
        while self._pending or self._active:
            if self._idle is None:
                self._idle = anyio.Event()
            await self._idle.wait()

    async def aclose(self) -> None:
        self._closed = True
        await self._send.aclose()
