"""Reactor: single-threaded select() loop multiplexing sockets and timeouts."""

from __future__ import annotations

import itertools
import select
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, NewType

from loguru import logger

from ircbot.core.errors import SocketError

TimeoutHandle = NewType("TimeoutHandle", int)


class Event(Enum):
    """Readiness classification passed to socket callbacks."""

    READ = "read"
    WRITE = "write"
    EXCEPT = "except"


@dataclass
class Timeout:
    """Scheduled callback, owned by the reactor until fired or removed."""

    handle: TimeoutHandle
    fire_at: float
    callback: Callable[[], object]


@dataclass
class Registration:
    """One watched socket. Write interest also enables exceptional-condition watching."""

    sock: Any
    callback: Callable[[Event], object]
    want_write: bool = False


class Reactor:
    """Central event loop.

    One instance per process, constructed explicitly and passed to every component
    that needs it. All callbacks run synchronously on the thread calling run().
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], object] = time.sleep,
        select_errors_fatal: bool = True,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        self._select_errors_fatal = select_errors_fatal
        self._sockets: dict[Any, Registration] = {}
        self._timeouts: dict[TimeoutHandle, Timeout] = {}
        self._handles = itertools.count(1)
        self._stop = False

    @property
    def running(self) -> bool:
        return not self._stop

    def now(self) -> float:
        return self._clock()

    def run(self) -> None:
        """Run until stop() is called."""
        self._stop = False
        logger.debug("Reactor started")
        while not self._stop:
            self.run_once()
        logger.debug("Reactor stopped")

    def stop(self) -> None:
        """Stop the loop; takes effect at the start of the next iteration."""
        self._stop = True

    def run_once(self) -> None:
        """Run a single iteration: fire due timeouts, then wait for socket readiness."""
        self._fire_timeouts()
        wait = self._next_wait()

        if not self._sockets:
            if wait is None:
                logger.warning("Reactor has no sockets and no timeouts; stopping")
                self._stop = True
                return
            self._sleep(wait)
            return

        readers = list(self._sockets)
        writers = [s for s, reg in self._sockets.items() if reg.want_write]
        try:
            readable, writable, exceptional = select.select(readers, writers, writers, wait)
        except (OSError, ValueError) as exc:
            if self._select_errors_fatal:
                raise SocketError(
                    f"Error while selecting: {exc}",
                    code="select_failed",
                    original_error=exc,
                ) from exc
            logger.error("Error while selecting (ignored): {}", exc)
            return

        self._notify(readable, Event.READ)
        self._notify(writable, Event.WRITE)
        self._notify(exceptional, Event.EXCEPT)

    def _notify(self, socks: list[Any], event: Event) -> None:
        for sock in socks:
            # An earlier callback may have removed (or replaced) this socket
            reg = self._sockets.get(sock)
            if reg is not None:
                reg.callback(event)

    def _fire_timeouts(self) -> None:
        now = self._clock()
        for handle, timeout in list(self._timeouts.items()):
            if handle not in self._timeouts:
                continue
            if timeout.fire_at <= now:
                del self._timeouts[handle]
                timeout.callback()

    def _next_wait(self) -> float | None:
        if not self._timeouts:
            return None
        now = self._clock()
        return max(0.0, min(t.fire_at for t in self._timeouts.values()) - now)

    def add_reader(self, sock: Any, callback: Callable[[Event], object]) -> None:
        """Watch sock for readability. Re-adding replaces the callback."""
        reg = self._sockets.get(sock)
        if reg is None:
            self._sockets[sock] = Registration(sock=sock, callback=callback)
        else:
            reg.callback = callback

    def set_write_interest(self, sock: Any, enabled: bool) -> None:
        """Also watch sock for writability and exceptional conditions. No-op for unknown sockets."""
        reg = self._sockets.get(sock)
        if reg is not None:
            reg.want_write = enabled

    def remove_socket(self, sock: Any) -> None:
        """Stop watching sock. Safe to call for unknown or already removed sockets."""
        self._sockets.pop(sock, None)

    def has_socket(self, sock: Any) -> bool:
        return sock in self._sockets

    def add_timeout(self, seconds: float, callback: Callable[[], object]) -> TimeoutHandle:
        """Schedule callback after seconds. Returns a handle for remove_timeout()."""
        handle = TimeoutHandle(next(self._handles))
        self._timeouts[handle] = Timeout(handle=handle, fire_at=self._clock() + seconds, callback=callback)
        return handle

    def remove_timeout(self, handle: TimeoutHandle | None) -> None:
        """Cancel a timeout. Unknown handles are ignored."""
        if handle is not None:
            self._timeouts.pop(handle, None)

    def pending_timeouts(self) -> int:
        return len(self._timeouts)
