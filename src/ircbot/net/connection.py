"""Non-blocking TCP stream socket driven by the reactor."""

from __future__ import annotations

import errno
import socket
from collections.abc import Callable
from enum import Enum

from loguru import logger

from ircbot.core.errors import SocketError
from ircbot.net.reactor import Event, Reactor

_READ_SIZE = 4096

# Errors meaning the peer or the OS dropped the connection; not fatal to the process
_DISCONNECT_ERRNOS = frozenset(
    {
        errno.ECONNRESET,
        errno.ENOTCONN,
        errno.ESHUTDOWN,
        errno.ECONNABORTED,
        errno.EPIPE,
        errno.EBADF,
    }
)

_CONNECT_PENDING_ERRNOS = frozenset({errno.EINPROGRESS, errno.EALREADY, errno.EWOULDBLOCK})


class SocketState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class Socket:
    """One non-blocking IPv4 stream connection with a single owner.

    The owner supplies on_connect(), on_read(data) and on_disconnect(). The socket can
    be reconnected after close(); every connect() opens a fresh descriptor.
    """

    def __init__(
        self,
        reactor: Reactor,
        *,
        on_connect: Callable[[], object] | None = None,
        on_read: Callable[[bytes], object] | None = None,
        on_disconnect: Callable[[], object] | None = None,
    ) -> None:
        self._reactor = reactor
        self.on_connect = on_connect
        self.on_read = on_read
        self.on_disconnect = on_disconnect
        self._sock: socket.socket | None = None
        self._state = SocketState.DISCONNECTED
        self._outbuf = bytearray()

    @property
    def state(self) -> SocketState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is SocketState.CONNECTED

    def connect(self, address: str, port: int) -> None:
        """Start connecting to address:port. Completion is reported through on_connect."""
        self.close()
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setblocking(False)
        self._sock = sock
        self._outbuf.clear()
        self._reactor.add_reader(sock, self._handle_event)
        self._reactor.set_write_interest(sock, True)
        self._state = SocketState.CONNECTING
        logger.debug("Connecting to {}:{}", address, port)

        err = sock.connect_ex((address, port))
        if err in _CONNECT_PENDING_ERRNOS:
            return
        if err in (0, errno.EISCONN):
            self._handle_connect_event()
            return
        if err in _DISCONNECT_ERRNOS or err == errno.ECONNREFUSED:
            logger.error("Connect to {}:{} failed: {}", address, port, errno.errorcode.get(err, err))
            self._handle_close()
            return
        self.close()
        raise SocketError(
            f"Error while connecting: {errno.errorcode.get(err, err)}",
            code="connect_failed",
            details={"address": address, "port": port, "errno": err},
        )

    def write(self, data: bytes) -> int:
        """Write as much of data as the kernel accepts. Returns the number of bytes written."""
        if self._sock is None:
            return 0
        try:
            return self._sock.send(data)
        except BlockingIOError:
            return 0
        except OSError as exc:
            if exc.errno in _DISCONNECT_ERRNOS:
                logger.info("Connection lost while writing: {}", exc)
                self._handle_close()
                return 0
            raise SocketError(f"Error while writing: {exc}", code="write_failed", original_error=exc) from exc

    def send(self, data: bytes) -> None:
        """Buffered write. Whatever the kernel does not take now is flushed on writability."""
        self._outbuf += data
        if self.connected:
            self._flush()

    def _flush(self) -> None:
        while self._outbuf and self.connected:
            written = self.write(bytes(self._outbuf))
            if written == 0:
                break
            del self._outbuf[:written]
        if self._sock is not None:
            self._reactor.set_write_interest(self._sock, bool(self._outbuf))

    def close(self) -> None:
        """Unregister and close. Does not call on_disconnect; safe to call repeatedly."""
        sock, self._sock = self._sock, None
        self._state = SocketState.DISCONNECTED
        if sock is None:
            return
        self._reactor.remove_socket(sock)
        try:
            sock.close()
        except OSError as exc:
            logger.debug("Ignoring error on close: {}", exc)

    def _handle_event(self, event: Event) -> None:
        if event is Event.READ:
            if self._state is SocketState.CONNECTING:
                self._handle_connect_event()
            if self.connected:
                self._handle_read()
        elif event is Event.WRITE:
            if self._state is SocketState.CONNECTING:
                self._handle_connect_event()
            elif self.connected:
                self._flush()
        elif event is Event.EXCEPT:
            self._handle_except_event()

    def _socket_error(self) -> int:
        if self._sock is None:
            return errno.EBADF
        return self._sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)

    def _handle_connect_event(self) -> None:
        err = self._socket_error()
        if err != 0:
            logger.error("Connect event error: {}", errno.errorcode.get(err, err))
            self._handle_close()
            return
        self._state = SocketState.CONNECTED
        logger.debug("Socket connected")
        if self._sock is not None:
            self._reactor.set_write_interest(self._sock, bool(self._outbuf))
        if self.on_connect is not None:
            self.on_connect()
        if self._outbuf:
            self._flush()

    def _handle_except_event(self) -> None:
        if self._socket_error() != 0:
            self._handle_close()

    def _handle_read(self) -> None:
        buffer = bytearray()
        closed = False
        while self._sock is not None:
            try:
                data = self._sock.recv(_READ_SIZE)
            except BlockingIOError:
                break
            except OSError as exc:
                if exc.errno in _DISCONNECT_ERRNOS:
                    logger.info("Connection lost while reading: {}", exc)
                    closed = True
                    break
                raise SocketError(f"Error while reading: {exc}", code="read_failed", original_error=exc) from exc
            if not data:
                closed = True
                break
            buffer += data

        if buffer and self.on_read is not None:
            self.on_read(bytes(buffer))
        if closed:
            self._handle_close()

    def _handle_close(self) -> None:
        was_open = self._sock is not None
        self.close()
        if was_open and self.on_disconnect is not None:
            self.on_disconnect()
