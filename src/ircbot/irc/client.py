"""IRC client: connection lifecycle, flood-controlled sending, inbound dispatch."""

from __future__ import annotations

import ipaddress
import platform
import re
import socket
import time
from collections.abc import Callable, Iterable
from enum import Enum
from typing import TYPE_CHECKING, Any

from loguru import logger

from ircbot import __version__
from ircbot.config import Config
from ircbot.core.constants import (
    CTCP_SUPPORTED,
    ERR_NICKNAMEINUSE,
    ERR_NOMOTD,
    ERROR_HOOKS,
    REPLY_HOOKS,
    RPL_ENDOFMOTD,
    RPL_WELCOME,
    RPL_WHOISACCOUNT,
)
from ircbot.core.errors import ConfigurationError, InvalidStateError, SocketError
from ircbot.events import PrivMsg
from ircbot.irc.ctcp import Extended, pack_message, unpack_message
from ircbot.irc.message import Message, parse_message, serialize_message
from ircbot.irc.queue import PRIORITY_HIGH, PRIORITY_LOW, PRIORITY_NORMAL, SendQueue
from ircbot.irc.throttle import PenaltyBudget
from ircbot.net.connection import Socket
from ircbot.net.reactor import Reactor, TimeoutHandle

if TYPE_CHECKING:
    from ircbot.plugin.manager import Manager

_DOMAIN_RE = re.compile(r"^(?=.{1,253}$)([A-Za-z0-9-]+\.)+[A-Za-z]{2,}$")
_CRLF = b"\r\n"


class ClientState(Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    CONNECTED = "connected"
    LAG_DETECTED = "lag_detected"


class ReplyMode(Enum):
    """How reply() addresses its answer."""

    NORMAL = "normal"  # channel for channel messages, sender for private ones
    NOTICE = "notice"  # always a notice to the sender
    ACTION = "action"  # CTCP ACTION to the NORMAL target


def _resolve_host(host: str) -> str:
    """Return an IPv4 address for host. Raises ConfigurationError."""
    try:
        return str(ipaddress.IPv4Address(host))
    except ValueError:
        pass
    if not _DOMAIN_RE.match(host):
        raise ConfigurationError(
            f"Invalid hostname: {host}",
            code="invalid_host",
            details={"host": host},
        )
    try:
        return socket.gethostbyname(host)
    except OSError as exc:
        raise ConfigurationError(
            f"Unable to resolve {host}: {exc}",
            code="resolve_failed",
            details={"host": host},
            original_error=exc,
        ) from exc


def _version_string() -> str:
    return f"ircbot {__version__} on Python {platform.python_version()} ({platform.system()} {platform.release()})"


def _clean(param: str) -> str:
    return param.replace("\r", " ").replace("\n", " ")


class Client:
    """One IRC connection owned by the bot.

    Drives connect, registration, lag detection and reconnect through the reactor.
    Outbound lines go through a priority queue throttled by a penalty budget; inbound
    lines are parsed and turned into hooks and PrivMsg objects for the plugin manager.
    """

    def __init__(
        self,
        reactor: Reactor,
        config: Config,
        manager: Manager | None = None,
        *,
        socket_factory: Callable[..., Any] = Socket,
    ) -> None:
        self._reactor = reactor
        self._config = config
        self.manager = manager
        self._socket = socket_factory(
            reactor,
            on_connect=self._on_connect,
            on_read=self._on_read,
            on_disconnect=self._on_disconnect,
        )
        self._queue = SendQueue(PenaltyBudget(config.penalty_limit))
        self._state = ClientState.IDLE
        self._buffer = bytearray()
        self._host: str | None = None
        self._port: int | None = None
        self._nickname: str | None = None
        self._username: str | None = None
        self._last_received = reactor.now()
        self._lag_timer: TimeoutHandle | None = None
        self._penalty_timer: TimeoutHandle | None = None
        self._reconnect_timer: TimeoutHandle | None = None
        self._quitting = False

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def nickname(self) -> str | None:
        return self._nickname

    @property
    def queue(self) -> SendQueue:
        return self._queue

    @property
    def socket(self) -> Any:
        return self._socket

    # -- connection lifecycle --

    def connect(
        self,
        host: str | None = None,
        port: int | None = None,
        nickname: str | None = None,
        username: str | None = None,
    ) -> None:
        """Connect, falling back to the last used parameters, then to config."""
        host = host or self._host or self._config.irc_host
        port = port or self._port or self._config.irc_port
        nickname = nickname or self._nickname or self._config.irc_nick
        username = username or self._username or self._config.irc_user or nickname
        if not host or not port or not nickname:
            raise InvalidStateError(
                "Host, port and nickname are required to connect",
                code="missing_connection_parameters",
                details={"host": host, "port": port, "nickname": nickname},
            )

        address = _resolve_host(host)
        self._host, self._port, self._nickname, self._username = host, port, nickname, username
        self._quitting = False
        self._cancel_timers()
        self._reactor.remove_timeout(self._reconnect_timer)
        self._reconnect_timer = None
        self._buffer.clear()
        self._state = ClientState.CONNECTING
        logger.info("Connecting to {} ({}) port {} as {}", host, address, port, nickname)
        self._socket.connect(address, port)

    def quit(self, reason: str = "Leaving") -> None:
        """Send QUIT, bypassing flood control. The connection is not re-established afterwards."""
        self._quitting = True
        self._reactor.remove_timeout(self._reconnect_timer)
        self._reconnect_timer = None
        if self._socket.connected:
            line = serialize_message("QUIT", [_clean(reason)])
            logger.debug(">> {}", line.rstrip())
            self._socket.send(line.encode(self._config.encoding, errors="replace"))

    def disconnect(self) -> None:
        """Close the connection immediately without reconnecting."""
        self._quitting = True
        self._reactor.remove_timeout(self._reconnect_timer)
        self._reconnect_timer = None
        self._cancel_timers()
        self._queue.clear()
        self._socket.close()
        self._state = ClientState.IDLE

    def _on_connect(self) -> None:
        self._state = ClientState.AUTHENTICATING
        self._last_received = self._reactor.now()
        logger.info("Connected to {}, registering as {}", self._host, self._nickname)
        self.send("NICK", [self._nickname], PRIORITY_HIGH)
        self.send("USER", [self._username, "0", "*", self._username], PRIORITY_HIGH)
        self._lag_timer = self._reactor.add_timeout(self._config.lag_check_interval, self._check_lag)
        self._penalty_timer = self._reactor.add_timeout(self._config.penalty_interval, self._penalty_tick)

    def _on_disconnect(self) -> None:
        logger.info("Disconnected from {}", self._host)
        self._queue.clear()
        self._queue.budget.reset()
        self._cancel_timers()
        self._buffer.clear()
        if self._quitting:
            self._state = ClientState.IDLE
            return
        if self._state is not ClientState.LAG_DETECTED:
            self._state = ClientState.IDLE
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        delay = self._config.reconnect_delay
        logger.info("Reconnecting in {}s", delay)
        self._reactor.remove_timeout(self._reconnect_timer)
        self._reconnect_timer = self._reactor.add_timeout(delay, self._reconnect)

    def _reconnect(self) -> None:
        self._reconnect_timer = None
        try:
            self.connect()
        except (ConfigurationError, SocketError) as exc:
            logger.error("Reconnect failed: {}", exc)
            self._state = ClientState.IDLE
            self._schedule_reconnect()

    def _cancel_timers(self) -> None:
        self._reactor.remove_timeout(self._lag_timer)
        self._reactor.remove_timeout(self._penalty_timer)
        self._lag_timer = None
        self._penalty_timer = None

    def _check_lag(self) -> None:
        self._lag_timer = None
        idle = self._reactor.now() - self._last_received
        if idle >= self._config.lag_threshold:
            logger.warning("Nothing received for {:.0f}s, dropping connection", idle)
            self._state = ClientState.LAG_DETECTED
            self._socket.close()
            self._on_disconnect()
            return
        if idle >= self._config.lag_check_interval:
            self.send("PING", [self._host or "ping"], PRIORITY_HIGH)
        self._lag_timer = self._reactor.add_timeout(self._config.lag_check_interval, self._check_lag)

    def _penalty_tick(self) -> None:
        self._queue.budget.refill()
        self._drain()
        self._penalty_timer = self._reactor.add_timeout(self._config.penalty_interval, self._penalty_tick)

    # -- outbound --

    def send(
        self,
        command: str,
        params: Iterable[str] | None = None,
        priority: int = PRIORITY_NORMAL,
        penalty: int = 0,
    ) -> None:
        """Queue a command. It is written as soon as the penalty budget allows."""
        line = serialize_message(command, [_clean(p) for p in params or ()])
        logger.debug(">> {}", line.rstrip())
        self._queue.put(line.encode(self._config.encoding, errors="replace"), priority, penalty)
        self._drain()

    def _drain(self) -> None:
        if self._socket.connected:
            self._queue.drain(self._socket.send)

    def send_privmsg(self, target: str, text: str, priority: int = PRIORITY_NORMAL) -> None:
        self.send("PRIVMSG", [target, text], priority)

    def send_notice(self, target: str, text: str, priority: int = PRIORITY_NORMAL) -> None:
        self.send("NOTICE", [target, text], priority)

    def reply(self, original: PrivMsg, text: str, mode: ReplyMode = ReplyMode.NORMAL) -> None:
        nick = original.nick
        if mode is ReplyMode.NOTICE:
            if nick:
                self.send_notice(nick, text)
            return
        if original.is_channel_message(self._nickname or ""):
            target = original.target
        elif nick:
            target = nick
        else:
            return
        if mode is ReplyMode.ACTION:
            self.send_privmsg(target, pack_message([Extended("ACTION", text)]))
        else:
            self.send_privmsg(target, text)

    def join(self, channels: str | Iterable[str], keys: str | Iterable[str] | None = None) -> None:
        """Join one or more channels. Missing keys are sent empty."""
        channels = [channels] if isinstance(channels, str) else list(channels)
        keys = [keys] if isinstance(keys, str) else list(keys or [])
        if not channels:
            return
        params = [",".join(channels)]
        if any(keys):
            keys += [""] * (len(channels) - len(keys))
            params.append(",".join(keys[: len(channels)]))
        self.send("JOIN", params)

    def part(self, channels: str | Iterable[str], reason: str | None = None) -> None:
        channels = [channels] if isinstance(channels, str) else list(channels)
        if not channels:
            return
        params = [",".join(channels)]
        if reason:
            params.append(reason)
        self.send("PART", params)

    def whois(self, nickname: str) -> None:
        self.send("WHOIS", [nickname])

    # -- inbound --

    def _on_read(self, data: bytes) -> None:
        self._last_received = self._reactor.now()
        self._buffer += data
        while True:
            end = self._buffer.find(_CRLF)
            if end < 0:
                break
            raw = bytes(self._buffer[:end])
            del self._buffer[: end + len(_CRLF)]
            if raw:
                self.handle_line(raw.decode(self._config.encoding, errors="replace"))

    def handle_line(self, line: str) -> None:
        """Parse and dispatch one line. Plugin failures are logged, not raised."""
        logger.debug("<< {}", line)
        msg = parse_message(line)
        if msg is None:
            logger.debug("Dropping unparseable line: {!r}", line)
            return
        try:
            if msg.is_numeric:
                self._on_numeric(msg)
                return
            handler = getattr(self, f"_on_raw_{msg.command.lower()}", None)
            if handler is not None:
                handler(msg)
        except SocketError:
            raise
        except Exception:
            logger.exception("Error while handling {}", msg.command)

    def _trigger_hook(self, hook: str, data: Any = None) -> None:
        if self.manager is not None:
            self.manager.trigger_hook(hook, data)

    def _on_numeric(self, msg: Message) -> None:
        code = msg.numeric
        params = msg.params
        if code == RPL_WELCOME:
            self._state = ClientState.CONNECTED
            if params:
                self._nickname = params[0]
            logger.info("Registered as {}", self._nickname)
            return
        if code == ERR_NICKNAMEINUSE and self._state is ClientState.AUTHENTICATING:
            self._nickname = f"{self._nickname}_"
            logger.warning("Nickname in use, retrying as {}", self._nickname)
            self.send("NICK", [self._nickname], PRIORITY_HIGH)

        hook = ERROR_HOOKS.get(code) if code >= 400 else REPLY_HOOKS.get(code)
        if hook is None:
            return
        if code in (RPL_ENDOFMOTD, ERR_NOMOTD):
            self._trigger_hook(hook)
        elif code == RPL_WHOISACCOUNT:
            if len(params) >= 3:
                self._trigger_hook(hook, (params[1], params[2]))
        elif len(params) >= 2:
            self._trigger_hook(hook, params[1])

    def _on_raw_ping(self, msg: Message) -> None:
        token = msg.params[-1] if msg.params else ""
        self.send("PONG", [token], PRIORITY_HIGH)

    def _on_raw_nick(self, msg: Message) -> None:
        if msg.params and msg.nick and self._nickname and msg.nick.lower() == self._nickname.lower():
            self._nickname = msg.params[0]
            logger.info("Nickname changed to {}", self._nickname)

    def _on_raw_privmsg(self, msg: Message) -> None:
        self._handle_text(msg, "privmsg")

    def _on_raw_notice(self, msg: Message) -> None:
        self._handle_text(msg, "notice")

    def _handle_text(self, msg: Message, kind: str) -> None:
        if len(msg.params) < 2:
            return
        target, text = msg.params[0], msg.params[-1]
        for part in unpack_message(text):
            if isinstance(part, Extended):
                # Replies to CTCP are notices; answering them could loop
                if kind == "privmsg":
                    self._answer_ctcp(msg, part)
                continue
            if self.manager is not None:
                self.manager.dispatch(PrivMsg(prefix=msg.prefix, target=target, message=part, kind=kind))

    def _answer_ctcp(self, msg: Message, request: Extended) -> None:
        nick = msg.nick
        if not nick or request.tag == "ACTION":
            return
        if request.tag == "VERSION":
            answer = Extended("VERSION", _version_string())
        elif request.tag == "PING":
            answer = Extended("PING", request.data)
        elif request.tag == "CLIENTINFO":
            answer = Extended("CLIENTINFO", " ".join(CTCP_SUPPORTED))
        elif request.tag == "TIME":
            answer = Extended("TIME", time.strftime("%a %b %d %H:%M:%S %Y"))
        else:
            answer = Extended("ERRMSG", f"{request.tag} :Unknown request")
        logger.debug("Answering CTCP {} from {}", request.tag, nick)
        self.send("NOTICE", [nick, pack_message([answer])], PRIORITY_LOW)
