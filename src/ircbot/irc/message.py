"""IRC message parsing and serialization.

The grammar follows RFC 2812 closely enough for client use: an optional prefix, a
command (letters or a three digit numeric) and up to one trailing parameter. Host
names are not validated; anything without a space is accepted.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field

_MESSAGE_RE = re.compile(
    r"^(?::(?P<prefix>[^ \x00\r\n]+)[ ]+)?"
    r"(?P<command>[A-Za-z]+|[0-9]{3})"
    r"(?P<middle>(?:[ ]+[^:\x00\r\n ][^\x00\r\n ]*)*)"
    r"(?:[ ]+:(?P<trailing>[^\x00\r\n]*))?"
    r"[ ]*$"
)

_USER_PREFIX_RE = re.compile(r"^(?P<nick>[^!@]+)(?:!(?P<user>[^@]+))?(?:@(?P<host>.+))?$")


@dataclass(frozen=True)
class ServerPrefix:
    """Message originated from a server."""

    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class UserPrefix:
    """Message originated from a user: nick[!user][@host]."""

    nick: str
    user: str | None = None
    host: str | None = None

    @property
    def ident(self) -> str:
        """user@host when both are known, else the nickname."""
        if self.user and self.host:
            return f"{self.user}@{self.host}"
        return self.nick

    def __str__(self) -> str:
        out = self.nick
        if self.user:
            out += f"!{self.user}"
        if self.host:
            out += f"@{self.host}"
        return out


Prefix = ServerPrefix | UserPrefix


@dataclass
class Message:
    """Parsed IRC line."""

    command: str
    params: list[str] = field(default_factory=list)
    prefix: Prefix | None = None

    @property
    def is_numeric(self) -> bool:
        return self.command.isdigit()

    @property
    def numeric(self) -> int | None:
        return int(self.command) if self.is_numeric else None

    @property
    def nick(self) -> str | None:
        """Sender nickname, if the prefix names a user."""
        return self.prefix.nick if isinstance(self.prefix, UserPrefix) else None


def parse_prefix(raw: str) -> Prefix:
    if "!" not in raw and "@" not in raw:
        return ServerPrefix(raw)
    match = _USER_PREFIX_RE.match(raw)
    if match is None:
        return ServerPrefix(raw)
    return UserPrefix(nick=match["nick"], user=match["user"], host=match["host"])


def parse_message(line: str) -> Message | None:
    """Parse one line. Returns None when the line does not match the grammar."""
    if line.endswith("\r\n"):
        line = line[:-2]
    match = _MESSAGE_RE.match(line)
    if match is None:
        return None

    params = match["middle"].split()
    if match["trailing"] is not None:
        params.append(match["trailing"])

    prefix = parse_prefix(match["prefix"]) if match["prefix"] else None
    return Message(command=match["command"].upper(), params=params, prefix=prefix)


def serialize_message(command: str, params: Sequence[str] = ()) -> str:
    """Build a wire line. The last parameter is always sent as trailing parameter."""
    if not params:
        return f"{command}\r\n"
    *middle, last = params
    line = command
    if middle:
        line += " " + " ".join(middle)
    return f"{line} :{last}\r\n"
