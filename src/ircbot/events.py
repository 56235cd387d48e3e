"""Application-level message objects handed to plugins."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from ircbot.irc.message import Prefix, UserPrefix


@dataclass(frozen=True)
class PrivMsg:
    """Inbound chat text (PRIVMSG or NOTICE) after CTCP unpacking."""

    prefix: Prefix | None
    target: str  # channel name or our own nickname
    message: str
    kind: Literal["privmsg", "notice"] = "privmsg"
    _words: list[str] = field(default_factory=list, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_words", self.message.split())

    @property
    def nick(self) -> str | None:
        return self.prefix.nick if isinstance(self.prefix, UserPrefix) else None

    @property
    def ident(self) -> str | None:
        """user@host of the sender, or the nickname when the host is hidden."""
        return self.prefix.ident if isinstance(self.prefix, UserPrefix) else None

    @property
    def words(self) -> list[str]:
        return list(self._words)

    def get_word(self, index: int) -> str | None:
        """Whitespace-separated word at index, or None."""
        if 0 <= index < len(self._words):
            return self._words[index]
        return None

    def is_channel_message(self, own_nick: str) -> bool:
        return self.target.lower() != own_nick.lower()
