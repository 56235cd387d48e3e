"""Channels plugin: join and part on command, rejoin after reconnect."""

from __future__ import annotations

from typing import Any

from loguru import logger

from ircbot.core.constants import (
    CHANNEL_PREFIXES,
    HOOK_CONNECTED,
    HOOK_NO_SUCH_CHANNEL,
    HOOK_TOO_MANY_CHANNELS,
)
from ircbot.events import PrivMsg
from ircbot.irc.client import ReplyMode
from ircbot.plugin.base import Plugin


class Channels(Plugin):
    """Keeps the list of channels to sit in."""

    db_schema = {
        "channels": {
            "channel_id": "INTEGER PRIMARY KEY",
            "channel_name": "TEXT",
            "channel_key": "TEXT",
        }
    }

    def setup(self) -> None:
        (
            self.register_command("join", self.join, "channels.join")
            .register_command("part", self.part, "channels.part")
            .register_hook(HOOK_CONNECTED, self.connected_hook)
            .register_hook(HOOK_NO_SUCH_CHANNEL, self.remove_hook)
            .register_hook(HOOK_TOO_MANY_CHANNELS, self.remove_hook)
        )

    def _channel_arg(self, msg: PrivMsg, usage: str) -> str | None:
        channel = msg.get_word(0)
        if not channel or channel[0] not in CHANNEL_PREFIXES:
            self.client.reply(msg, usage, ReplyMode.NOTICE)
            return None
        return channel.lower()

    def join(self, msg: PrivMsg) -> None:
        channel = self._channel_arg(msg, "Usage: join <channel> [key]")
        if channel is None:
            return
        key = msg.get_word(1)
        self.client.join(channel, key)

        if self.db.fetch_one("channels", {"channel_name": channel}) is None:
            self.db.insert("channels", {"channel_name": channel, "channel_key": key})
        else:
            self.db.update("channels", {"channel_key": key}, {"channel_name": channel})

    def part(self, msg: PrivMsg) -> None:
        channel = self._channel_arg(msg, "Usage: part <channel>")
        if channel is None:
            return
        self.client.part(channel)
        self.db.delete("channels", {"channel_name": channel})

    def connected_hook(self, hook: str, data: Any) -> None:
        rows = self.db.fetch_all("channels")
        if not rows:
            return
        logger.info("Rejoining {} channel(s)", len(rows))
        self.client.join(
            [row["channel_name"] for row in rows],
            [row["channel_key"] or "" for row in rows],
        )

    def remove_hook(self, hook: str, data: Any) -> None:
        if not data:
            return
        channel = str(data).lower()
        if self.db.delete("channels", {"channel_name": channel}):
            logger.info("Forgot channel {} ({})", channel, hook)
