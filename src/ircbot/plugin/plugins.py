"""Plugins plugin: switch plugins on and off, remembering the choice."""

from __future__ import annotations

from loguru import logger

from ircbot.events import PrivMsg
from ircbot.irc.client import ReplyMode
from ircbot.plugin.base import Plugin

PROTECTED = ("plugins", "users")


class Plugins(Plugin):
    db_schema = {
        "plugins": {
            "plugin_id": "INTEGER PRIMARY KEY",
            "plugin_name": "TEXT",
            "plugin_enabled": "INTEGER",
        }
    }

    def setup(self) -> None:
        self.register_command("plugin", self.switch_enabled, "plugins.switch")

    def is_plugin_enabled(self, name: str) -> bool:
        """Persisted enabled state; plugins never switched are disabled."""
        row = self.db.fetch_one("plugins", {"plugin_name": name})
        return bool(row["plugin_enabled"]) if row else False

    def store_plugin_enabled(self, name: str, enabled: bool) -> None:
        if self.db.fetch_one("plugins", {"plugin_name": name}) is None:
            self.db.insert("plugins", {"plugin_name": name, "plugin_enabled": int(enabled)})
        else:
            self.db.update("plugins", {"plugin_enabled": int(enabled)}, {"plugin_name": name})

    def switch_enabled(self, msg: PrivMsg) -> None:
        """plugin enable|disable <name>, or plugin list."""
        action = (msg.get_word(0) or "").lower()
        if action == "list":
            states = ", ".join(
                f"{name} ({'enabled' if self.manager.is_enabled(name) else 'disabled'})"
                for name in self.manager.plugin_names
            )
            self.client.reply(msg, f"Plugins: {states}", ReplyMode.NOTICE)
            return

        name = (msg.get_word(1) or "").lower()
        if action not in ("enable", "disable") or not name:
            self.client.reply(msg, "Usage: plugin enable|disable <name>, plugin list", ReplyMode.NOTICE)
            return

        enable = action == "enable"
        verb = "enabled" if enable else "disabled"
        if name in PROTECTED:
            self.client.reply(msg, f'Plugin "{name}" cannot be {verb}.', ReplyMode.NOTICE)
            return
        if not self.manager.has_plugin(name):
            self.client.reply(msg, f'Plugin "{name}" does not exist.', ReplyMode.NOTICE)
            return

        self.store_plugin_enabled(name, enable)
        if enable:
            self.manager.enable_plugin(name)
        else:
            self.manager.disable_plugin(name)
        logger.info("{} {} plugin {}", msg.nick, verb, name)
        self.client.reply(msg, f'Plugin "{name}" was {verb}.', ReplyMode.NOTICE)
