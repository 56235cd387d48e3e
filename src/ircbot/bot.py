"""Bot: the context object that wires reactor, plugin manager and IRC client."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from loguru import logger

from ircbot.config import Config
from ircbot.irc.client import Client
from ircbot.net.connection import Socket
from ircbot.net.reactor import Reactor
from ircbot.plugin.manager import Manager


class Bot:
    """Owns every long-lived component. Create, run(), stop()."""

    def __init__(
        self,
        config: Config,
        *,
        reactor: Reactor | None = None,
        socket_factory: Callable[..., Any] = Socket,
    ) -> None:
        self.config = config
        self.reactor = reactor or Reactor(select_errors_fatal=config.select_errors_fatal)
        self.manager = Manager(config, self.reactor)
        self.client = Client(self.reactor, config, self.manager, socket_factory=socket_factory)
        self.manager.client = self.client
        self.manager.load_plugins(config.plugins)

    def run(self) -> None:
        """Connect and run the reactor until stop() is called."""
        self.client.connect()
        logger.info("Bot running with plugins: {}", ", ".join(self.manager.plugin_names))
        try:
            self.reactor.run()
        finally:
            self.client.disconnect()

    def stop(self, reason: str = "Shutting down") -> None:
        """Send QUIT and stop the reactor; safe to call from a signal handler."""
        logger.info("Bot stopping: {}", reason)
        self.client.quit(reason)
        self.reactor.stop()
