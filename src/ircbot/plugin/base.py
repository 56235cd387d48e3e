"""Plugin base class: lifecycle, private storage and registration helpers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import TYPE_CHECKING, Any, ClassVar

from ircbot.storage import MEMORY, Database, Schema

if TYPE_CHECKING:
    from ircbot.irc.client import Client
    from ircbot.plugin.manager import Manager


class Plugin(ABC):
    """Interface for plugins.

    setup() registers commands, hooks, triggers and timeouts exactly once, when the
    plugin is registered with the manager. enable()/disable() are notifications; the
    manager skips a disabled plugin's registrations on its own.
    """

    # table -> {column: definition}; None means the plugin has no storage
    db_schema: ClassVar[Schema | None] = None

    def __init__(self, manager: Manager, database_path: str | Path | None = None) -> None:
        self.manager = manager
        self._database_path = database_path
        self._db: Database | None = None

    @property
    def name(self) -> str:
        """Plugin identifier: the lower-cased class name."""
        return type(self).__name__.lower()

    @property
    def client(self) -> Client:
        return self.manager.client

    @property
    def db(self) -> Database:
        """Private row store, opened on first use."""
        if self._db is None:
            if self.db_schema is None:
                raise AttributeError(f"Plugin {self.name} declares no db_schema")
            self._db = Database(self._db_file(), self.db_schema)
        return self._db

    def _db_file(self) -> str:
        if self._database_path is None:
            return MEMORY
        directory = Path(self._database_path)
        directory.mkdir(parents=True, exist_ok=True)
        return str(directory / f"{self.name}.db")

    @abstractmethod
    def setup(self) -> None:
        """Register extension points."""
        ...

    def enable(self) -> None:
        """Called when the plugin is enabled. Override for side effects."""
        pass

    def disable(self) -> None:
        """Called when the plugin is disabled. Override for side effects."""
        pass

    def register_command(
        self,
        verbs: str | Iterable[str],
        callback: Callable[..., Any],
        restrict: str | None = None,
    ) -> Plugin:
        self.manager.register_command(self.name, verbs, callback, restrict)
        return self

    def register_hook(self, hook: str, callback: Callable[[str, Any], Any]) -> Plugin:
        self.manager.register_hook(self.name, hook, callback)
        return self

    def register_trigger(self, pattern: str, callback: Callable[..., Any]) -> Plugin:
        self.manager.register_trigger(self.name, pattern, callback)
        return self

    def register_timeout(self, seconds: float, callback: Callable[[], Any]) -> Plugin:
        self.manager.register_timeout(self.name, seconds, callback)
        return self
