"""Plugin manager: registry of plugins and their commands, hooks, triggers and timeouts."""

from __future__ import annotations

import importlib
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from loguru import logger

from ircbot.config import Config
from ircbot.core.errors import PluginContractError
from ircbot.events import PrivMsg
from ircbot.net.reactor import Reactor, TimeoutHandle
from ircbot.plugin.base import Plugin
from ircbot.plugin.plugins import Plugins
from ircbot.plugin.users import Users

if TYPE_CHECKING:
    from ircbot.irc.client import Client

BUILTIN_PLUGINS = ("plugins", "users")


@dataclass
class PluginEntry:
    plugin: Plugin
    enabled: bool


@dataclass
class CommandRegistration:
    owner: str
    callback: Callable[[PrivMsg], Any]
    restrict: str | None = None


@dataclass
class HookRegistration:
    owner: str
    callback: Callable[[str, Any], Any]


@dataclass
class TriggerRegistration:
    owner: str
    pattern: re.Pattern[str]
    callback: Callable[[PrivMsg, re.Match[str]], Any]


class Manager:
    """Owns every plugin and routes inbound messages and hooks to them.

    Registrations are permanent. A disabled plugin keeps its commands, hooks,
    triggers and timeouts registered; they are skipped while it stays disabled.
    """

    def __init__(self, config: Config, reactor: Reactor) -> None:
        self._config = config
        self._reactor = reactor
        self.client: Client | None = None
        self._plugins: dict[str, PluginEntry] = {}
        self._commands: dict[str, CommandRegistration] = {}
        self._hooks: dict[str, list[HookRegistration]] = {}
        self._triggers: list[TriggerRegistration] = []

        self.register_plugin(Plugins(self, config.database_path), enabled=True)
        self.register_plugin(Users(self, config.database_path), enabled=True)

    @property
    def config(self) -> Config:
        return self._config

    @property
    def reactor(self) -> Reactor:
        return self._reactor

    @property
    def plugin_names(self) -> list[str]:
        return list(self._plugins)

    # -- plugins --

    def register_plugin(self, plugin: Plugin, enabled: bool | None = None) -> Manager:
        """Register a plugin and run its setup(). None loads the persisted enabled state."""
        name = plugin.name
        if name in self._plugins:
            raise PluginContractError(
                f'Plugin with name "{name}" was already registered',
                code="duplicate_plugin",
                details={"plugin": name},
            )
        if enabled is None:
            store = self.get_plugin("plugins")
            enabled = isinstance(store, Plugins) and store.is_plugin_enabled(name)

        self._plugins[name] = PluginEntry(plugin=plugin, enabled=enabled)
        plugin.setup()
        if enabled:
            plugin.enable()
        logger.info("Registered plugin {} ({})", name, "enabled" if enabled else "disabled")
        return self

    def load_plugins(self, specs: Iterable[str]) -> None:
        """Import and register plugins given as 'module:Class' or 'module.Class'."""
        for spec in specs:
            if ":" in spec:
                module_name, _, class_name = spec.partition(":")
            else:
                module_name, _, class_name = spec.rpartition(".")
            if not module_name or not class_name:
                raise PluginContractError(f"Invalid plugin spec: {spec}", code="invalid_plugin_spec", details={"spec": spec})
            try:
                module = importlib.import_module(module_name)
                cls = getattr(module, class_name)
            except (ImportError, AttributeError) as exc:
                raise PluginContractError(
                    f"Unable to load plugin {spec}: {exc}",
                    code="plugin_import_failed",
                    details={"spec": spec},
                    original_error=exc,
                ) from exc
            if not (isinstance(cls, type) and issubclass(cls, Plugin)):
                raise PluginContractError(f"{spec} is not a Plugin", code="not_a_plugin", details={"spec": spec})
            self.register_plugin(cls(self, self._config.database_path))

    def has_plugin(self, name: str) -> bool:
        return name in self._plugins

    def get_plugin(self, name: str) -> Plugin | None:
        entry = self._plugins.get(name)
        return entry.plugin if entry is not None else None

    def is_enabled(self, name: str) -> bool:
        entry = self._plugins.get(name)
        return entry is not None and entry.enabled

    def _entry(self, name: str) -> PluginEntry:
        entry = self._plugins.get(name)
        if entry is None:
            raise PluginContractError(f'Plugin "{name}" does not exist', code="unknown_plugin", details={"plugin": name})
        return entry

    def enable_plugin(self, name: str) -> None:
        entry = self._entry(name)
        if entry.enabled:
            return
        entry.enabled = True
        entry.plugin.enable()
        logger.info("Plugin {} enabled", name)

    def disable_plugin(self, name: str) -> None:
        entry = self._entry(name)
        if name in BUILTIN_PLUGINS:
            raise PluginContractError(f'Plugin "{name}" cannot be disabled', code="builtin_plugin", details={"plugin": name})
        if not entry.enabled:
            return
        entry.enabled = False
        entry.plugin.disable()
        logger.info("Plugin {} disabled", name)

    # -- registration --

    def _check_owner(self, owner: str) -> None:
        if owner not in self._plugins:
            raise PluginContractError(
                f'Registration for unknown plugin "{owner}"',
                code="unknown_owner",
                details={"plugin": owner},
            )

    def register_command(
        self,
        owner: str,
        verbs: str | Iterable[str],
        callback: Callable[[PrivMsg], Any],
        restrict: str | None = None,
    ) -> None:
        """Map one or more verbs to callback. A later registration of a verb wins."""
        self._check_owner(owner)
        verbs = [verbs] if isinstance(verbs, str) else list(verbs)
        registration = CommandRegistration(owner=owner, callback=callback, restrict=restrict)
        for verb in verbs:
            key = verb.lower()
            previous = self._commands.get(key)
            if previous is not None and previous.owner != owner:
                logger.warning("Command {} of plugin {} replaced by plugin {}", key, previous.owner, owner)
            self._commands[key] = registration

    def register_hook(self, owner: str, hook: str, callback: Callable[[str, Any], Any]) -> None:
        self._check_owner(owner)
        self._hooks.setdefault(hook, []).append(HookRegistration(owner=owner, callback=callback))

    def register_trigger(
        self,
        owner: str,
        pattern: str | re.Pattern[str],
        callback: Callable[[PrivMsg, re.Match[str]], Any],
    ) -> None:
        self._check_owner(owner)
        compiled = re.compile(pattern) if isinstance(pattern, str) else pattern
        self._triggers.append(TriggerRegistration(owner=owner, pattern=compiled, callback=callback))

    def register_timeout(self, owner: str, seconds: float, callback: Callable[[], Any]) -> TimeoutHandle:
        """Run callback once after seconds, unless the owner is disabled by then."""
        self._check_owner(owner)

        def fire() -> None:
            if not self.is_enabled(owner):
                logger.debug("Skipping timeout of disabled plugin {}", owner)
                return
            try:
                callback()
            except Exception:
                logger.exception("Timeout of plugin {} failed", owner)

        return self._reactor.add_timeout(seconds, fire)

    # -- dispatch --

    def trigger_hook(self, hook: str, data: Any = None) -> None:
        """Call every enabled registration for hook in order. Errors propagate."""
        for registration in list(self._hooks.get(hook, ())):
            if self.is_enabled(registration.owner):
                registration.callback(hook, data)

    def dispatch(self, msg: PrivMsg) -> None:
        """Route msg to a command, or else to every matching trigger."""
        prefix = self._config.command_prefix
        text = msg.message
        if text.startswith(prefix):
            verb, _, rest = text[len(prefix) :].partition(" ")
            registration = self._commands.get(verb.lower())
            if registration is not None and self.is_enabled(registration.owner):
                self._run_command(registration, replace(msg, message=rest.strip()))
                return

        for trigger in list(self._triggers):
            if not self.is_enabled(trigger.owner):
                continue
            match = trigger.pattern.search(text)
            if match is not None:
                trigger.callback(msg, match)

    def _run_command(self, registration: CommandRegistration, msg: PrivMsg) -> None:
        if registration.restrict is None:
            registration.callback(msg)
            return
        users = self.get_plugin("users")
        if not isinstance(users, Users):
            raise PluginContractError("Restricted commands need the users plugin", code="users_plugin_missing")
        users.verify_access(registration.callback, msg, registration.restrict, owner=registration.owner)
