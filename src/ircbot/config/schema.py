"""Config schema and accessor."""

from __future__ import annotations

import os
from typing import Any

from loguru import logger

from ircbot.core.errors import ConfigurationError

# Env keys that override config (loaded once per reload)
_ENV_OVERRIDE_KEYS = (
    "IRCBOT_IRC_HOST",
    "IRCBOT_IRC_PORT",
    "IRCBOT_IRC_NICK",
    "IRCBOT_DATABASE_PATH",
)


def _load_env_overrides() -> dict[str, str]:
    return {k: os.environ.get(k, "") for k in _ENV_OVERRIDE_KEYS}


def _parse_bool(val: Any) -> bool | None:
    """Parse a config/env value to bool; None if not a recognized bool."""
    if isinstance(val, bool):
        return val
    v = str(val).lower()
    if v in ("1", "true", "yes"):
        return True
    if v in ("0", "false", "no"):
        return False
    return None


class Config:
    """Config accessor with attribute-style access for known keys."""

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self._data = data or {}
        self._env: dict[str, str] = _load_env_overrides()

    def reload(self, data: dict[str, Any], *, validate: bool = True) -> None:
        """Replace config data."""
        self._data = data or {}
        self._env = _load_env_overrides()
        if validate:
            self._validate()
        logger.debug("Config reloaded: {} plugin specs", len(self.plugins))

    def _validate(self) -> None:
        """Validate config structure; raise ConfigurationError on failure."""
        irc = self._data.get("irc")
        if irc is not None and not isinstance(irc, dict):
            raise ConfigurationError(
                "irc must be a mapping",
                code="invalid_irc",
                details={"type": type(irc).__name__},
            )
        plugins = self._data.get("plugins")
        if plugins is not None and not isinstance(plugins, list):
            raise ConfigurationError(
                "plugins must be a list",
                code="invalid_plugins",
                details={"type": type(plugins).__name__},
            )
        try:
            port = self.irc_port
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(
                "irc.port must be an integer",
                code="invalid_port",
                original_error=exc,
            ) from exc
        if not 0 < port < 65536:
            raise ConfigurationError(
                f"irc.port out of range: {port}",
                code="invalid_port",
                details={"port": port},
            )
        prefix = self.command_prefix
        if not prefix or " " in prefix:
            raise ConfigurationError(
                "command_prefix must be non-empty and contain no spaces",
                code="invalid_command_prefix",
                details={"command_prefix": prefix},
            )

    @property
    def raw(self) -> dict[str, Any]:
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Get value by dot-separated path (e.g. 'irc.host')."""
        parts = key.split(".")
        obj: Any = self._data
        for part in parts:
            if isinstance(obj, dict) and part in obj:
                obj = obj[part]
            else:
                return default
        return obj

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __contains__(self, key: str) -> bool:
        return key in self._data

    @property
    def irc_host(self) -> str | None:
        """IRC server hostname or IPv4 address."""
        val = self._env.get("IRCBOT_IRC_HOST") or self.get("irc.host")
        return str(val) if val else None

    @property
    def irc_port(self) -> int:
        val = self._env.get("IRCBOT_IRC_PORT") or self.get("irc.port", 6667)
        return int(val)

    @property
    def irc_nick(self) -> str | None:
        val = self._env.get("IRCBOT_IRC_NICK") or self.get("irc.nick")
        return str(val) if val else None

    @property
    def irc_user(self) -> str | None:
        """Username sent with USER; defaults to the nickname."""
        val = self.get("irc.user")
        return str(val) if val else self.irc_nick

    @property
    def command_prefix(self) -> str:
        return str(self._data.get("command_prefix", "!"))

    @property
    def database_path(self) -> str | None:
        """Directory holding one SQLite file per plugin. None keeps plugin stores in memory."""
        val = self._env.get("IRCBOT_DATABASE_PATH") or self._data.get("database_path")
        return str(val) if val else None

    @property
    def plugins(self) -> list[str]:
        """Plugin specs to load ('package.module:ClassName')."""
        val = self._data.get("plugins")
        if isinstance(val, list):
            return [str(p) for p in val]
        return []

    @property
    def encoding(self) -> str:
        return str(self._data.get("encoding", "utf-8"))

    @property
    def reconnect_delay(self) -> float:
        """Seconds between a disconnect and the next connect attempt."""
        return float(self._data.get("reconnect_delay", 10))

    @property
    def lag_check_interval(self) -> float:
        return float(self._data.get("lag_check_interval", 60))

    @property
    def lag_threshold(self) -> float:
        """Seconds without inbound data before the connection is considered dead."""
        return float(self._data.get("lag_threshold", 300))

    @property
    def penalty_limit(self) -> int:
        """Flood control budget (penalty points)."""
        return int(self._data.get("penalty_limit", 10))

    @property
    def penalty_interval(self) -> float:
        """Seconds between budget refills of one point."""
        return float(self._data.get("penalty_interval", 1.0))

    @property
    def identity_cache_ttl_seconds(self) -> int:
        """TTL for WHOIS account cache in seconds."""
        return int(self._data.get("identity_cache_ttl_seconds", 3600))

    @property
    def select_errors_fatal(self) -> bool:
        """Raise on select() failure instead of logging and continuing."""
        parsed = _parse_bool(self._data.get("select_errors_fatal", True))
        return True if parsed is None else parsed
