"""Bot domain exceptions."""

from __future__ import annotations


class BotError(Exception):
    """Base for bot domain errors."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, object] | None = None,
        original_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details = details or {}
        self.original_error = original_error


class ConfigurationError(BotError):
    """Config validation failure, bad hostname or missing connection parameters."""


class InvalidStateError(BotError):
    """Operation not valid in the current state."""


class InvalidArgumentError(BotError, ValueError):
    """Argument outside the accepted domain (e.g. a CTCP tag not in the allow-list)."""


class SocketError(BotError):
    """Unexpected OS-level failure; terminates the affected connection."""


class PluginContractError(BotError):
    """Duplicate plugin, unknown plugin or registration against an unknown owner."""


class StorageError(BotError):
    """Unsupported schema migration or storage failure."""
