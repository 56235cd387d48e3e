"""Configuration: YAML + env overlay."""

from ircbot.config.loader import _deep_update, load_config, load_config_with_env
from ircbot.config.schema import Config

__all__ = ["Config", "_deep_update", "load_config", "load_config_with_env"]
