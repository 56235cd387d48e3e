"""Bot entrypoint. Loads config, wires the bot and runs the reactor."""

from __future__ import annotations

import argparse
import os
import signal
import sys
from pathlib import Path
from typing import Any

from loguru import logger

from ircbot import __version__
from ircbot.bot import Bot
from ircbot.config import Config, load_config_with_env
from ircbot.core.errors import BotError


def _safe_message_filter(record: Any) -> bool:
    """Escape braces/angles in log messages to prevent format/tag errors."""
    if isinstance(record.get("message"), str):
        msg = record["message"]
        msg = msg.replace("{", "{{").replace("}", "}}").replace("<", "\\<")
        record["message"] = msg
    return True


def setup_logging(verbose: bool = False) -> None:
    """Configure loguru. Replace default logging.
    Level: verbose=True or LOG_LEVEL=DEBUG enables DEBUG (raw IRC traffic); otherwise INFO."""
    level = "INFO"
    if verbose:
        level = "DEBUG"
    else:
        env_level = (os.environ.get("LOG_LEVEL") or "").upper()
        if env_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
            level = env_level

    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format=("<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan> | {message}"),
        filter=_safe_message_filter,
    )


def load(config_path: Path) -> Config:
    """Load and validate config from path."""
    config = Config()
    config.reload(load_config_with_env(config_path))
    return config


def main() -> None:
    """Main entrypoint."""
    parser = argparse.ArgumentParser(description="ircbot: event-driven IRC bot with plugins")
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    args = parser.parse_args()

    setup_logging(args.verbose)

    if not args.config.exists():
        logger.error("Config file not found: {}", args.config)
        sys.exit(1)

    try:
        config = load(args.config)
        bot = Bot(config)
    except BotError as exc:
        logger.error("Startup failed: {}", exc)
        sys.exit(1)
    logger.info("Config loaded from {}", args.config)

    def on_signal(signum: int, frame: object) -> None:
        bot.stop(f"Received {signal.Signals(signum).name}")

    signal.signal(signal.SIGINT, on_signal)
    signal.signal(signal.SIGTERM, on_signal)

    try:
        bot.run()
    except BotError as exc:
        logger.exception("Bot terminated: {}", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
