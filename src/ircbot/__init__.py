"""ircbot: event-driven IRC bot framework with plugins and flood control."""

__version__ = "0.1.0"
