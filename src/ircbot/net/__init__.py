"""Networking: reactor loop and non-blocking sockets."""

from ircbot.net.connection import Socket, SocketState
from ircbot.net.reactor import Event, Reactor, TimeoutHandle

__all__ = ["Event", "Reactor", "Socket", "SocketState", "TimeoutHandle"]
