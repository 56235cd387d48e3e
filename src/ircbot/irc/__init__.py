"""IRC protocol: wire format, CTCP codec, flood-controlled send queue and client."""

from ircbot.irc.ctcp import Extended, pack_message, unpack_message
from ircbot.irc.message import Message, ServerPrefix, UserPrefix, parse_message, serialize_message
from ircbot.irc.queue import PRIORITY_HIGH, PRIORITY_LOW, PRIORITY_NORMAL, PriorityQueue, SendQueue
from ircbot.irc.throttle import PenaltyBudget

__all__ = [
    "PRIORITY_HIGH",
    "PRIORITY_LOW",
    "PRIORITY_NORMAL",
    "Extended",
    "Message",
    "PenaltyBudget",
    "PriorityQueue",
    "SendQueue",
    "ServerPrefix",
    "UserPrefix",
    "pack_message",
    "parse_message",
    "serialize_message",
    "unpack_message",
]
