"""Protocol constants: hook catalogue, CTCP tags, numeric replies."""

from __future__ import annotations

from typing import Final

# Hooks emitted by the client
HOOK_CONNECTED: Final = "reply.connected"
HOOK_END_OF_WHOIS: Final = "reply.end-of-whois"
HOOK_WHOIS_ACCOUNT: Final = "reply.whois-account"
HOOK_NO_SUCH_CHANNEL: Final = "error.no-such-channel"
HOOK_TOO_MANY_CHANNELS: Final = "error.too-many-channels"
HOOK_NICKNAME_IN_USE: Final = "error.nickname-in-use"

HOOKS: tuple[str, ...] = (
    HOOK_CONNECTED,
    HOOK_END_OF_WHOIS,
    HOOK_WHOIS_ACCOUNT,
    HOOK_NO_SUCH_CHANNEL,
    HOOK_TOO_MANY_CHANNELS,
    HOOK_NICKNAME_IN_USE,
)

RPL_WELCOME: Final = 1
RPL_ENDOFWHOIS: Final = 318
RPL_WHOISACCOUNT: Final = 330
RPL_ENDOFMOTD: Final = 376
ERR_NOSUCHCHANNEL: Final = 403
ERR_TOOMANYCHANNELS: Final = 405
ERR_NOMOTD: Final = 422
ERR_NICKNAMEINUSE: Final = 433

# Numeric -> hook name (replies below 400, errors from 400 up)
REPLY_HOOKS: dict[int, str] = {
    RPL_ENDOFMOTD: HOOK_CONNECTED,
    RPL_ENDOFWHOIS: HOOK_END_OF_WHOIS,
    RPL_WHOISACCOUNT: HOOK_WHOIS_ACCOUNT,
}

ERROR_HOOKS: dict[int, str] = {
    ERR_NOMOTD: HOOK_CONNECTED,
    ERR_NOSUCHCHANNEL: HOOK_NO_SUCH_CHANNEL,
    ERR_TOOMANYCHANNELS: HOOK_TOO_MANY_CHANNELS,
    ERR_NICKNAMEINUSE: HOOK_NICKNAME_IN_USE,
}

CTCP_TAGS: frozenset[str] = frozenset(
    {
        "VERSION",
        "PING",
        "CLIENTINFO",
        "ACTION",
        "FINGER",
        "TIME",
        "DCC",
        "ERRMSG",
        "PLAY",
        "SOURCE",
        "USERINFO",
    }
)

# Tags the client answers itself
CTCP_SUPPORTED: tuple[str, ...] = ("ACTION", "CLIENTINFO", "PING", "TIME", "VERSION")

CHANNEL_PREFIXES: Final = "#&!+"
