"""CTCP codec: low-level and CTCP-level quoting plus extended message framing.

Outgoing text is packed as extended messages first, then plain text; low-level
quoting is applied to the whole result last. Unpacking reverses this and merges
all plain spans into a single trailing text part.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from ircbot.core.constants import CTCP_TAGS
from ircbot.core.errors import InvalidArgumentError

DELIMITER = "\x01"
LOW_QUOTE = "\x10"
CTCP_QUOTE = "\x5c"

_LOW_QUOTE_MAP = {LOW_QUOTE: LOW_QUOTE, "\x00": "0", "\r": "r", "\n": "n"}
_LOW_DEQUOTE_MAP = {v: k for k, v in _LOW_QUOTE_MAP.items()}
_CTCP_QUOTE_MAP = {CTCP_QUOTE: CTCP_QUOTE, DELIMITER: "a"}
_CTCP_DEQUOTE_MAP = {v: k for k, v in _CTCP_QUOTE_MAP.items()}

_LOW_QUOTE_RE = re.compile("[\x10\x00\r\n]")
_LOW_DEQUOTE_RE = re.compile("\x10(.)", re.DOTALL)
_CTCP_QUOTE_RE = re.compile("[" + re.escape(CTCP_QUOTE) + DELIMITER + "]")
_CTCP_DEQUOTE_RE = re.compile(re.escape(CTCP_QUOTE) + "(.)", re.DOTALL)
_EXTENDED_RE = re.compile("\x01([^\x01]*)\x01")


@dataclass(frozen=True)
class Extended:
    """Extended (tagged) CTCP message."""

    tag: str
    data: str | None = None


CtcpPart = str | Extended


def low_level_quote(text: str) -> str:
    return _LOW_QUOTE_RE.sub(lambda m: LOW_QUOTE + _LOW_QUOTE_MAP[m.group()], text)


def low_level_dequote(text: str) -> str:
    # Unmapped escapes decode to the escaped character itself
    return _LOW_DEQUOTE_RE.sub(lambda m: _LOW_DEQUOTE_MAP.get(m.group(1), m.group(1)), text)


def ctcp_quote(text: str) -> str:
    return _CTCP_QUOTE_RE.sub(lambda m: CTCP_QUOTE + _CTCP_QUOTE_MAP[m.group()], text)


def ctcp_dequote(text: str) -> str:
    return _CTCP_DEQUOTE_RE.sub(lambda m: _CTCP_DEQUOTE_MAP.get(m.group(1), m.group(1)), text)


def pack_message(parts: Iterable[CtcpPart]) -> str:
    """Pack plain text and extended messages into one wire-safe string.

    Raises InvalidArgumentError for extended messages with a tag outside the allow-list.
    """
    extended: list[str] = []
    plain: list[str] = []
    for part in parts:
        if isinstance(part, Extended):
            if part.tag not in CTCP_TAGS:
                raise InvalidArgumentError(
                    f"CTCP tag {part.tag!r} is not allowed",
                    code="invalid_ctcp_tag",
                    details={"tag": part.tag},
                )
            body = ctcp_quote(part.tag)
            if part.data is not None:
                body += " " + ctcp_quote(part.data)
            extended.append(DELIMITER + body + DELIMITER)
        else:
            plain.append(ctcp_quote(part))
    return low_level_quote("".join(extended) + "".join(plain))


def _parse_extended(span: str) -> Extended | None:
    body = ctcp_dequote(span)
    tag, sep, data = body.partition(" ")
    if tag not in CTCP_TAGS:
        return None
    return Extended(tag=tag, data=data if sep else None)


def unpack_message(raw: str) -> list[CtcpPart]:
    """Split a received message into extended parts followed by the merged plain text.

    Extended messages with unknown tags and empty frames are dropped.
    """
    text = low_level_dequote(raw)
    extended: list[CtcpPart] = []
    plain: list[str] = []
    pos = 0
    for match in _EXTENDED_RE.finditer(text):
        plain.append(ctcp_dequote(text[pos : match.start()]))
        part = _parse_extended(match.group(1))
        if part is not None:
            extended.append(part)
        pos = match.end()
    # An unmatched delimiter opens a frame that never closes; discard it
    plain.append(ctcp_dequote(text[pos:].replace(DELIMITER, "")))

    merged = "".join(plain)
    if merged:
        extended.append(merged)
    return extended
