"""Bounded string helpers for notification payload fields."""

from __future__ import annotations

from typing import Optional

# Bitbucket rejects or mangles longer values.
MAX_FIELD_LENGTH = 255
MAX_URL_FIELD_LENGTH = 450

ELLIPSIS = "..."

_SHORT_ESCAPES = {
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    '"': '\\"',
    "'": "\\'",
    "\\": "\\\\",
    "/": "\\/",
}


def abbreviate(text: Optional[str], max_width: int) -> Optional[str]:
    """Clip text to max_width, marking the cut with a trailing ellipsis."""

    if text is None:
        return None
    if max_width < 4:
        raise ValueError("Minimum abbreviation width is 4")
    if len(text) <= max_width:
        return text
    return text[: max_width - len(ELLIPSIS)] + ELLIPSIS


def _unicode_escape(ch: str) -> str:
    code = ord(ch)
    if code > 0xFFFF:
        code -= 0x10000
        high = 0xD800 + (code >> 10)
        low = 0xDC00 + (code & 0x3FF)
        return f"\\u{high:04X}\\u{low:04X}"
    return f"\\u{code:04X}"


def escape_javascript(text: str) -> str:
    """Escape text the way JavaScript string literals expect it.

    Quotes, backslash and slash get a backslash prefix, the common control
    characters use their short form and everything else outside the ASCII
    range becomes a \\uXXXX sequence.
    """

    parts = []
    for ch in text:
        short = _SHORT_ESCAPES.get(ch)
        if short is not None:
            parts.append(short)
        elif ord(ch) < 0x20 or ord(ch) > 0x7F:
            parts.append(_unicode_escape(ch))
        else:
            parts.append(ch)
    return "".join(parts)
