"""
=============================================================================
LINE PROTOCOL
=============================================================================

The chat relay speaks the simplest protocol there is: UTF-8 text, one
message per line.

    Client A                    Server                     Client B
       │                          │                           │
       │  "Alice joined\\n"        │                           │
       │ ───────────────────────► │  "Alice joined\\n"         │
       │                          │ ────────────────────────► │
       │  "Alice: hi\\n"           │                           │
       │ ───────────────────────► │  "Alice: hi\\n"            │
       │                          │ ────────────────────────► │

There is no framing, no length prefix and no message type. The server
does not look inside a line, it only moves lines around. The helpers for
the join announcement and the "name: text" format are conventions of the
console client; the server uses parse_join() purely to put a name in its
logs.

=============================================================================
LINE TERMINATORS
=============================================================================

We always WRITE "\\n". We accept "\\n" and "\\r\\n" on READ, because telnet
and netcat on some platforms send CRLF. Only the terminator is removed:
"abc\\r\\r\\n" is read as "abc\\r", and writing "abc\\r" puts exactly those
characters back on the wire.

Bytes that are not valid UTF-8 are decoded as U+FFFD and re-encoded as
such, so a relayed line is unchanged only as text, not byte for byte.

=============================================================================
"""

from typing import Optional


LINE_TERMINATOR = b"\n"
DEFAULT_ENCODING = "utf-8"
JOIN_SUFFIX = " joined"


class LineTooLongError(ValueError):
    """Raised when a peer sends a line longer than the configured limit."""

    def __init__(self, length: int, limit: int):
        super().__init__(f"Line too long: {length} bytes (limit {limit})")
        self.length = length
        self.limit = limit


def encode_line(text: str, encoding: str = DEFAULT_ENCODING) -> bytes:
    """
    Encode one message as a wire line.

    A single trailing "\\n" or "\\r\\n" is dropped first so callers can pass
    either "hello" or "hello\\n" and always get exactly one terminator.
    Any other carriage return is part of the message and is kept.
    """
    if text.endswith("\n"):
        text = text[:-1]
        if text.endswith("\r"):
            text = text[:-1]
    return text.encode(encoding, errors="replace") + LINE_TERMINATOR


def decode_line(raw: bytes, encoding: str = DEFAULT_ENCODING) -> str:
    """
    Decode one wire line into text.

    Strips one "\\n" or "\\r\\n" terminator if present. A bare "\\r" without a
    following "\\n" is content.
    """
    if raw.endswith(b"\n"):
        raw = raw[:-1]
        if raw.endswith(b"\r"):
            raw = raw[:-1]
    return raw.decode(encoding, errors="replace")


def format_join(name: str) -> str:
    """Join announcement sent by the console client as its first line."""
    return f"{name}{JOIN_SUFFIX}"


def parse_join(line: str) -> Optional[str]:
    """
    Extract the display name from a join announcement.

    Returns None when the line is not an announcement. The server never
    rejects a line that fails to parse; it simply has no name to log.
    """
    if not line.endswith(JOIN_SUFFIX):
        return None
    name = line[: -len(JOIN_SUFFIX)].strip()
    return name or None


def format_chat(name: str, text: str) -> str:
    """Chat line as written by the console client."""
    return f"{name}: {text}"
