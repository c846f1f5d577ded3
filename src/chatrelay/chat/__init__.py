"""
=============================================================================
CHAT COMPONENTS
=============================================================================

    protocol.py      Line codec and console-client conventions
    participant.py   One connected member
    registry.py      The set of members, one coarse lock
    relay.py         Fan-out of a line to every member

=============================================================================
"""

from .protocol import (
    LineTooLongError,
    encode_line,
    decode_line,
    format_join,
    parse_join,
    format_chat,
)
from .participant import Participant
from .registry import ParticipantRegistry
from .relay import BroadcastRelay, BroadcastResult

__all__ = [
    # Protocol
    "LineTooLongError",
    "encode_line",
    "decode_line",
    "format_join",
    "parse_join",
    "format_chat",
    # Members
    "Participant",
    "ParticipantRegistry",
    # Broadcast
    "BroadcastRelay",
    "BroadcastResult",
]
