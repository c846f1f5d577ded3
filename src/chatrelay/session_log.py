"""
=============================================================================
SESSION LOGGING
=============================================================================

One structured record per participant session, emitted when the handler
finishes:

    TEXT FORMAT (default):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ 127.0.0.1:53211 [a1b2c3d4] Alice left (eof) 12 lines 8421.03ms      │
    └─────────────────────────────────────────────────────────────────────┘

    JSON FORMAT (for log aggregators):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ {"participant_id": "a1b2c3d4", "name": "Alice", "reason": "eof",    │
    │  "lines_received": 12, "duration_ms": 8421.03, ...}                 │
    └─────────────────────────────────────────────────────────────────────┘

Records go to the "chatrelay.sessions" logger so they can be routed or
silenced independently:

    logging.getLogger("chatrelay.sessions").setLevel(logging.WARNING)

=============================================================================
"""

import json
import time
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Optional

from .chat.participant import Participant


logger = logging.getLogger("chatrelay.sessions")


# Why a session ended
REASON_EOF = "eof"            # Peer closed its side
REASON_ERROR = "error"        # I/O failure on the participant's socket
REASON_OVERSIZE = "oversize"  # Line longer than max_line_length


@dataclass
class SessionLog:
    """Structured record of one participant session."""
    participant_id: str
    name: Optional[str]
    client_ip: str
    client_port: int
    lines_received: int
    duration_ms: float
    reason: str
    timestamp: str

    @classmethod
    def from_participant(cls, participant: Participant, reason: str) -> "SessionLog":
        return cls(
            participant_id=participant.id,
            name=participant.name,
            client_ip=participant.address[0],
            client_port=participant.address[1],
            lines_received=participant.lines_received,
            duration_ms=(time.time() - participant.joined_at) * 1000,
            reason=reason,
            timestamp=datetime.now(timezone.utc).isoformat(timespec="seconds"),
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        who = self.name or "participant"
        return (
            f"{self.client_ip}:{self.client_port} [{self.participant_id}] "
            f"{who} left ({self.reason}) {self.lines_received} lines "
            f"{self.duration_ms:.2f}ms"
        )


class SessionLogger:
    """
    Emits SessionLog records in the configured format.

    Args:
        log_format: "text" or "json".
        log_level: Level used for normal (eof) endings. Abnormal endings
                   are always logged at WARNING.
    """

    def __init__(self, log_format: str = "text", log_level: int = logging.INFO):
        self.log_format = log_format
        self.log_level = log_level

    def format(self, record: SessionLog) -> str:
        if self.log_format == "json":
            return json.dumps(record.to_dict())
        return record.to_text()

    def log(self, participant: Participant, reason: str) -> SessionLog:
        record = SessionLog.from_participant(participant, reason)
        level = self.log_level if reason == REASON_EOF else logging.WARNING
        logger.log(level, self.format(record))
        return record
