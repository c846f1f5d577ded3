"""
=============================================================================
BROADCAST RELAY
=============================================================================

Delivers one line to every registered participant.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      broadcast("hello")                              │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   encode once ──► b"hello\\n"                                        │
    │        │                                                             │
    │        ▼                                                             │
    │   with registry.locked() as participants:                            │
    │        │                                                             │
    │        ├──► A.deliver()  ✓                                           │
    │        ├──► B.deliver()  ✗  (broken pipe: log, count, keep going)    │
    │        └──► C.deliver()  ✓                                           │
    │                                                                      │
    │   BroadcastResult(recipients=3, delivered=2, failed=["b..."])        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
FAILURE POLICY
=============================================================================

A failed delivery is skipped, never retried, and never causes a removal
here. B's own handler thread is blocked reading B's socket; that read
fails or hits end-of-stream too, and the handler removes B. Keeping
removal on exactly one path is what makes cleanup happen exactly once.

=============================================================================
ORDERING
=============================================================================

Each handler calls broadcast() synchronously, in the order it read its
lines, and each broadcast runs entirely under the registry lock. So if
Alice sends M1 then M2, everybody sees M1 before M2. Lines from different
senders are ordered by who grabs the lock first; no global order is
promised beyond that.

=============================================================================
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from .participant import Participant
from .protocol import DEFAULT_ENCODING, encode_line
from .registry import ParticipantRegistry


logger = logging.getLogger(__name__)


@dataclass
class BroadcastResult:
    """Outcome of a single broadcast."""
    recipients: int = 0
    delivered: int = 0
    failed: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class BroadcastRelay:
    """
    Fan-out of lines to the registry.

    Args:
        registry: Participants to deliver to.
        echo_to_sender: Whether the sender receives its own line.
        encoding: Wire encoding.
    """

    def __init__(
        self,
        registry: ParticipantRegistry,
        echo_to_sender: bool = True,
        encoding: str = DEFAULT_ENCODING,
    ):
        self.registry = registry
        self.echo_to_sender = echo_to_sender
        self.encoding = encoding

        # Only mutated while the registry lock is held
        self.messages_relayed = 0
        self.deliveries_failed = 0

    def broadcast(self, line: str, sender: Optional[Participant] = None) -> BroadcastResult:
        """
        Deliver one line to every registered participant.

        The line is relayed unchanged: no trimming beyond the terminator,
        no filtering of empty lines, no special casing of announcements.

        Args:
            line: Message text, with or without a trailing newline.
            sender: Participant the line came from, if any. Only used to
                    honour echo_to_sender.

        Returns:
            BroadcastResult with per-broadcast delivery counts.
        """
        data = encode_line(line, self.encoding)
        result = BroadcastResult()

        with self.registry.locked() as participants:
            for participant in participants:
                if participant is sender and not self.echo_to_sender:
                    continue

                result.recipients += 1
                if participant.deliver(data):
                    result.delivered += 1
                else:
                    result.failed.append(participant.id)

            self.messages_relayed += 1
            self.deliveries_failed += len(result.failed)

        if result.failed:
            logger.warning(
                f"Broadcast reached {result.delivered}/{result.recipients} participants; "
                f"failed: {', '.join(result.failed)}"
            )
        else:
            logger.debug(f"Broadcast reached {result.delivered} participants")

        return result
