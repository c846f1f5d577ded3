"""
=============================================================================
PARTICIPANT REGISTRY
=============================================================================

The set of everyone currently in the chat.

=============================================================================
ONE LOCK, THREE PATHS
=============================================================================

Three kinds of thread touch the registry:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   acceptor thread ──── add() ─────────┐                              │
    │                                       │                              │
    │   handler thread  ──── remove() ──────┼──►  _lock  ──► _participants │
    │   (on disconnect)                     │                              │
    │                                       │                              │
    │   handler thread  ──── locked() ──────┘                              │
    │   (broadcasting)       iterate + write while holding the lock        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A single coarse lock covers all three. While one broadcast is iterating
and writing, nobody can join, leave or broadcast. That gives us:

    • No "list changed size during iteration" crashes
    • No participant skipped because of a half-applied insert
    • Writes from two broadcasts never interleave on one socket
    • Messages from one sender are delivered in the order they were read

The price is throughput: a slow peer stalls everyone's broadcasts while
its write blocks. For a classroom chat, simple and correct wins.

=============================================================================
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator

from .participant import Participant


logger = logging.getLogger(__name__)


class ParticipantRegistry:
    """
    Thread-safe registry of active participants.

    Usage:
        registry = ParticipantRegistry()
        registry.add(participant)

        with registry.locked() as participants:
            for p in participants:
                p.deliver(data)

        registry.remove(participant)   # True the first time, then False
    """

    def __init__(self):
        self._participants: list[Participant] = []
        self._lock = threading.Lock()

    def add(self, participant: Participant) -> None:
        """
        Register a participant.

        Adding the same participant twice is a no-op, so a retried
        registration cannot make someone receive every line twice.
        """
        with self._lock:
            if participant in self._participants:
                return
            self._participants.append(participant)
            count = len(self._participants)
        logger.debug(f"[{participant.id}] Registered ({count} participants)")

    def remove(self, participant: Participant) -> bool:
        """
        Unregister a participant.

        Returns:
            True if this call removed it, False if it was not registered.
            Exactly one caller ever sees True for a given participant.
        """
        with self._lock:
            try:
                self._participants.remove(participant)
            except ValueError:
                return False
            count = len(self._participants)
        logger.debug(f"[{participant.id}] Unregistered ({count} participants)")
        return True

    @contextmanager
    def locked(self) -> Iterator[list[Participant]]:
        """
        Hold the registry lock and expose the live participant list.

        The list must be treated as read-only and must not escape the
        with-block. Calling add()/remove() inside the block deadlocks.
        """
        with self._lock:
            yield self._participants

    def snapshot(self) -> list[Participant]:
        """Copy of the current participants, safe to use after returning."""
        with self._lock:
            return list(self._participants)

    def __contains__(self, participant: object) -> bool:
        with self._lock:
            return participant in self._participants

    def __len__(self) -> int:
        with self._lock:
            return len(self._participants)
