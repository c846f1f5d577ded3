"""
Chat participant.

A Participant is the server-side face of one connected chat member: its
connection (which doubles as the output sink for broadcasts) plus a little
bookkeeping for logs.
"""

import time
from dataclasses import dataclass, field
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..core.connection import Connection


@dataclass(eq=False)
class Participant:
    """
    One connected chat member.

    Identity is object identity (eq=False): two participants are never
    "equal" just because their fields match, which keeps registry
    membership and removal unambiguous.

    Attributes:
        connection: The accepted connection, owned by the handler thread.
        name: Display name, if the first line was a join announcement.
        joined_at: Registration timestamp.
    """

    connection: "Connection"
    name: Optional[str] = None
    joined_at: float = field(default_factory=time.time)

    @property
    def id(self) -> str:
        return self.connection.id

    @property
    def address(self) -> tuple[str, int]:
        return self.connection.address

    @property
    def lines_received(self) -> int:
        return self.connection.lines_read

    @property
    def display_name(self) -> str:
        """Name for logs: the announced name, else ip:port."""
        if self.name:
            return self.name
        return f"{self.address[0]}:{self.address[1]}"

    def deliver(self, data: bytes) -> bool:
        """
        Write one encoded line to this participant.

        Returns False when the sink is broken. The caller never cleans up;
        the participant's own handler notices the dead socket on its next
        read.
        """
        return self.connection.send(data)

    def close(self) -> bool:
        """Release the connection. Only the first call has an effect."""
        return self.connection.close()

    def __repr__(self) -> str:
        return f"Participant(id={self.id!r}, name={self.display_name!r})"
