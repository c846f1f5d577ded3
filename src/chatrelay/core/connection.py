"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

This module wraps a raw client socket with a line-oriented API: read one
line, send one line, close exactly once.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

    Client sends:
        send("hello\\n")
        send("bye\\n")

    Server might receive ANY of these:
        recv() → "hello\\nbye\\n"    (both combined)
        recv() → "hel"              (partial)
        recv() → "lo\\nbye\\n"       (rest of first + second)

So we buffer received bytes and cut them at "\\n". Whatever follows the
terminator stays in the buffer for the next read_line() call.

=============================================================================
TWO THREADS, ONE SOCKET
=============================================================================

In the chat relay a connection is used from two sides at once:

    ┌─────────────────────────────────────────────────────────────────┐
    │                                                                  │
    │   handler thread (owner)           other handler threads        │
    │        │                                  │                      │
    │        │ read_line()  ◄── blocks          │ send(data)           │
    │        │                                  │  (relay delivery)    │
    │        ▼                                  ▼                      │
    │   ┌────────────────────────────────────────────────┐            │
    │   │                 client socket                   │            │
    │   └────────────────────────────────────────────────┘            │
    │                                                                  │
    └─────────────────────────────────────────────────────────────────┘

Reading happens only on the owning handler thread. Writing can happen
from any thread, so every write holds _write_lock: two broadcasts can
never interleave their bytes inside one line on the same socket.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──────► OPEN ──────► CLOSING ──────► CLOSED
     │                          ▲
     └──────────────────────────┘

=============================================================================
"""

import socket
import threading
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid

from ..chat.protocol import (
    DEFAULT_ENCODING,
    LineTooLongError,
    encode_line,
)


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states."""
    NEW = "new"          # Just accepted, nothing read yet
    OPEN = "open"        # Reading and writing lines
    CLOSING = "closing"  # Close in progress
    CLOSED = "closed"    # Socket released


@dataclass
class Connection:
    """
    A line-oriented client connection.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Responsibilities                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  1. BUFFERED LINE READING                                            │
    │     └── _buffer holds partial data between recv() calls              │
    │     └── Oversized lines raise LineTooLongError                       │
    │                                                                      │
    │  2. SERIALIZED WRITING                                               │
    │     └── sendall() under _write_lock, one line at a time              │
    │     └── Failures are reported as False, never raised                 │
    │                                                                      │
    │  3. CLOSE EXACTLY ONCE                                               │
    │     └── close() is idempotent and thread-safe                        │
    │     └── interrupt() wakes a blocked reader without closing           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Unique connection identifier (for logging).
        state: Current connection state.
        created_at: Timestamp when connection was accepted.
        last_activity: Timestamp of last read or write.
        lines_read: Number of lines returned by read_line().
        lines_sent: Number of lines successfully written.
    """

    # Required parameters
    socket: socket.socket
    address: tuple[str, int]

    # Generated/default parameters
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    lines_read: int = 0
    lines_sent: int = 0

    # Configuration (passed from ServerConfig)
    buffer_size: int = 4096
    max_line_length: int = 64 * 1024
    encoding: str = DEFAULT_ENCODING

    # Internal state (not shown in repr for cleaner logs)
    _buffer: bytes = field(default=b"", repr=False)
    _write_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _close_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self):
        # Peer reads have no timeout: a silent participant simply waits.
        self.socket.setblocking(True)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        """Get the client IP address."""
        return self.address[0]

    @property
    def client_port(self) -> int:
        """Get the client port."""
        return self.address[1]

    @property
    def age(self) -> float:
        """Get connection age in seconds."""
        return time.time() - self.created_at

    @property
    def is_closed(self) -> bool:
        return self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED)

    # =========================================================================
    # READING
    # =========================================================================

    def read_line(self) -> Optional[str]:
        """
        Read the next complete line from the socket.

        ┌─────────────────────────────────────────────────────────────────┐
        │                    read_line() Flow                              │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   while no "\\n" in buffer:                                      │
        │       recv() → chunk                                             │
        │       chunk empty?  → end-of-stream                              │
        │           buffer has a fragment → return it as the last line     │
        │           buffer empty          → return None                    │
        │       buffer += chunk                                            │
        │                                                                  │
        │   cut buffer at "\\n", keep the rest, decode, return            │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘

        Returns:
            The decoded line without its terminator, or None once the peer
            has closed its side and the buffer is drained.

        Raises:
            LineTooLongError: If a line exceeds max_line_length.
            OSError: If the socket fails in a way other than a reset.
        """
        if self.state == ConnectionState.NEW:
            self.state = ConnectionState.OPEN

        while True:
            newline = self._buffer.find(b"\n")
            if newline != -1:
                raw = self._buffer[:newline]
                self._buffer = self._buffer[newline + 1:]
                return self._finish_line(raw)

            # A "\r" may still precede the terminator, hence the + 1
            if len(self._buffer) > self.max_line_length + 1:
                raise LineTooLongError(len(self._buffer), self.max_line_length)

            chunk = self._recv()
            if not chunk:
                if self._buffer:
                    # Peer closed without a final terminator
                    raw, self._buffer = self._buffer, b""
                    return self._finish_line(raw, terminated=False)
                return None

            self._buffer += chunk

    def _finish_line(self, raw: bytes, terminated: bool = True) -> str:
        # Only the CR of a CRLF terminator goes; earlier CRs are content
        if terminated and raw.endswith(b"\r"):
            raw = raw[:-1]
        if len(raw) > self.max_line_length:
            raise LineTooLongError(len(raw), self.max_line_length)
        self.lines_read += 1
        return raw.decode(self.encoding, errors="replace")

    def _recv(self) -> bytes:
        """
        Receive data from socket with error handling.

        Returns:
            Received bytes, or empty bytes if the peer disconnected.
        """
        try:
            data = self.socket.recv(self.buffer_size)
            self.last_activity = time.time()
            return data
        except (ConnectionResetError, BrokenPipeError):
            # Client disconnected abruptly
            return b""

    # =========================================================================
    # WRITING
    # =========================================================================

    def send(self, data: bytes) -> bool:
        """
        Send already-encoded bytes to the client.

        Uses sendall() under the write lock so a line is never split by a
        concurrent writer.

        Returns:
            True if send succeeded, False if the connection is unusable.
        """
        if self.is_closed:
            return False

        with self._write_lock:
            try:
                self.socket.sendall(data)
            except OSError as e:
                # Client disconnected (reset, broken pipe, closed fd)
                logger.warning(f"[{self.id}] Send failed: {e}")
                return False
            self.lines_sent += 1
            self.last_activity = time.time()
            return True

    def send_line(self, text: str) -> bool:
        """Encode one line of text and send it."""
        return self.send(encode_line(text, self.encoding))

    # =========================================================================
    # CLOSING
    # =========================================================================

    def shutdown_write(self):
        """
        Half-close: tell the peer we are done sending (FIN) but keep
        reading whatever it still has to say.
        """
        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Already disconnected

    def interrupt(self):
        """
        Wake up a thread blocked in read_line() without releasing the socket.

        shutdown(SHUT_RDWR) makes a pending recv() return b"" so the owning
        handler sees end-of-stream and runs its own cleanup. The socket
        itself is closed later by close() on that handler thread.
        """
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Already disconnected

    def close(self) -> bool:
        """
        Close the connection.

        Safe to call from any thread and any number of times; only the
        first call does the work.

        Returns:
            True if this call closed the socket, False if it was already
            closed.
        """
        with self._close_lock:
            if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
                return False
            self.state = ConnectionState.CLOSING

        try:
            # Sends FIN and unblocks any writer stuck in sendall()
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Already disconnected, that's fine

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(
            f"[{self.id}] Connection closed after {self.lines_read} lines in, "
            f"{self.lines_sent} lines out"
        )
        return True

    # =========================================================================
    # CONTEXT MANAGER
    # =========================================================================

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - ensure connection is closed."""
        self.close()
        return False  # Don't suppress exceptions
