"""
=============================================================================
CONSOLE CHAT CLIENT
=============================================================================

A companion client for the relay, in the spirit of `telnet host 9000` but
with a name:

    $ python -m chatrelay client --name Alice
    Alice joined            ◄── own announcement, echoed by the server
    Bob joined
    hi everyone             ◄── typed
    Alice: hi everyone      ◄── echoed back
    Bob: hey Alice

Two threads:

    ┌─────────────────────────────────────────────────────────────────┐
    │                                                                  │
    │   main thread                       receiver thread              │
    │   input line ──► send_line()        read_line() ──► print        │
    │        │                                  ▲                      │
    │        ▼                                  │                      │
    │   ┌──────────────────────────────────────────────┐              │
    │   │                  Connection                   │              │
    │   └──────────────────────────────────────────────┘              │
    │                                                                  │
    └─────────────────────────────────────────────────────────────────┘

When input ends (Ctrl+D) the client closes its side; when the server goes
away the receiver prints a notice and stops.

=============================================================================
"""

import socket
import sys
import logging
import threading
from typing import Optional, TextIO

from .core.connection import Connection
from .chat.protocol import LineTooLongError, format_chat, format_join


logger = logging.getLogger(__name__)


class ChatClient:
    """
    Line-based console chat client.

    Args:
        host: Relay host.
        port: Relay port.
        name: Display name, announced on connect and prefixed to messages.
        input_stream: Where typed lines come from (default: stdin).
        output_stream: Where received lines go (default: stdout).
        connect_timeout: Seconds to wait for the TCP connection.
    """

    def __init__(
        self,
        host: str,
        port: int,
        name: str,
        input_stream: Optional[TextIO] = None,
        output_stream: Optional[TextIO] = None,
        connect_timeout: float = 5.0,
    ):
        self.host = host
        self.port = port
        self.name = name
        self.input_stream = input_stream if input_stream is not None else sys.stdin
        self.output_stream = output_stream if output_stream is not None else sys.stdout
        self.connect_timeout = connect_timeout

        self._connection: Optional[Connection] = None
        self._receiver: Optional[threading.Thread] = None
        self._output_lock = threading.Lock()
        self._leaving = False

    def connect(self) -> Connection:
        """
        Open the connection and announce ourselves.

        Raises:
            ConnectionError: If the relay is unreachable.
        """
        try:
            sock = socket.create_connection((self.host, self.port), timeout=self.connect_timeout)
        except OSError as e:
            raise ConnectionError(f"Cannot connect to {self.host}:{self.port}: {e}") from e

        self._connection = Connection(socket=sock, address=(self.host, self.port))
        self._connection.send_line(format_join(self.name))
        logger.debug(f"Connected to {self.host}:{self.port} as {self.name}")
        return self._connection

    def start_receiver(self) -> threading.Thread:
        """Start the background thread that prints incoming lines."""
        self._receiver = threading.Thread(
            target=self._receive_loop,
            name="chat-receiver",
            daemon=True,
        )
        self._receiver.start()
        return self._receiver

    def _receive_loop(self):
        conn = self._connection
        try:
            while True:
                line = conn.read_line()
                if line is None:
                    break
                self._print(line)
        except LineTooLongError as e:
            logger.warning(f"Receive failed: {e}")
            conn.close()
            self._print("*** Disconnected from server ***")
            return
        except OSError as e:
            # Our own close() while blocked in recv() lands here too
            if not (self._leaving or conn.is_closed):
                logger.warning(f"Receive failed: {e}")
            return

        if not (self._leaving or conn.is_closed):
            self._print("*** Disconnected from server ***")

    def _print(self, line: str):
        with self._output_lock:
            print(line, file=self.output_stream, flush=True)

    def send(self, text: str) -> bool:
        """Send one chat message as "<name>: <text>"."""
        if self._connection is None:
            raise RuntimeError("Client is not connected")
        return self._connection.send_line(format_chat(self.name, text))

    def run(self):
        """
        Connect, then forward input lines until input ends or the server
        goes away.

        Raises:
            ConnectionError: If the relay is unreachable.
        """
        self.connect()
        self.start_receiver()

        try:
            for raw in self.input_stream:
                text = raw.rstrip("\r\n")
                if not self.send(text):
                    break
        except KeyboardInterrupt:
            pass
        finally:
            self.close()

    def close(self, timeout: float = 2.0):
        """
        Leave the chat.

        Half-closes first so the relay sees end-of-stream after our last
        line, lets the receiver drain until the relay closes its side
        (bounded by `timeout`), then releases the socket.
        """
        if self._connection is None:
            return

        self._leaving = True
        self._connection.shutdown_write()
        if self._receiver is not None and self._receiver is not threading.current_thread():
            self._receiver.join(timeout)
        self._connection.close()
