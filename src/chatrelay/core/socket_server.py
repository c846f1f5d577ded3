"""
=============================================================================
LOW-LEVEL TCP SOCKET SERVER
=============================================================================

This module implements the connection acceptor: it owns the listening
socket, accepts connections and hands each one to a callback.

SOCKET LIFECYCLE (Server Side):
────────────────────────────────

    1. socket()    Create a socket file descriptor
    2. bind()      Associate the socket with an IP:PORT
    3. listen()    Mark socket as a "listening" socket
    4. accept()    Wait for and accept an incoming connection
                   └─ Returns a NEW socket just for that client
    5. close()     Release the socket resources

                    ┌───────────────────────┐
                    │   Listening Socket    │ ◄── Created once at startup
                    │   (Server Socket)     │     Bound to 127.0.0.1:9000
                    └───────────┬───────────┘     Never sends/receives data
                                │
        ┌───────────────────────┼───────────────────────┐
        ▼                       ▼                       ▼
    ┌───────────┐         ┌───────────┐         ┌───────────┐
    │Participant│         │Participant│         │Participant│
    │ Socket 1  │         │ Socket 2  │         │ Socket 3  │
    └───────────┘         └───────────┘         └───────────┘

=============================================================================
SOCKET OPTIONS
=============================================================================

SO_REUSEADDR:
    Lets a restarted server bind immediately instead of failing with
    "Address already in use" while the old socket sits in TIME_WAIT.
    It does NOT allow binding a port another process is listening on,
    so a genuinely busy port still raises BindError.

TCP_NODELAY:
    Disables Nagle's algorithm. Chat lines are tiny and interactive; we
    want each one on the wire immediately.

=============================================================================
"""

import socket
import signal
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


class BindError(OSError):
    """
    The listening endpoint could not be created.

    Fatal at startup: the port is in use or the process lacks permission.
    Never retried.
    """

    def __init__(self, host: str, port: int, cause: OSError):
        super().__init__(f"Failed to bind to {host}:{port}: {cause}")
        self.errno = cause.errno
        self.host = host
        self.port = port
        self.cause = cause


class SocketServer:
    """
    Low-level TCP socket server.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SocketServer Internals                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    start(callback)                                                   │
    │        ├──► _create_socket()   socket() + setsockopt()              │
    │        ├──► bind()             BindError on failure                 │
    │        ├──► listen()                                                 │
    │        ├──► _setup_signals()   main thread only                     │
    │        └──► _accept_loop()     BLOCKS here                          │
    │                 └──► accept() → Connection → callback(conn)          │
    │                                                                      │
    │    shutdown()        _running = False, wake waiters                  │
    │    _cleanup()        restore signals, close listening socket         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Usage:
        def on_connection(conn: Connection):
            ...

        server = SocketServer(config)
        server.start(on_connection)  # Blocks until shutdown
    """

    def __init__(self, config: ServerConfig):
        self.config = config

        # The actual socket object (created in start())
        self._socket: Optional[socket.socket] = None

        self._running = False
        self._bound_address: Optional[Tuple[str, int]] = None

        # Set once listen() succeeded; tests and the orchestrator wait on it
        self._listening_event = threading.Event()
        self._shutdown_event = threading.Event()

        # Original signal handlers, restored on cleanup
        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        """Check if server is running."""
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """
        Get the server's bound address (IP, port).

        After bind() this is the real address, so a config port of 0
        resolves to the port the OS picked.
        """
        if self._bound_address is not None:
            return self._bound_address
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        """Create and configure the server socket."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # accept() wakes up periodically so the loop can see shutdown()
        sock.settimeout(self.config.accept_timeout)
        return sock

    def _setup_signals(self):
        """
        Setup signal handlers for shutdown on SIGINT / SIGTERM.

        Python only allows installing handlers from the main thread. When
        the server runs in a background thread (tests, embedding) we skip
        this and leave shutdown to the caller.
        """
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        """Restore original signal handlers."""
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Start accepting connections.

        This method BLOCKS until shutdown() is called.

        Args:
            connection_handler: Called on the acceptor thread with each new
                               Connection. It must return quickly; the chat
                               server registers the participant and spawns
                               a handler thread.

        Raises:
            BindError: If the listening endpoint cannot be created.
        """
        self._socket = self._create_socket()

        try:
            self._socket.bind((self.config.host, self.config.port))
            self._socket.listen(self.config.backlog)
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise BindError(self.config.host, self.config.port, e) from e

        self._bound_address = self._socket.getsockname()[:2]
        self._running = True
        self._shutdown_event.clear()

        self._setup_signals()

        host, port = self._bound_address
        logger.info(f"Server listening on {host}:{port}")
        self._listening_event.set()

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        """
        Main loop for accepting connections.

        ┌─────────────────────────────────────────────────────────────────┐
        │                     Accept Loop Flow                             │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   while self._running:                                           │
        │       ├──► accept()          (timeout = accept_timeout)          │
        │       ├──► Connection(...)   wrap the client socket             │
        │       └──► connection_handler(conn)                              │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘
        """
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                # Normal: lets us re-check self._running
                continue
            except OSError as e:
                # Socket error - usually means we're shutting down
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address[:2],
                buffer_size=self.config.buffer_size,
                max_line_length=self.config.max_line_length,
                encoding=self.config.encoding,
            )

            try:
                connection_handler(conn)
            except Exception as e:
                # One bad connection must not take down the acceptor
                logger.exception(f"[{conn.id}] Connection handler failed: {e}")
                conn.close()

    def shutdown(self):
        """
        Stop accepting connections.

        Safe to call from a signal handler, another thread, or repeatedly.
        """
        if self._running:
            logger.info("Shutting down socket server...")
        self._running = False
        self._shutdown_event.set()

    def _cleanup(self):
        """Clean up resources on shutdown."""
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass  # Already closed
            self._socket = None

        self._running = False
        self._listening_event.clear()
        self._shutdown_event.set()
        logger.info("Socket server stopped")

    def wait_until_listening(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until the server is bound and accepting.

        Returns:
            True if listening, False on timeout.
        """
        return self._listening_event.wait(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the server to shut down.

        Returns:
            True if shutdown completed, False if timeout.
        """
        return self._shutdown_event.wait(timeout)
