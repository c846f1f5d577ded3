"""
=============================================================================
CHAT RELAY SERVER
=============================================================================

The orchestrator that ties the acceptor, the registry and the relay into a
broadcast chat.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CHAT RELAY ARCHITECTURE                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │                        ┌─────────────────┐                          │
    │                        │   ChatServer    │                          │
    │                        │  (Orchestrator) │                          │
    │                        └────────┬────────┘                          │
    │                                 │                                    │
    │            ┌────────────────────┼────────────────────┐              │
    │            ▼                    ▼                    ▼              │
    │    ┌──────────────┐    ┌────────────────┐   ┌────────────────┐      │
    │    │ SocketServer │    │ Participant    │   │ BroadcastRelay │      │
    │    │  (Acceptor)  │    │ Registry       │◄──│  (Fan-out)     │      │
    │    └──────┬───────┘    └────────────────┘   └────────────────┘      │
    │           │                                         ▲               │
    │           ▼                                         │               │
    │    ┌──────────────┐   one thread per participant    │               │
    │    │  Connection  │ ──► _serve_participant() ───────┘               │
    │    └──────────────┘       read_line() → broadcast()                 │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PARTICIPANT LIFECYCLE
=============================================================================

    1. ACCEPT      (acceptor thread)
       └── SocketServer accepts, wraps the socket in a Connection

    2. REGISTER    (acceptor thread, before the handler exists)
       └── Participant added to the registry. Any broadcast that starts
           after this point includes the newcomer.

    3. SERVE       (handler thread)
       └── read_line() → relay.broadcast(line) → repeat

    4. LEAVE       (handler thread, exactly once)
       └── end-of-stream or I/O error
       └── registry.remove() → connection.close() → session log record

Registering on the acceptor thread rather than at the top of the handler
closes the window in which a connection is accepted but not yet visible
to broadcasts.

=============================================================================
"""

import logging
import threading
from typing import Optional

from .config import ServerConfig
from .core import SocketServer, Connection
from .chat import (
    BroadcastRelay,
    LineTooLongError,
    Participant,
    ParticipantRegistry,
    parse_join,
)
from .session_log import (
    SessionLogger,
    REASON_EOF,
    REASON_ERROR,
    REASON_OVERSIZE,
)


logger = logging.getLogger(__name__)


class ChatServer:
    """
    Broadcast chat relay.

    =========================================================================
    USAGE
    =========================================================================

        server = ChatServer(ServerConfig(port=9000))
        server.run()        # Blocks until Ctrl+C

    In a test or an embedding application:

        server = ChatServer(ServerConfig(port=0))
        thread = threading.Thread(target=server.run, daemon=True)
        thread.start()
        server.wait_until_ready(timeout=5)
        host, port = server.address
        ...
        server.shutdown()
        thread.join()

    =========================================================================
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        """
        Initialize the chat server.

        Args:
            config: Server configuration. Uses defaults if not provided.

        Raises:
            ValueError: If the configuration is invalid.
        """
        self.config = config or ServerConfig()
        self.config.validate()  # Fail-fast on invalid config

        self._socket_server = SocketServer(self.config)
        self._registry = ParticipantRegistry()
        self._relay = BroadcastRelay(
            self._registry,
            echo_to_sender=self.config.echo_to_sender,
            encoding=self.config.encoding,
        )
        self._session_logger = SessionLogger(log_format=self.config.log_format)

        # Live handler threads, joined on shutdown
        self._handlers: set[threading.Thread] = set()
        # Live connections by id. Kept apart from the registry so shutdown
        # never waits behind a broadcast stuck on a stalled reader.
        self._live_connections: dict[str, Connection] = {}
        self._handlers_lock = threading.Lock()

        # Only touched on the acceptor thread
        self._connections_accepted = 0

        self._running = False

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def registry(self) -> ParticipantRegistry:
        return self._registry

    @property
    def relay(self) -> BroadcastRelay:
        return self._relay

    @property
    def address(self) -> tuple[str, int]:
        """Bound (host, port); resolves port 0 once listening."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def stats(self) -> dict:
        """Snapshot of server counters."""
        with self._handlers_lock:
            handlers = len(self._handlers)
        return {
            "participants": len(self._registry),
            "handlers": handlers,
            "connections_accepted": self._connections_accepted,
            "messages_relayed": self._relay.messages_relayed,
            "deliveries_failed": self._relay.deliveries_failed,
        }

    # =========================================================================
    # SERVER LIFECYCLE
    # =========================================================================

    def run(self, host: Optional[str] = None, port: Optional[int] = None):
        """
        Start the server (blocking).

        Args:
            host: Override config host.
            port: Override config port.

        Raises:
            BindError: If the port cannot be bound. Nothing is served.
        """
        if host:
            self.config.host = host
        if port is not None:
            self.config.port = port

        self._setup_logging()
        self._running = True

        logger.info(f"Starting {self.config.server_name} on {self.config.host}:{self.config.port}")

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Wait until the listening socket accepts connections."""
        return self._socket_server.wait_until_listening(timeout)

    def _setup_logging(self):
        """Configure logging based on config."""
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        logging.getLogger("chatrelay").setLevel(level)

    def shutdown(self):
        """
        Stop the server.

        Stops accepting, then interrupts every participant's connection.
        There is no goodbye message: stopping is abrupt. Each handler
        sees end-of-stream and runs its normal cleanup path.
        """
        self._running = False
        self._socket_server.shutdown()

        # Not the registry lock: a broadcast may hold it while blocked in
        # sendall(), and interrupting the stalled sink is what frees it.
        with self._handlers_lock:
            connections = list(self._live_connections.values())

        for conn in connections:
            conn.interrupt()

    def _shutdown(self, timeout: float = 5.0):
        """Shutdown and wait (bounded) for handler threads to finish."""
        logger.info("Shutting down server...")
        self.shutdown()
        self.join_handlers(timeout)
        logger.info("Server stopped")

    def join_handlers(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for all handler threads to exit.

        Returns:
            True if every handler finished, False if some are still running.
        """
        with self._handlers_lock:
            handlers = list(self._handlers)

        for thread in handlers:
            thread.join(timeout)

        return not any(thread.is_alive() for thread in handlers)

    # =========================================================================
    # PARTICIPANT HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """
        Register a new participant and spawn its handler thread.

        Called by SocketServer on the acceptor thread for each connection.
        """
        participant = Participant(connection=conn)
        self._registry.add(participant)
        self._connections_accepted += 1

        thread = threading.Thread(
            target=self._serve_participant,
            args=(participant,),
            name=f"participant-{participant.id}",
            daemon=True,
        )

        with self._handlers_lock:
            self._handlers.add(thread)
            self._live_connections[conn.id] = conn

        try:
            thread.start()
        except RuntimeError as e:
            # Out of threads: this participant never gets served
            logger.error(f"[{participant.id}] Could not start handler: {e}")
            with self._handlers_lock:
                self._handlers.discard(thread)
                self._live_connections.pop(conn.id, None)
            self._registry.remove(participant)
            participant.close()
            return

        if not self._running:
            # Raced with shutdown(); let the handler clean up right away
            conn.interrupt()

    def _serve_participant(self, participant: Participant):
        """
        Handler loop for one participant (runs in its own thread).

        =====================================================================
        READ → BROADCAST LOOP
        =====================================================================

        1. read_line()             blocks until the participant sends
        2. None?                   peer closed → leave
        3. relay.broadcast(line)   deliver to everyone, in read order
        4. repeat

        Whatever ends the loop, the finally block removes, closes and logs
        exactly once. Errors stay inside this thread.

        =====================================================================
        """
        conn = participant.connection
        reason = REASON_EOF

        logger.info(
            f"[{participant.id}] {participant.display_name} connected "
            f"({len(self._registry)} participants)"
        )

        try:
            while True:
                line = conn.read_line()
                if line is None:
                    break

                if participant.name is None and conn.lines_read == 1:
                    participant.name = parse_join(line)

                logger.debug(f"[{participant.id}] {participant.display_name}: {line!r}")
                self._relay.broadcast(line, sender=participant)

        except LineTooLongError as e:
            reason = REASON_OVERSIZE
            logger.warning(f"[{participant.id}] {e}, disconnecting")

        except OSError as e:
            reason = REASON_ERROR
            logger.info(f"[{participant.id}] Connection error: {e}")

        except Exception as e:
            reason = REASON_ERROR
            logger.exception(f"[{participant.id}] Handler error: {e}")

        finally:
            self._registry.remove(participant)
            participant.close()
            self._session_logger.log(participant, reason)

            with self._handlers_lock:
                self._handlers.discard(threading.current_thread())
                self._live_connections.pop(conn.id, None)


def create_server(config: Optional[ServerConfig] = None) -> ChatServer:
    """
    Create a chat relay server.

    Example:
        server = create_server(ServerConfig.from_env())
        server.run()
    """
    return ChatServer(config)
