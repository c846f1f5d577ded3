"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the chat relay.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m chatrelay serve --port 9100                     │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── CHAT_PORT=9100 python -m chatrelay serve                  │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The same dataclass is used by the server, the tests and the CLI, so the
defaults below are the single source of truth.

=============================================================================
"""

import os
from dataclasses import dataclass


LOG_FORMATS = ("text", "json")


@dataclass
class ServerConfig:
    """
    Configuration for the chat relay server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, buffer_size, accept_timeout

    CHAT SETTINGS
    - max_line_length, encoding, echo_to_sender

    LOGGING
    - log_level, log_format

    =========================================================================
    EXAMPLES
    =========================================================================

    Local development:
        ServerConfig(port=9000, log_level="DEBUG")

    Classroom LAN (everyone on the same network joins):
        ServerConfig(host="0.0.0.0", port=9000)

    Tests:
        ServerConfig(port=0)   # OS picks a free port

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """
    The IP address to bind to.
    - "127.0.0.1" - Localhost only
    - "0.0.0.0" - All network interfaces
    """

    port: int = 9000
    """
    The port number to listen on. 0 lets the OS choose a free port,
    which is what the test-suite does.
    """

    backlog: int = 128
    """
    Maximum number of queued connections waiting for accept().
    """

    buffer_size: int = 4096
    """
    Bytes requested per recv() call. Chat lines are short; 4 KB is plenty.
    """

    accept_timeout: float = 1.0
    """
    How long accept() blocks before the loop re-checks the running flag.
    This only bounds shutdown latency, it never affects participants.
    """

    # ─────────────────────────────────────────────────────────────────────
    # CHAT SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    max_line_length: int = 64 * 1024
    """
    Longest line (in bytes, terminator excluded) a participant may send.
    A participant exceeding it is disconnected; nobody else is affected.
    """

    encoding: str = "utf-8"
    """
    Text encoding on the wire. Undecodable bytes are replaced, not fatal.
    """

    echo_to_sender: bool = True
    """
    Whether the sender receives its own lines back. The classic console
    client relies on this to see its messages in the shared transcript.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """
    Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    DEBUG also logs every relayed line.
    """

    log_format: str = "text"
    """
    Session log format: 'text' or 'json'.
    """

    # ─────────────────────────────────────────────────────────────────────
    # SERVER IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    server_name: str = "ChatRelay/1.0"
    """
    Name shown in the startup banner.
    """

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        CHAT_HOST             Server host (default: 127.0.0.1)
        CHAT_PORT             Server port (default: 9000)
        CHAT_LOG_LEVEL        Logging level (default: INFO)
        CHAT_LOG_FORMAT       Session log format (default: text)
        CHAT_MAX_LINE_LENGTH  Longest accepted line (default: 65536)

        =====================================================================
        """
        return cls(
            host=os.getenv("CHAT_HOST", "127.0.0.1"),
            port=int(os.getenv("CHAT_PORT", "9000")),
            log_level=os.getenv("CHAT_LOG_LEVEL", "INFO"),
            log_format=os.getenv("CHAT_LOG_FORMAT", "text"),
            max_line_length=int(os.getenv("CHAT_MAX_LINE_LENGTH", str(64 * 1024))),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called from ChatServer.__init__ so a bad value fails at startup,
        before any socket is created.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.buffer_size < 256:
            raise ValueError("buffer_size must be >= 256")

        if self.max_line_length < 1:
            raise ValueError("max_line_length must be >= 1")

        if self.accept_timeout <= 0:
            raise ValueError("accept_timeout must be > 0")

        if self.log_format not in LOG_FORMATS:
            raise ValueError(
                f"Invalid log_format: {self.log_format!r}. "
                f"Must be one of {', '.join(LOG_FORMATS)}."
            )
