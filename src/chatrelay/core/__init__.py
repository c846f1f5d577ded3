"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The networking plumbing of the chat relay.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • Creates the TCP listening socket                                 │
    │  • Runs the accept() loop                                           │
    │  • Raises BindError when the port cannot be bound                   │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ Hands off new connections
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • Wraps a client socket                                            │
    │  • Buffered line reading (TCP is a stream, not messages!)           │
    │  • Serialized writes, close exactly once                            │
    └─────────────────────────────────────────────────────────────────────┘

Each accepted connection gets its own handler thread (see server.py).
There is no worker pool: a chat participant holds its thread for as long
as it stays connected, so pooling would only cap the number of people
who can talk.

=============================================================================
"""

from .socket_server import SocketServer, BindError
from .connection import Connection, ConnectionState

__all__ = [
    "SocketServer",     # TCP acceptor
    "BindError",        # Fatal startup error
    "Connection",       # Line-oriented client socket wrapper
    "ConnectionState",  # Enum for connection lifecycle states
]
