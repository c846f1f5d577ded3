"""
=============================================================================
CHATRELAY - Broadcast Chat Relay Over Raw TCP Sockets
=============================================================================

Every line any participant sends is relayed to every participant
currently connected. Built on the standard library socket and threading
modules, one thread per participant.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    chatrelay/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m chatrelay)
    ├── server.py            # ChatServer orchestrator
    ├── client.py            # Console chat client
    ├── config.py            # ServerConfig dataclass
    ├── session_log.py       # Per-session structured log records
    ├── core/                # Networking plumbing
    │   ├── socket_server.py # TCP acceptor
    │   └── connection.py    # Line-oriented socket wrapper
    └── chat/                # Chat semantics
        ├── protocol.py      # Line codec, join/chat formats
        ├── participant.py   # One connected member
        ├── registry.py      # Members under one lock
        └── relay.py         # Broadcast fan-out

=============================================================================
QUICK START
=============================================================================

    from chatrelay import ChatServer, ServerConfig

    server = ChatServer(ServerConfig(port=9000))
    server.run()

Then, from two terminals:

    python -m chatrelay client --name Alice
    python -m chatrelay client --name Bob

or simply `nc 127.0.0.1 9000`.

=============================================================================
"""

__version__ = "1.0.0"

from .server import ChatServer, create_server
from .config import ServerConfig
from .client import ChatClient
from .core import BindError

__all__ = [
    "ChatServer",
    "create_server",
    "ServerConfig",
    "ChatClient",
    "BindError",
    "__version__",
]
