"""
pytest configuration and fixtures.
"""

import socket
import threading
import time
from typing import Callable, Generator, Optional
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from chatrelay import ChatServer, ServerConfig


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Poll until predicate() is true or the timeout expires."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def config() -> ServerConfig:
    """Default test server configuration."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        accept_timeout=0.1,
        log_level="WARNING",
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


class Peer:
    """A raw line-oriented test client."""

    def __init__(self, address: tuple[str, int], timeout: float = 5.0):
        self.sock = socket.create_connection(address, timeout=timeout)
        self.timeout = timeout
        self._buffer = b""

    def send(self, text: str):
        self.sock.sendall(text.encode("utf-8") + b"\n")

    def readline(self) -> Optional[str]:
        """Next line without terminator, or None at end-of-stream."""
        while b"\n" not in self._buffer:
            chunk = self.sock.recv(4096)
            if not chunk:
                if not self._buffer:
                    return None
                rest, self._buffer = self._buffer, b""
                return rest.decode("utf-8")
            self._buffer += chunk
        line, _, self._buffer = self._buffer.partition(b"\n")
        return line.decode("utf-8")

    def read_lines(self, count: int) -> list[str]:
        return [self.readline() for _ in range(count)]

    def expect_silence(self, wait: float = 0.3) -> bool:
        """True if no complete line arrives within `wait` seconds."""
        if b"\n" in self._buffer:
            return False
        self.sock.settimeout(wait)
        try:
            chunk = self.sock.recv(4096)
        except socket.timeout:
            return True
        finally:
            self.sock.settimeout(self.timeout)
        self._buffer += chunk
        return b"\n" not in self._buffer

    def close(self):
        self.sock.close()


class TestServer:
    """Test server helper that runs in a background thread."""

    __test__ = False  # not a test class

    def __init__(self, server: ChatServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None
        self._peers: list[Peer] = []

    def start(self):
        """Start server in background thread."""
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    @property
    def address(self) -> tuple[str, int]:
        return self.server.address

    def connect(self, registered: bool = True) -> Peer:
        """
        Connect a new peer.

        With registered=True, wait until the server has registered it, so
        the participant count is deterministic for the caller.
        """
        before = self.server.stats["connections_accepted"]
        peer = Peer(self.address)
        self._peers.append(peer)
        if registered:
            assert wait_for(lambda: self.server.stats["connections_accepted"] > before)
        return peer

    def stop(self):
        """Stop the server."""
        for peer in self._peers:
            try:
                peer.close()
            except OSError:
                pass
        self.server.shutdown()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)


@pytest.fixture
def chat_server(config: ServerConfig) -> Generator[TestServer, None, None]:
    """A running chat relay on a free port."""
    test_srv = TestServer(ChatServer(config))
    test_srv.start()

    yield test_srv

    test_srv.stop()
