"""
Tests for the console chat client against a running relay.
"""

import io
import socket
import threading

import pytest

from chatrelay import ChatClient
from conftest import TestServer, wait_for


class LineCollector(io.StringIO):
    """Thread-safe output stream that can be polled for lines."""

    def __init__(self):
        super().__init__()
        self._lock = threading.Lock()

    def write(self, s: str) -> int:
        with self._lock:
            return super().write(s)

    def lines(self) -> list[str]:
        with self._lock:
            return self.getvalue().splitlines()


class TestChatClient:
    """Tests for ChatClient."""

    def test_join_announcement(self, chat_server: TestServer):
        """Connecting announces the name to everyone."""
        observer = chat_server.connect()
        host, port = chat_server.address
        client = ChatClient(host, port, "Alice", output_stream=LineCollector())

        client.connect()
        try:
            assert observer.readline() == "Alice joined"
        finally:
            client.close()

    def test_run_sends_input_lines(self, chat_server: TestServer):
        """Each input line goes out as "<name>: <text>"."""
        observer = chat_server.connect()
        host, port = chat_server.address
        client = ChatClient(
            host, port, "Bob",
            input_stream=io.StringIO("hello\nhow are you?\n"),
            output_stream=LineCollector(),
        )

        client.run()

        assert observer.read_lines(3) == [
            "Bob joined",
            "Bob: hello",
            "Bob: how are you?",
        ]
        assert wait_for(lambda: len(chat_server.server.registry) == 1)

    def test_receiver_prints_incoming_lines(self, chat_server: TestServer):
        """Lines from other participants are written to the output stream."""
        other = chat_server.connect()
        host, port = chat_server.address
        output = LineCollector()
        client = ChatClient(host, port, "Carol", output_stream=output)

        client.connect()
        client.start_receiver()
        try:
            assert wait_for(lambda: len(chat_server.server.registry) == 2)
            other.send("Dave: welcome Carol")

            assert wait_for(lambda: "Dave: welcome Carol" in output.lines())
            assert "Carol joined" in output.lines()
        finally:
            client.close()

    def test_server_going_away(self, chat_server: TestServer):
        """The receiver reports a lost server instead of hanging."""
        host, port = chat_server.address
        output = LineCollector()
        client = ChatClient(host, port, "Eve", output_stream=output)

        client.connect()
        receiver = client.start_receiver()
        assert wait_for(lambda: len(chat_server.server.registry) == 1)

        chat_server.server.shutdown()

        receiver.join(timeout=5.0)
        assert not receiver.is_alive()
        assert "*** Disconnected from server ***" in output.lines()
        client.close()

    def test_send_before_connect(self):
        client = ChatClient("127.0.0.1", 9, "Nobody")

        with pytest.raises(RuntimeError):
            client.send("hello")

    def test_unreachable_server(self, free_port: int):
        client = ChatClient("127.0.0.1", free_port, "Frank")

        with pytest.raises(ConnectionError):
            client.run()

    def test_oversize_server_line_disconnects(self):
        """A line beyond the limit ends the receiver with a notice, not a crash."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as listener:
            listener.bind(("127.0.0.1", 0))
            listener.listen(1)
            host, port = listener.getsockname()

            output = LineCollector()
            client = ChatClient(host, port, "Grace", output_stream=output)
            client.connect()
            server_side, _ = listener.accept()
            with server_side:
                receiver = client.start_receiver()
                server_side.sendall(b"x" * (70 * 1024) + b"\n")

                receiver.join(timeout=5.0)

                assert not receiver.is_alive()
                assert output.lines() == ["*** Disconnected from server ***"]
            client.close()
