"""
Unit tests for the broadcast relay.
"""

import threading

from chatrelay.chat.registry import ParticipantRegistry
from chatrelay.chat.relay import BroadcastRelay, BroadcastResult


class FakeParticipant:
    """Participant whose sink records lines, or fails on demand."""

    def __init__(self, pid: str, broken: bool = False):
        self.id = pid
        self.broken = broken
        self.received: list[bytes] = []

    def deliver(self, data: bytes) -> bool:
        if self.broken:
            return False
        self.received.append(data)
        return True


def make_relay(*participants, echo_to_sender: bool = True) -> BroadcastRelay:
    registry = ParticipantRegistry()
    for p in participants:
        registry.add(p)
    return BroadcastRelay(registry, echo_to_sender=echo_to_sender)


class TestBroadcast:
    """Tests for BroadcastRelay.broadcast()."""

    def test_delivers_to_everyone(self):
        """Every registered participant gets the line, sender included."""
        a, b, c = FakeParticipant("a"), FakeParticipant("b"), FakeParticipant("c")
        relay = make_relay(a, b, c)

        result = relay.broadcast("hello", sender=a)

        assert result == BroadcastResult(recipients=3, delivered=3, failed=[])
        assert result.ok
        for p in (a, b, c):
            assert p.received == [b"hello\n"]

    def test_no_echo(self):
        """With echo disabled the sender is skipped."""
        a, b = FakeParticipant("a"), FakeParticipant("b")
        relay = make_relay(a, b, echo_to_sender=False)

        result = relay.broadcast("hi", sender=a)

        assert result.recipients == 1
        assert a.received == []
        assert b.received == [b"hi\n"]

    def test_content_unchanged(self):
        """Lines are relayed as-is, including empty ones and announcements."""
        a = FakeParticipant("a")
        relay = make_relay(a)

        relay.broadcast("Alice joined")
        relay.broadcast("")
        relay.broadcast("  spaced  ")

        assert a.received == [b"Alice joined\n", b"\n", b"  spaced  \n"]

    def test_carriage_return_content_relayed(self):
        """A CR left over from "abc\\r\\r\\n" reaches recipients untouched."""
        a = FakeParticipant("a")
        relay = make_relay(a)

        relay.broadcast("abc\r")

        assert a.received == [b"abc\r\n"]

    def test_broken_sink_does_not_stop_delivery(self):
        """A failing participant is skipped; the rest still receive."""
        a = FakeParticipant("a")
        b = FakeParticipant("b", broken=True)
        c, d = FakeParticipant("c"), FakeParticipant("d")
        relay = make_relay(a, b, c, d)

        result = relay.broadcast("still here", sender=a)

        assert result.failed == ["b"]
        assert result.delivered == 3
        assert not result.ok
        assert c.received == [b"still here\n"]
        assert d.received == [b"still here\n"]

    def test_relay_never_removes(self):
        """Cleanup belongs to the participant's handler, not the relay."""
        a, b = FakeParticipant("a"), FakeParticipant("b", broken=True)
        relay = make_relay(a, b)

        relay.broadcast("x")

        assert b in relay.registry

    def test_empty_registry(self):
        relay = make_relay()

        result = relay.broadcast("anyone?")

        assert result.recipients == 0
        assert relay.messages_relayed == 1

    def test_counters(self):
        """messages_relayed and deliveries_failed accumulate."""
        a, b = FakeParticipant("a"), FakeParticipant("b", broken=True)
        relay = make_relay(a, b)

        relay.broadcast("one")
        relay.broadcast("two")

        assert relay.messages_relayed == 2
        assert relay.deliveries_failed == 2


class TestOrdering:
    """Ordering guarantees under concurrent senders."""

    def test_per_sender_order(self):
        """Each sender's lines arrive in the order they were sent."""
        receiver = FakeParticipant("r")
        relay = make_relay(receiver)
        per_sender = 200

        def send_all(name: str):
            for i in range(per_sender):
                relay.broadcast(f"{name} {i}")

        senders = [threading.Thread(target=send_all, args=(n,)) for n in ("a", "b", "c")]
        for t in senders:
            t.start()
        for t in senders:
            t.join(timeout=10.0)

        lines = [data.decode().rstrip("\n") for data in receiver.received]
        assert len(lines) == 3 * per_sender
        for name in ("a", "b", "c"):
            seq = [int(line.split()[1]) for line in lines if line.startswith(name + " ")]
            assert seq == list(range(per_sender))
