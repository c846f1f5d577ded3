"""
Unit tests for the participant registry.
"""

import threading

from chatrelay.chat.registry import ParticipantRegistry


class FakeParticipant:
    """Stand-in participant with just what the registry needs."""

    def __init__(self, pid: str):
        self.id = pid


class TestParticipantRegistry:
    """Tests for ParticipantRegistry."""

    def test_add_and_contains(self):
        """Test registration."""
        registry = ParticipantRegistry()
        alice = FakeParticipant("alice")

        registry.add(alice)

        assert alice in registry
        assert len(registry) == 1

    def test_add_twice_is_noop(self):
        """A participant is never registered twice."""
        registry = ParticipantRegistry()
        alice = FakeParticipant("alice")

        registry.add(alice)
        registry.add(alice)

        assert len(registry) == 1

    def test_remove_exactly_once(self):
        """Only the first remove reports success."""
        registry = ParticipantRegistry()
        alice = FakeParticipant("alice")
        registry.add(alice)

        assert registry.remove(alice) is True
        assert registry.remove(alice) is False
        assert alice not in registry
        assert len(registry) == 0

    def test_remove_unknown(self):
        """Removing someone never registered is harmless."""
        registry = ParticipantRegistry()

        assert registry.remove(FakeParticipant("ghost")) is False

    def test_snapshot_is_a_copy(self):
        """Mutating the snapshot does not touch the registry."""
        registry = ParticipantRegistry()
        alice, bob = FakeParticipant("alice"), FakeParticipant("bob")
        registry.add(alice)
        registry.add(bob)

        snapshot = registry.snapshot()
        snapshot.clear()

        assert len(registry) == 2

    def test_snapshot_preserves_join_order(self):
        registry = ParticipantRegistry()
        people = [FakeParticipant(name) for name in ("a", "b", "c")]
        for p in people:
            registry.add(p)

        assert registry.snapshot() == people

    def test_locked_blocks_mutation(self):
        """While locked() is held, add() waits."""
        registry = ParticipantRegistry()
        added = threading.Event()

        def add_later():
            registry.add(FakeParticipant("late"))
            added.set()

        with registry.locked() as participants:
            adder = threading.Thread(target=add_later)
            adder.start()
            assert not added.wait(0.2)
            assert participants == []

        assert added.wait(5.0)
        adder.join(timeout=5.0)
        assert len(registry) == 1

    def test_concurrent_add_remove(self):
        """Many threads adding and removing leave a consistent registry."""
        registry = ParticipantRegistry()
        keepers = [FakeParticipant(f"keep-{i}") for i in range(50)]
        leavers = [FakeParticipant(f"leave-{i}") for i in range(50)]
        removed = []
        lock = threading.Lock()

        def churn(keep, leave):
            registry.add(keep)
            registry.add(leave)
            ok = registry.remove(leave)
            with lock:
                removed.append(ok)

        threads = [
            threading.Thread(target=churn, args=pair)
            for pair in zip(keepers, leavers)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5.0)

        assert len(registry) == 50
        assert all(removed)
        assert set(registry.snapshot()) == set(keepers)
