"""
Tests for the live session registry.
"""

import threading

import pytest
from typing import Any, List

from services.connection_registry import ConnectionRegistry, get_connection_registry


class FakeTransport:
    """Records frames instead of writing to a socket."""

    def __init__(self, fail: bool = False):
        self.sent: List[Any] = []
        self.fail = fail

    async def send_json(self, data: Any) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)


class TestRegistration:
    """Test register / unregister bookkeeping."""

    def test_register_and_unregister(self):
        registry = ConnectionRegistry()
        registry.register(1, "s1", FakeTransport())

        assert registry.is_live(1)
        assert registry.connected_count() == 1

        assert registry.unregister(1, "s1") is True
        assert not registry.is_live(1)
        assert registry.unregister(1, "s1") is False

    def test_new_session_supersedes_old(self):
        registry = ConnectionRegistry()
        old, new = FakeTransport(), FakeTransport()
        registry.register(1, "old", old)
        registry.register(1, "new", new)

        assert registry.connected_count() == 1
        assert registry.get_session(1).transport is new

    def test_stale_disconnect_keeps_replacement(self):
        """A superseded socket closing late must not evict the current one."""
        registry = ConnectionRegistry()
        registry.register(1, "old", FakeTransport())
        registry.register(1, "new", FakeTransport())

        assert registry.unregister(1, "old") is False
        assert registry.is_live(1)
        assert registry.get_session(1).session_id == "new"

    def test_unregister_without_session_id_removes_any(self):
        registry = ConnectionRegistry()
        registry.register(7, "s", FakeTransport())

        assert registry.unregister(7) is True
        assert registry.snapshot() == []

    def test_global_registry_is_shared(self):
        assert get_connection_registry() is get_connection_registry()


class TestConcurrentAccess:
    """Test the registry under concurrent register / unregister from worker threads."""

    def test_parallel_register_and_unregister(self):
        registry = ConnectionRegistry()
        workers = 8
        users_per_worker = 200
        start = threading.Barrier(workers)
        failures: List[int] = []

        def churn(worker: int) -> None:
            start.wait()
            for offset in range(users_per_worker):
                user_id = worker * users_per_worker + offset
                registry.register(user_id, f"s{user_id}", FakeTransport())
                if not registry.is_live(user_id):
                    failures.append(user_id)
                # Odd users disconnect again, even users stay connected
                if offset % 2 and not registry.unregister(user_id, f"s{user_id}"):
                    failures.append(user_id)

        threads = [threading.Thread(target=churn, args=(w,)) for w in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert failures == []
        expected = {w * users_per_worker + o for w in range(workers) for o in range(0, users_per_worker, 2)}
        assert registry.connected_count() == len(expected)
        assert {s.user_id for s in registry.snapshot()} == expected
        assert not registry.is_live(1)

    def test_competing_sessions_for_one_user(self):
        """Whichever session registered last survives its rivals' late disconnects."""
        registry = ConnectionRegistry()
        rounds = 500
        start = threading.Barrier(2)

        def connect_and_drop(prefix: str) -> None:
            start.wait()
            for i in range(rounds):
                session_id = f"{prefix}{i}"
                registry.register(1, session_id, FakeTransport())
                registry.unregister(1, session_id)

        threads = [threading.Thread(target=connect_and_drop, args=(p,)) for p in ("a", "b")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        registry.register(1, "final", FakeTransport())
        assert registry.unregister(1, "b0") is False
        assert registry.get_session(1).session_id == "final"
        assert registry.connected_count() == 1


class TestSending:
    """Test frame delivery."""

    @pytest.mark.asyncio
    async def test_send_to_live_user(self):
        registry = ConnectionRegistry()
        transport = FakeTransport()
        registry.register(1, "s1", transport)

        delivered = await registry.send_to(1, "new_notification", {"id": 5})

        assert delivered is True
        assert transport.sent == [{"event": "new_notification", "data": {"id": 5}}]

    @pytest.mark.asyncio
    async def test_send_to_offline_user(self):
        registry = ConnectionRegistry()

        assert await registry.send_to(99, "new_notification", {"id": 5}) is False

    @pytest.mark.asyncio
    async def test_transport_failure_is_swallowed(self):
        registry = ConnectionRegistry()
        registry.register(1, "s1", FakeTransport(fail=True))

        assert await registry.send_to(1, "new_notification", {"id": 5}) is False

    @pytest.mark.asyncio
    async def test_broadcast_counts_successful_deliveries(self):
        registry = ConnectionRegistry()
        healthy_a, healthy_b = FakeTransport(), FakeTransport()
        registry.register(1, "a", healthy_a)
        registry.register(2, "b", healthy_b)
        registry.register(3, "c", FakeTransport(fail=True))

        delivered = await registry.broadcast("broadcast_notification", {"title": "Hi"})

        assert delivered == 2
        assert healthy_a.sent == healthy_b.sent == [{"event": "broadcast_notification", "data": {"title": "Hi"}}]
