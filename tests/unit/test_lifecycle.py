"""Unit tests for lifecycle state and worker tracking."""

import socket
import threading
import time
from unittest.mock import MagicMock

from redirector.lifecycle.state import ServerLifecycle, ServerState


class TestServerLifecycle:
    """Tests for ServerLifecycle state management."""

    def test_initial_state(self):
        """Lifecycle starts in STARTING, not draining."""
        lifecycle = ServerLifecycle()
        assert lifecycle.state is ServerState.STARTING
        assert not lifecycle.should_stop()
        assert not lifecycle.is_draining()

    def test_state_transitions_in_order(self):
        """STARTING -> SERVING -> DRAINING -> STOPPED."""
        lifecycle = ServerLifecycle()
        lifecycle.mark_serving()
        assert lifecycle.state is ServerState.SERVING
        assert lifecycle.begin_draining() is True
        assert lifecycle.state is ServerState.DRAINING
        lifecycle.mark_stopped()
        assert lifecycle.state is ServerState.STOPPED

    def test_begin_draining_sets_flags(self):
        """begin_draining sets both draining and stop flags."""
        lifecycle = ServerLifecycle()
        lifecycle.begin_draining()
        assert lifecycle.should_stop()
        assert lifecycle.is_draining()

    def test_begin_draining_only_first_call_counts(self):
        """Repeated shutdown requests have no additional effect."""
        lifecycle = ServerLifecycle()
        lifecycle.mark_serving()
        assert lifecycle.begin_draining() is True
        first_remaining = lifecycle.drain_time_remaining(10)
        time.sleep(0.05)
        assert lifecycle.begin_draining() is False
        assert lifecycle.begin_draining() is False
        assert lifecycle.drain_time_remaining(10) < first_remaining

    def test_begin_draining_after_stop_is_ignored(self):
        """A stopped lifecycle never re-enters DRAINING."""
        lifecycle = ServerLifecycle()
        lifecycle.mark_stopped()
        assert lifecycle.begin_draining() is False
        assert lifecycle.state is ServerState.STOPPED

    def test_drain_time_remaining_before_drain_is_full_budget(self):
        """Budget only starts counting at the signal."""
        lifecycle = ServerLifecycle()
        assert lifecycle.drain_time_remaining(10) == 10

    def test_drain_time_remaining_never_negative(self):
        """An exhausted budget reports zero."""
        lifecycle = ServerLifecycle()
        lifecycle.begin_draining()
        time.sleep(0.02)
        assert lifecycle.drain_time_remaining(0.01) == 0.0

    def test_register_and_cleanup_worker(self):
        """Worker thread registration and cleanup."""
        lifecycle = ServerLifecycle()

        def no_op():
            return None

        thread = threading.Thread(target=no_op)
        lifecycle.register_worker(thread)
        assert lifecycle.has_worker(thread)
        lifecycle.cleanup_worker(thread)
        assert not lifecycle.has_worker(thread)

    def test_cleanup_nonexistent_worker_is_safe(self):
        """Cleanup of unregistered worker does not raise."""
        lifecycle = ServerLifecycle()
        lifecycle.cleanup_worker(threading.Thread(target=lambda: None))

    def test_wait_for_workers_returns_true_when_empty(self):
        """wait_for_workers returns True when no workers active."""
        lifecycle = ServerLifecycle()
        assert lifecycle.wait_for_workers(timeout=1.0) is True

    def test_wait_for_workers_waits_for_completion(self):
        """wait_for_workers waits for active threads to finish."""
        lifecycle = ServerLifecycle()
        completed = threading.Event()

        def worker():
            time.sleep(0.2)
            completed.set()

        thread = threading.Thread(target=worker)
        lifecycle.register_worker(thread)
        thread.start()
        assert lifecycle.wait_for_workers(timeout=2.0) is True
        assert completed.is_set()

    def test_wait_for_workers_timeout_exceeded(self):
        """wait_for_workers returns False when timeout exceeded."""
        lifecycle = ServerLifecycle()
        release = threading.Event()

        thread = threading.Thread(target=release.wait, args=(10.0,))
        lifecycle.register_worker(thread)
        thread.start()
        try:
            start = time.monotonic()
            result = lifecycle.wait_for_workers(timeout=0.3)
            elapsed = time.monotonic() - start
            assert result is False
            assert 0.2 < elapsed < 0.6
        finally:
            release.set()
            thread.join()

    def test_force_close_workers_shuts_down_tracked_sockets(self):
        """Sockets of lingering workers are shut down for both directions."""
        lifecycle = ServerLifecycle()
        open_socket = MagicMock(spec=socket.socket)
        dead_socket = MagicMock(spec=socket.socket)
        dead_socket.shutdown.side_effect = OSError("not connected")

        lifecycle.register_worker(threading.Thread(target=lambda: None), open_socket)
        lifecycle.register_worker(threading.Thread(target=lambda: None), dead_socket)
        lifecycle.register_worker(threading.Thread(target=lambda: None))

        assert lifecycle.force_close_workers() == 1
        open_socket.shutdown.assert_called_once_with(socket.SHUT_RDWR)

    def test_force_close_unblocks_a_reading_worker(self):
        """A worker blocked in recv returns once its socket is shut down."""
        lifecycle = ServerLifecycle()
        server_side, client_side = socket.socketpair()
        received = []

        def worker():
            received.append(server_side.recv(10))

        thread = threading.Thread(target=worker)
        lifecycle.register_worker(thread, server_side)
        thread.start()
        try:
            assert lifecycle.wait_for_workers(timeout=0.2) is False
            lifecycle.force_close_workers()
            thread.join(timeout=2.0)
            assert not thread.is_alive()
            assert received == [b""]
        finally:
            server_side.close()
            client_side.close()

    def test_multiple_workers_tracked(self):
        """Multiple worker threads can be tracked simultaneously."""
        lifecycle = ServerLifecycle()
        threads = [threading.Thread(target=lambda: None) for _ in range(5)]
        for thread in threads:
            lifecycle.register_worker(thread)
        assert lifecycle.active_worker_count() == 5
        for thread in threads:
            lifecycle.cleanup_worker(thread)
        assert lifecycle.active_worker_count() == 0
