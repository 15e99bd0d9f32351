"""Server lifecycle state and worker tracking."""

import enum
import logging
import socket
import threading
import time
from typing import Optional

from redirector.domain.correlation_id import CorrelationLoggerAdapter

LIFECYCLE_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("redirector.lifecycle"), {}
)


class ShutdownTimeoutError(Exception):
    """Raised when in-flight connections outlive the drain budget."""


class ServerState(enum.Enum):
    """Lifecycle states, in the only order they are entered."""

    STARTING = "starting"
    SERVING = "serving"
    DRAINING = "draining"
    STOPPED = "stopped"


class ServerLifecycle:
    """Manages server lifecycle state and worker thread tracking."""

    def __init__(self) -> None:
        # Re-entrant: signal handlers run on the main thread and may interrupt
        # it while it already holds the lock.
        self._lock = threading.RLock()
        self._draining_event = threading.Event()
        self._state = ServerState.STARTING
        self._drain_started: Optional[float] = None
        self._workers: dict[threading.Thread, Optional[socket.socket]] = {}

    @property
    def state(self) -> ServerState:
        with self._lock:
            return self._state

    def mark_serving(self) -> None:
        """Record that the listener is bound and accepting."""
        with self._lock:
            if self._state is ServerState.STARTING:
                self._state = ServerState.SERVING
        LIFECYCLE_LOGGER.debug(
            "Lifecycle state changed", extra={"event": "state", "state": "serving"}
        )

    def mark_stopped(self) -> None:
        with self._lock:
            self._state = ServerState.STOPPED

    def should_stop(self) -> bool:
        """Check if the server should stop accepting new connections."""
        return self._draining_event.is_set()

    def is_draining(self) -> bool:
        """Check if the server is in draining mode."""
        return self._draining_event.is_set()

    def begin_draining(self) -> bool:
        """Enter DRAINING. Only the first call has an effect.

        Returns True when this call started the drain.
        """
        with self._lock:
            if self._draining_event.is_set() or self._state is ServerState.STOPPED:
                return False
            self._state = ServerState.DRAINING
            self._drain_started = time.monotonic()
            self._draining_event.set()
        LIFECYCLE_LOGGER.info(
            "Beginning graceful shutdown",
            extra={"event": "draining_started", "state": "draining"},
        )
        return True

    def drain_time_remaining(self, budget: float) -> float:
        """Seconds left of ``budget`` counted from the start of the drain."""
        with self._lock:
            started = self._drain_started
        if started is None:
            return budget
        return max(0.0, budget - (time.monotonic() - started))

    def register_worker(
        self, thread: threading.Thread, client_socket: Optional[socket.socket] = None
    ) -> None:
        """Register a worker thread, and the socket it serves, for tracking."""
        with self._lock:
            self._workers[thread] = client_socket

    def cleanup_worker(self, thread: threading.Thread) -> None:
        """Remove a worker thread from tracking."""
        with self._lock:
            self._workers.pop(thread, None)

    def has_worker(self, thread: threading.Thread) -> bool:
        """Return True when the worker is currently tracked."""
        with self._lock:
            return thread in self._workers

    def active_worker_count(self) -> int:
        """Return the number of currently tracked worker threads."""
        with self._lock:
            return len(self._workers)

    def wait_for_workers(self, timeout: float) -> bool:
        """Wait for all worker threads to complete within the timeout."""
        deadline = time.monotonic() + timeout
        while True:
            with self._lock:
                self._workers = {
                    worker: sock
                    for worker, sock in self._workers.items()
                    if worker.is_alive()
                }
                active_workers = list(self._workers)
            if not active_workers:
                return True
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                LIFECYCLE_LOGGER.warning(
                    "Shutdown timeout exceeded",
                    extra={
                        "event": "shutdown_timeout",
                        "remaining_workers": len(active_workers),
                    },
                )
                return False
            for worker in active_workers:
                worker.join(timeout=min(0.1, remaining))
                if time.monotonic() >= deadline:
                    break

    def force_close_workers(self) -> int:
        """Shut down every tracked socket so blocked workers unwind.

        Returns the number of connections that were closed.
        """
        with self._lock:
            sockets = [sock for sock in self._workers.values() if sock is not None]
        closed = 0
        for sock in sockets:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                continue
            closed += 1
        return closed
