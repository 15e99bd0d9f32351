"""Termination signal wiring for graceful shutdown."""

import logging
import signal
from typing import Iterable

from redirector.domain.correlation_id import CorrelationLoggerAdapter
from redirector.lifecycle.state import ServerLifecycle

SIGNAL_LOGGER = CorrelationLoggerAdapter(logging.getLogger("redirector.signals"), {})

SHUTDOWN_SIGNALS = tuple(
    getattr(signal, name)
    for name in ("SIGINT", "SIGTERM", "SIGQUIT")
    if hasattr(signal, name)
)


def make_shutdown_handler(lifecycle: ServerLifecycle):
    """Return a signal handler that starts the drain exactly once."""

    def shutdown_handler(signum: int, _frame) -> None:
        name = signal.Signals(signum).name
        if lifecycle.begin_draining():
            SIGNAL_LOGGER.info(
                "Received shutdown signal",
                extra={"event": "shutdown_signal", "signal": name},
            )
        else:
            SIGNAL_LOGGER.info(
                "Shutdown already in progress",
                extra={"event": "shutdown_in_progress", "signal": name},
            )

    return shutdown_handler


def install_signal_handlers(
    lifecycle: ServerLifecycle, signals: Iterable[int] = SHUTDOWN_SIGNALS
) -> None:
    """Route interrupt, terminate and quit signals to the lifecycle."""
    handler = make_shutdown_handler(lifecycle)
    for signum in signals:
        signal.signal(signum, handler)
