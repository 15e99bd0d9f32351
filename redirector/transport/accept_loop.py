"""Main connection acceptance loop and drain sequence."""

import logging
import socket
import threading

from redirector.bootstrap.config import RedirectConfig, ServerConfig
from redirector.bootstrap.socket_factory import create_server_socket
from redirector.domain.correlation_id import CorrelationLoggerAdapter
from redirector.lifecycle.state import ServerLifecycle, ShutdownTimeoutError
from redirector.transport.context import WorkerContext
from redirector.transport.worker import handle_client

ACCEPT_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("redirector.transport.accept"), {}
)


def _handle_accepted_client(
    client_socket: socket.socket,
    client_address: tuple,
    handler_context: WorkerContext,
) -> None:
    """Hand a newly accepted connection to its own worker thread."""
    if ACCEPT_LOGGER.logger.isEnabledFor(logging.DEBUG):
        ACCEPT_LOGGER.debug(
            "Client connection accepted",
            extra={
                "event": "client_accepted",
                "client": f"{client_address[0]}:{client_address[1]}",
            },
        )

    thread = threading.Thread(
        target=handle_client,
        args=(client_socket, client_address, handler_context),
        daemon=False,
    )
    # Tracked before start so a drain beginning now still waits for it.
    if handler_context.lifecycle is not None:
        handler_context.lifecycle.register_worker(thread, client_socket)
    thread.start()


def _accept_until_draining(
    server_socket: socket.socket,
    lifecycle: ServerLifecycle,
    handler_context: WorkerContext,
) -> None:
    while not lifecycle.should_stop():
        try:
            client_socket, client_address = server_socket.accept()
        except socket.timeout:
            continue
        except OSError as error:
            if lifecycle.should_stop():
                break
            ACCEPT_LOGGER.error(
                "Socket accept failed",
                extra={"event": "accept_error", "error_type": type(error).__name__},
            )
            continue

        if lifecycle.should_stop():
            client_socket.close()
            break

        _handle_accepted_client(client_socket, client_address, handler_context)


def _drain(config: ServerConfig, lifecycle: ServerLifecycle) -> None:
    """Wait for in-flight connections, forcing them closed past the budget."""
    remaining = lifecycle.drain_time_remaining(config.shutdown_timeout)
    ACCEPT_LOGGER.info(
        "Waiting for active connections to complete",
        extra={
            "event": "shutdown_waiting",
            "shutdown_timeout": config.shutdown_timeout,
            "remaining_workers": lifecycle.active_worker_count(),
        },
    )
    if lifecycle.wait_for_workers(remaining):
        lifecycle.mark_stopped()
        ACCEPT_LOGGER.info("Server shutdown complete", extra={"event": "server_stopped"})
        return

    closed = lifecycle.force_close_workers()
    lifecycle.mark_stopped()
    raise ShutdownTimeoutError(
        f"shutdown error, forcefully closing {closed} connection(s) "
        f"after {config.shutdown_timeout:g}s"
    )


def run_server(
    redirect_config: RedirectConfig,
    server_config: ServerConfig,
    lifecycle: ServerLifecycle,
) -> None:
    """Serve redirects until a shutdown signal, then drain.

    Raises ListenerError when the address cannot be bound and
    ShutdownTimeoutError when the drain budget runs out.
    """
    server_socket = create_server_socket(redirect_config.listen_address)
    lifecycle.mark_serving()

    ACCEPT_LOGGER.info(
        "Server listening for connections",
        extra={
            "event": "server_listening",
            "listen_address": redirect_config.listen_address,
            "port": server_socket.getsockname()[1],
        },
    )

    handler_context = WorkerContext(
        redirect_config=redirect_config,
        server_config=server_config,
        lifecycle=lifecycle,
    )

    try:
        _accept_until_draining(server_socket, lifecycle, handler_context)
    finally:
        server_socket.close()
    _drain(server_config, lifecycle)
