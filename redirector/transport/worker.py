"""Worker thread logic for handling individual client connections."""

import logging
import socket
import threading
import time
from dataclasses import dataclass
from typing import Optional

from redirector.bootstrap.config import MAX_HEADER_BYTES
from redirector.domain.correlation_id import CorrelationLoggerAdapter, correlation_scope
from redirector.domain.http_types import HttpRequest
from redirector.domain.response_builders import (
    bad_request_response,
    header_too_large_response,
)
from redirector.handlers.redirect_handler import handle_redirect
from redirector.lifecycle.state import ServerLifecycle
from redirector.pipeline.io import (
    MalformedRequest,
    RequestHeaderTooLarge,
    receive_request,
    send_response,
)
from redirector.transport.context import WorkerContext

WORKER_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("redirector.transport.worker"), {}
)

IDLE_POLL_INTERVAL = 0.25


def _await_request_bytes(
    client_socket: socket.socket,
    lifecycle: Optional[ServerLifecycle],
    idle_timeout: float,
) -> bytes:
    """Wait for the first bytes of the next request on an idle connection.

    Returns ``b""`` when the peer hangs up, the idle timeout elapses, or the
    server starts draining while nothing is pending.
    """
    deadline = time.monotonic() + idle_timeout
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            WORKER_LOGGER.debug(
                "Idle connection timed out", extra={"event": "idle_timeout"}
            )
            return b""
        client_socket.settimeout(min(IDLE_POLL_INTERVAL, remaining))
        try:
            return client_socket.recv(4096)
        except socket.timeout:
            if lifecycle is not None and lifecycle.is_draining():
                return b""


def _read_request(
    client_socket: socket.socket,
    buffer: bytes,
    client_addr_str: str,
) -> tuple[Optional[HttpRequest], bytes]:
    """Read one request head, answering protocol errors directly.

    A ``None`` request means the connection must be closed.
    """
    try:
        request, buffer = receive_request(client_socket, buffer)
    except RequestHeaderTooLarge:
        WORKER_LOGGER.warning(
            "Request head exceeded limit",
            extra={
                "event": "header_too_large",
                "client": client_addr_str,
                "limit": MAX_HEADER_BYTES,
            },
        )
        send_response(client_socket, header_too_large_response())
        return None, b""
    except MalformedRequest as error:
        WORKER_LOGGER.warning(
            "Malformed request received",
            extra={
                "event": "malformed_request",
                "client": client_addr_str,
                "error": str(error),
            },
        )
        send_response(client_socket, bad_request_response(str(error)))
        return None, b""

    if request is None and WORKER_LOGGER.logger.isEnabledFor(logging.DEBUG):
        WORKER_LOGGER.debug(
            "Client disconnected during request",
            extra={"event": "client_disconnected", "client": client_addr_str},
        )
    return request, buffer


def _serve_one(
    client_socket: socket.socket,
    buffer: bytes,
    context: WorkerContext,
    client_addr_str: str,
) -> tuple[bool, bytes]:
    """Serve a single request. Returns (keep_open, leftover_buffer)."""
    lifecycle = context.lifecycle

    if not buffer:
        buffer = _await_request_bytes(
            client_socket, lifecycle, context.server_config.socket_timeout
        )
        if not buffer:
            return False, b""
    client_socket.settimeout(context.server_config.socket_timeout)

    WORKER_LOGGER.debug(
        "Request processing started",
        extra={"event": "request_started", "client": client_addr_str},
    )

    request, buffer = _read_request(client_socket, buffer, client_addr_str)
    if request is None:
        return False, b""

    WORKER_LOGGER.debug(
        "Request line parsed",
        extra={
            "event": "request_line_parsed",
            "method": request.method,
            "route": request.target,
        },
    )

    response = handle_redirect(request, context.redirect_config)
    if lifecycle is not None and lifecycle.is_draining():
        response.close_connection = True
    send_response(client_socket, response)

    WORKER_LOGGER.debug(
        "Request processing complete",
        extra={"event": "request_complete", "client": client_addr_str},
    )
    return not response.close_connection, buffer


@dataclass
class _WorkerResources:
    thread: threading.Thread
    client_socket: socket.socket
    client_addr_str: str


def _cleanup_worker(lifecycle: Optional[ServerLifecycle], resources: _WorkerResources):
    if lifecycle is not None:
        lifecycle.cleanup_worker(resources.thread)

    try:
        resources.client_socket.shutdown(socket.SHUT_WR)
    except OSError:
        pass
    resources.client_socket.close()

    WORKER_LOGGER.debug(
        "Socket closed",
        extra={"event": "socket_closed", "client": resources.client_addr_str},
    )


def handle_client(
    client_socket: socket.socket,
    client_address: tuple,
    context: WorkerContext,
) -> None:
    """Answer requests on a client socket until the connection is closed."""
    buffer = b""
    current_thread = threading.current_thread()
    lifecycle = context.lifecycle
    if lifecycle is not None and not lifecycle.has_worker(current_thread):
        lifecycle.register_worker(current_thread, client_socket)
    client_addr_str = f"{client_address[0]}:{client_address[1]}"
    resources = _WorkerResources(current_thread, client_socket, client_addr_str)

    try:
        keep_open = True
        while keep_open:
            with correlation_scope():
                keep_open, buffer = _serve_one(
                    client_socket, buffer, context, client_addr_str
                )
    except OSError as error:
        WORKER_LOGGER.error(
            "Error handling client connection",
            extra={
                "event": "connection_error",
                "client": client_addr_str,
                "error_type": type(error).__name__,
            },
        )
    except Exception as error:  # pylint: disable=broad-except
        WORKER_LOGGER.error(
            "Unexpected error in worker",
            extra={
                "event": "worker_error",
                "client": client_addr_str,
                "error_type": type(error).__name__,
                "error": str(error),
            },
            exc_info=True,
        )
    finally:
        _cleanup_worker(lifecycle, resources)
