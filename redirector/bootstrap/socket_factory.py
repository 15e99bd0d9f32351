"""Listen address parsing and listener socket creation."""

import logging
import socket

from redirector.domain.correlation_id import CorrelationLoggerAdapter

SOCKET_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("redirector.bootstrap.socket"), {}
)

ACCEPT_POLL_INTERVAL = 0.5


class ListenerError(Exception):
    """Raised when the listen address cannot be parsed or bound."""


def parse_listen_address(listen_address: str) -> tuple[str, int]:
    """Split ``host:port`` into a bindable (host, port) pair.

    An empty host means every interface. IPv6 literals must be bracketed and
    the port may be a service name such as ``http``.
    """
    host, separator, port_text = listen_address.rpartition(":")
    if not separator:
        raise ListenerError(f"address {listen_address}: missing port in address")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    elif ":" in host:
        raise ListenerError(f"address {listen_address}: too many colons in address")
    if not port_text:
        raise ListenerError(f"address {listen_address}: missing port in address")

    if port_text.isdigit():
        port = int(port_text)
    else:
        try:
            port = socket.getservbyname(port_text, "tcp")
        except OSError as error:
            raise ListenerError(
                f"address {listen_address}: unknown port {port_text!r}"
            ) from error
    if port > 65535:
        raise ListenerError(f"address {listen_address}: invalid port")
    return host, port


def create_server_socket(listen_address: str) -> socket.socket:
    """Bind and listen on ``listen_address``, raising ListenerError on failure."""
    host, port = parse_listen_address(listen_address)
    try:
        if not host and socket.has_dualstack_ipv6():
            server_socket = socket.create_server(
                ("", port), family=socket.AF_INET6, dualstack_ipv6=True
            )
        else:
            family = socket.AF_INET6 if ":" in host else socket.AF_INET
            server_socket = socket.create_server((host, port), family=family)
    except OSError as error:
        raise ListenerError(f"listen tcp {listen_address}: {error}") from error

    server_socket.settimeout(ACCEPT_POLL_INTERVAL)
    SOCKET_LOGGER.debug(
        "Listener socket bound",
        extra={"event": "listener_bound", "host": host, "port": port},
    )
    return server_socket
