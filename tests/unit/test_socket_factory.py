"""Unit tests for listen address parsing and binding."""

import socket

import pytest

from redirector.bootstrap.socket_factory import (
    ListenerError,
    create_server_socket,
    parse_listen_address,
)


@pytest.mark.parametrize(
    ("address", "expected"),
    [
        (":8080", ("", 8080)),
        ("127.0.0.1:9000", ("127.0.0.1", 9000)),
        ("localhost:0", ("localhost", 0)),
        ("[::1]:8443", ("::1", 8443)),
    ],
)
def test_parse_listen_address(address, expected):
    """host:port forms split into a bindable pair."""
    assert parse_listen_address(address) == expected


def test_parse_listen_address_accepts_service_names():
    """Named ports resolve through the services database."""
    try:
        expected = socket.getservbyname("http", "tcp")
    except OSError:
        pytest.skip("services database unavailable")
    assert parse_listen_address(":http") == ("", expected)


@pytest.mark.parametrize(
    "address", ["8080", "127.0.0.1:", "::1:80", ":70000", ":no-such-service-xyz"]
)
def test_parse_listen_address_rejects_invalid_forms(address):
    """Unparseable addresses are listener errors."""
    with pytest.raises(ListenerError):
        parse_listen_address(address)


def test_create_server_socket_binds_and_polls():
    """The listener is bound and uses a short accept timeout."""
    server_socket = create_server_socket("127.0.0.1:0")
    try:
        host, port = server_socket.getsockname()[:2]
        assert host == "127.0.0.1"
        assert port > 0
        assert server_socket.gettimeout() == pytest.approx(0.5)
    finally:
        server_socket.close()


def test_create_server_socket_reports_address_in_use():
    """Binding an occupied port raises ListenerError naming the address."""
    occupied = create_server_socket("127.0.0.1:0")
    try:
        port = occupied.getsockname()[1]
        with pytest.raises(ListenerError, match=f"127.0.0.1:{port}"):
            create_server_socket(f"127.0.0.1:{port}")
    finally:
        occupied.close()
