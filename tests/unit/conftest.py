"""Shared fixtures for unit tests."""

import logging

import pytest

from redirector.domain.http_types import HttpRequest


@pytest.fixture(autouse=True)
def enable_log_propagation():
    """Let caplog see project records and undo any configure_logging call."""
    logger = logging.getLogger("redirector")
    old_propagate = logger.propagate
    old_level = logger.level
    old_handlers = list(logger.handlers)
    logger.propagate = True
    yield
    for handler in logger.handlers:
        if handler not in old_handlers:
            handler.close()
    logger.handlers[:] = old_handlers
    logger.propagate = old_propagate
    logger.setLevel(old_level)


@pytest.fixture(name="make_request")
def fixture_make_request():
    """Build HttpRequest values with sensible defaults."""

    def make(
        path="/",
        raw_query="",
        host="example.com",
        method="GET",
        version="HTTP/1.1",
        headers=None,
    ):
        target = f"{path}?{raw_query}" if raw_query else path
        request_headers = {"host": host} if headers is None else headers
        return HttpRequest(
            method, target, path, raw_query, version, request_headers, host
        )

    return make
