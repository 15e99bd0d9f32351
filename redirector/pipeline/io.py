"""HTTP request head parsing and response serialization."""

import logging
import re
import socket
import urllib.parse
from typing import Optional, Tuple

from redirector.bootstrap.config import HEADER_DELIMITER, MAX_HEADER_BYTES
from redirector.domain.correlation_id import CorrelationLoggerAdapter
from redirector.domain.http_types import HttpRequest, HttpResponse

IO_LOGGER = CorrelationLoggerAdapter(logging.getLogger("redirector.pipeline.io"), {})

SUPPORTED_VERSIONS = {"HTTP/1.0", "HTTP/1.1"}
HEAD_ENCODING = "utf-8"
HEAD_ERRORS = "surrogateescape"

_TOKEN_PATTERN = re.compile(r"[!#$%&'*+.^_`|~0-9A-Za-z-]+")
_FORBIDDEN_TARGET_CHARS = re.compile(r"[\x00-\x20\x7f]")
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


class MalformedRequest(ValueError):
    """Raised when a request head cannot be parsed."""


class RequestHeaderTooLarge(Exception):
    """Raised when a request head exceeds the configured limit."""


def parse_headers(lines: list[str]) -> dict[str, str]:
    """Convert raw header lines into a lowercase-keyed dictionary.

    Lines without a colon, names that are not tokens and a repeated
    Host raise MalformedRequest.
    """
    parsed = {}
    for line in lines:
        name, separator, value = line.partition(":")
        if not separator:
            raise MalformedRequest("malformed header line")
        if not _TOKEN_PATTERN.fullmatch(name):
            raise MalformedRequest("invalid header name")
        key = name.lower()
        if key == "host" and key in parsed:
            raise MalformedRequest("duplicate Host header")
        parsed[key] = value.strip()
    return parsed


def split_target(target: str) -> Tuple[str, str, str]:
    """Return (authority, decoded path, raw query) for a request-target.

    Absolute-form targets carry their own authority; origin-form targets
    return an empty one.
    """
    authority = ""
    rest = target
    if "://" in target and not target.startswith("/"):
        _, _, after_scheme = target.partition("://")
        authority, slash, remainder = after_scheme.partition("/")
        authority, _, query_tail = authority.partition("?")
        authority = authority.rpartition("@")[2]
        if query_tail:
            rest = f"?{query_tail}"
        else:
            rest = f"{slash}{remainder}"

    raw_path, _, raw_query = rest.partition("?")
    if _BAD_ESCAPE.search(raw_path):
        raise MalformedRequest("invalid URL escape")
    path = urllib.parse.unquote(raw_path, encoding=HEAD_ENCODING, errors=HEAD_ERRORS)
    return authority, path, raw_query


def parse_request_line(request_line: str) -> Tuple[str, str, str]:
    """Parse the method, request-target and version from the request line."""
    try:
        method, target, version = request_line.split(" ")
    except ValueError as exc:
        raise MalformedRequest("malformed request line") from exc

    if not _TOKEN_PATTERN.fullmatch(method):
        raise MalformedRequest("invalid method")
    if not target or _FORBIDDEN_TARGET_CHARS.search(target):
        raise MalformedRequest("invalid request target")
    if version not in SUPPORTED_VERSIONS:
        raise MalformedRequest("unsupported HTTP version")
    return method, target, version


def parse_request_head(header_block: bytes) -> HttpRequest:
    """Build an HttpRequest from the bytes preceding the blank line."""
    header_lines = header_block.decode(HEAD_ENCODING, HEAD_ERRORS).split("\r\n")
    method, target, version = parse_request_line(header_lines[0])
    headers = parse_headers(header_lines[1:])

    if method == "CONNECT" and not target.startswith("/"):
        authority, path, raw_query = target, "", ""
    else:
        authority, path, raw_query = split_target(target)
    if "host" not in headers and version == "HTTP/1.1" and method != "CONNECT":
        raise MalformedRequest("missing required Host header")
    host = authority or headers.get("host", "")
    return HttpRequest(method, target, path, raw_query, version, headers, host)


def receive_request(
    client_socket: socket.socket, buffer: bytes
) -> Tuple[Optional[HttpRequest], bytes]:
    """Read bytes from the socket until a complete request head is available.

    Returns ``(None, b"")`` when the peer closes first. Any bytes after the
    head are returned untouched as the leftover buffer.
    """
    while HEADER_DELIMITER not in buffer:
        if len(buffer) > MAX_HEADER_BYTES:
            raise RequestHeaderTooLarge
        chunk = client_socket.recv(4096)
        if not chunk:
            return None, b""
        buffer += chunk

    header_block, remainder = buffer.split(HEADER_DELIMITER, 1)
    if len(header_block) > MAX_HEADER_BYTES:
        raise RequestHeaderTooLarge
    # Tolerate blank lines sent ahead of the request line.
    request = parse_request_head(header_block.lstrip(b"\r\n"))
    IO_LOGGER.debug(
        "Parsed request", extra={"method": request.method, "route": request.target}
    )
    return request, remainder


def _sanitize_header_value(value: str) -> str:
    return value.replace("\r", " ").replace("\n", " ")


def serialize_response(response: HttpResponse) -> bytes:
    """Render status line, headers and body as wire bytes."""
    headers = dict(response.headers)
    if response.close_connection:
        headers["Connection"] = "close"
    header_lines = [response.status_line]
    header_lines.extend(
        f"{name}: {_sanitize_header_value(value)}" for name, value in headers.items()
    )
    header_block = "\r\n".join(header_lines).encode(HEAD_ENCODING, HEAD_ERRORS)
    return header_block + HEADER_DELIMITER + response.body


def send_response(client_socket: socket.socket, response: HttpResponse) -> None:
    """Serialize and send the HTTP response over the socket."""
    client_socket.sendall(serialize_response(response))
    IO_LOGGER.debug(
        "Sent response",
        extra={
            "status_code": response.status_line.split(" ", 2)[1],
            "close_connection": response.close_connection,
        },
    )
