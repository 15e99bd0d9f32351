"""Pure HTTP response builders."""

import http
from typing import Optional

from redirector.domain.http_types import HttpRequest, HttpResponse, should_close

HTTP_VERSION = "HTTP/1.1"


def reason_phrase(status_code: int) -> str:
    """Return the registered reason phrase, or a generic one for unknown codes."""
    try:
        return http.HTTPStatus(status_code).phrase
    except ValueError:
        return f"status code {status_code}"


def status_line(status_code: int) -> str:
    """Build the status line for the given code."""
    return f"{HTTP_VERSION} {status_code} {reason_phrase(status_code)}"


def body_allowed(status_code: int) -> bool:
    """Informational, 204 and 304 responses carry no Content-Length."""
    return not (100 <= status_code < 200 or status_code in (204, 304))


def redirect_response(
    location: str, status_code: int, request: HttpRequest
) -> HttpResponse:
    """Produce an empty-bodied redirect pointing at ``location``."""
    headers = {"Location": location}
    if body_allowed(status_code):
        headers["Content-Length"] = "0"
    close_connection = should_close(request.version, request.headers) or (
        request.announces_body
    )
    return HttpResponse(status_line(status_code), headers, b"", close_connection)


def _plain_error(status_code: int, detail: Optional[str] = None) -> HttpResponse:
    message = f"{status_code} {reason_phrase(status_code)}"
    if detail:
        message = f"{message}: {detail}"
    body = message.encode()
    headers = {
        "Content-Type": "text/plain; charset=utf-8",
        "Content-Length": str(len(body)),
    }
    return HttpResponse(status_line(status_code), headers, body, True)


def bad_request_response(reason: Optional[str] = None) -> HttpResponse:
    """Produce a 400 response that always closes the connection."""
    return _plain_error(400, reason)


def header_too_large_response() -> HttpResponse:
    """Produce a 431 response that always closes the connection."""
    return _plain_error(431)
