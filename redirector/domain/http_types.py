"""HTTP request and response value types shared across layers."""

from dataclasses import dataclass


@dataclass(frozen=True)
class HttpRequest:
    """A parsed HTTP request head. Bodies are never read."""

    method: str
    target: str
    path: str
    raw_query: str
    version: str
    headers: dict[str, str]
    host: str

    @property
    def announces_body(self) -> bool:
        """Return True when the client declared a body we will not consume."""
        if "transfer-encoding" in self.headers:
            return True
        length = self.headers.get("content-length", "").strip()
        return bool(length) and length != "0"


@dataclass
class HttpResponse:
    """Represents an HTTP response to be sent to a client."""

    status_line: str
    headers: dict[str, str]
    body: bytes
    close_connection: bool


def should_close(version: str, headers: dict[str, str]) -> bool:
    """Determine whether the connection should be closed after responding."""
    tokens = {
        token.strip().lower()
        for token in headers.get("connection", "").split(",")
        if token.strip()
    }
    if "close" in tokens:
        return True
    if version == "HTTP/1.0":
        return "keep-alive" not in tokens
    return False
