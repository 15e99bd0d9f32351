"""Redirect target composition and URL serialization."""

import urllib.parse
from dataclasses import dataclass

# Reserved characters left literal inside a path; '?' is always escaped.
PATH_SAFE = "/$&+,:;=@"
# Sub-delimiters and IP-literal brackets allowed in a host.
HOST_SAFE = "!$&'()*+,;=:[]<>\""


def escape_path(path: str) -> str:
    """Percent-encode a decoded path, preserving the original byte values."""
    return urllib.parse.quote(
        path, safe=PATH_SAFE, encoding="utf-8", errors="surrogateescape"
    )


def escape_host(host: str) -> str:
    """Percent-encode characters that cannot appear in a URL authority."""
    return urllib.parse.quote(
        host, safe=HOST_SAFE, encoding="utf-8", errors="surrogateescape"
    )


@dataclass(frozen=True)
class RedirectTarget:
    """The URL written into the Location header of a redirect."""

    scheme: str
    host: str
    path: str
    query: str

    def to_url(self) -> str:
        """Serialize as scheme://host/path?query.

        The authority marker is dropped when there is neither a host nor a
        path, and the query separator is only written for a non-empty query.
        """
        parts = []
        if self.scheme:
            parts.append(f"{self.scheme}:")
        if self.scheme or self.host:
            if self.host or self.path:
                parts.append("//")
            parts.append(escape_host(self.host))

        path = escape_path(self.path)
        if path and not path.startswith("/") and self.host:
            parts.append("/")
        if not parts:
            first_segment = path.partition("/")[0]
            if ":" in first_segment:
                parts.append("./")
        parts.append(path)

        if self.query:
            parts.append(f"?{self.query}")
        return "".join(parts)
