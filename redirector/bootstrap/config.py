"""Redirect configuration resolution and CLI argument parsing."""

import argparse
import os
import re
from dataclasses import dataclass
from typing import Mapping, Optional

LISTEN_ADDRESS_KEY = "LISTEN_ADDRESS"
HOST_OVERRIDE_KEY = "HOST_OVERRIDE"
PATH_OVERRIDE_KEY = "PATH_OVERRIDE"
QUERY_OVERRIDE_KEY = "QUERY_OVERRIDE"
SCHEME_OVERRIDE_KEY = "SCHEME_OVERRIDE"
STATUS_CODE_KEY = "STATUS_CODE"

DEFAULT_LISTEN_ADDRESS = ":8080"
DEFAULT_SCHEME_OVERRIDE: Optional[str] = "https"
DEFAULT_STATUS_CODE = 301
MIN_STATUS_CODE = 100
MAX_STATUS_CODE = 999

DEFAULT_SOCKET_TIMEOUT = 60
SHUTDOWN_TIMEOUT_SECONDS = 10
MAX_HEADER_BYTES = 1024 * 1024
HEADER_DELIMITER = b"\r\n\r\n"

_INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")


class ConfigurationError(Exception):
    """Raised when an integer setting holds a value that does not parse."""

    def __init__(self, key: str, value: str, reason: str = "not an int") -> None:
        super().__init__(f"config error [{key}]: {value!r} {reason}")
        self.key = key
        self.value = value


@dataclass(frozen=True)
class RedirectConfig:
    """Immutable redirect settings shared by every request.

    ``None`` in an override field means the component is taken from the
    request; an empty string overrides it with the empty value.
    """

    listen_address: str = DEFAULT_LISTEN_ADDRESS
    host_override: Optional[str] = None
    path_override: Optional[str] = None
    query_override: Optional[str] = None
    scheme_override: Optional[str] = DEFAULT_SCHEME_OVERRIDE
    status_code: int = DEFAULT_STATUS_CODE


@dataclass(frozen=True)
class ServerConfig:
    """Listener tuning: connection timeout and shutdown budget."""

    socket_timeout: float = DEFAULT_SOCKET_TIMEOUT
    shutdown_timeout: float = SHUTDOWN_TIMEOUT_SECONDS


def _env_string(environ: Mapping[str, str], key: str, default: str) -> str:
    return environ.get(key, default)


def _env_optional(
    environ: Mapping[str, str], key: str, default: Optional[str]
) -> Optional[str]:
    if key in environ:
        return environ[key]
    return default


def parse_int(key: str, raw: str) -> int:
    """Parse a strict decimal integer, raising ConfigurationError otherwise."""
    if not _INTEGER_PATTERN.fullmatch(raw):
        raise ConfigurationError(key, raw)
    return int(raw)


def _env_int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(key)
    if raw is None:
        return default
    return parse_int(key, raw)


def _env_status_code(environ: Mapping[str, str]) -> int:
    code = _env_int(environ, STATUS_CODE_KEY, DEFAULT_STATUS_CODE)
    if not MIN_STATUS_CODE <= code <= MAX_STATUS_CODE:
        raise ConfigurationError(
            STATUS_CODE_KEY,
            environ[STATUS_CODE_KEY],
            f"outside {MIN_STATUS_CODE}-{MAX_STATUS_CODE}",
        )
    return code


def resolve_config(environ: Optional[Mapping[str, str]] = None) -> RedirectConfig:
    """Build the redirect configuration from environment variables."""
    if environ is None:
        environ = os.environ
    return RedirectConfig(
        listen_address=_env_string(
            environ, LISTEN_ADDRESS_KEY, DEFAULT_LISTEN_ADDRESS
        ),
        host_override=_env_optional(environ, HOST_OVERRIDE_KEY, None),
        path_override=_env_optional(environ, PATH_OVERRIDE_KEY, None),
        query_override=_env_optional(environ, QUERY_OVERRIDE_KEY, None),
        scheme_override=_env_optional(
            environ, SCHEME_OVERRIDE_KEY, DEFAULT_SCHEME_OVERRIDE
        ),
        status_code=_env_status_code(environ),
    )


def _positive_float(value: str) -> float:
    number = float(value)
    if number <= 0:
        raise argparse.ArgumentTypeError("must be greater than zero")
    return number


def parse_cli_args(argv: list[str]) -> argparse.Namespace:
    """Return parsed CLI arguments for logging and listener tuning."""
    parser = argparse.ArgumentParser(
        description="HTTP redirect responder",
        epilog=(
            "Redirect behavior is configured through LISTEN_ADDRESS, "
            "HOST_OVERRIDE, PATH_OVERRIDE, QUERY_OVERRIDE, SCHEME_OVERRIDE "
            "and STATUS_CODE."
        ),
    )
    default_log_level = os.getenv("REDIRECTOR_LOG_LEVEL", "INFO").upper()
    default_destination = os.getenv("REDIRECTOR_LOG_DESTINATION", "stdout")
    default_format = os.getenv("REDIRECTOR_LOG_FORMAT", "json").lower()
    parser.add_argument(
        "--log-level",
        default=default_log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
    )
    parser.add_argument(
        "--log-destination",
        default=default_destination,
        help="stdout or a file path",
    )
    parser.add_argument(
        "--log-format",
        default=default_format,
        choices=["json", "text"],
        type=str.lower,
    )
    parser.add_argument(
        "--socket-timeout",
        type=_positive_float,
        default=float(os.getenv("REDIRECTOR_SOCKET_TIMEOUT", DEFAULT_SOCKET_TIMEOUT)),
        help="Seconds a connection may stay silent before it is closed",
    )
    return parser.parse_args(argv)
