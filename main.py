"""HTTP redirect responder entrypoint."""

import logging
import sys

from redirector.bootstrap.config import (
    ConfigurationError,
    ServerConfig,
    parse_cli_args,
    resolve_config,
)
from redirector.bootstrap.logging_setup import configure_logging
from redirector.bootstrap.socket_factory import ListenerError
from redirector.domain.correlation_id import CorrelationLoggerAdapter
from redirector.lifecycle.signals import install_signal_handlers
from redirector.lifecycle.state import ServerLifecycle, ShutdownTimeoutError
from redirector.transport.accept_loop import run_server

MAIN_LOGGER = CorrelationLoggerAdapter(logging.getLogger("redirector.main"), {})


def main(argv=None) -> None:
    """Resolve configuration, serve redirects and exit once drained."""
    args = parse_cli_args(sys.argv[1:] if argv is None else argv)
    configure_logging(
        args.log_level, args.log_destination, use_json=args.log_format == "json"
    )

    try:
        redirect_config = resolve_config()
    except ConfigurationError as error:
        MAIN_LOGGER.critical(
            str(error),
            extra={"event": "config_error", "setting": error.key, "value": error.value},
        )
        sys.exit(1)

    server_config = ServerConfig(socket_timeout=args.socket_timeout)
    MAIN_LOGGER.info(
        "Starting redirector",
        extra={
            "event": "config_resolved",
            "listen_address": redirect_config.listen_address,
            "status_code": redirect_config.status_code,
            "log_destination": args.log_destination,
            "log_level": args.log_level,
            "socket_timeout": server_config.socket_timeout,
            "shutdown_timeout": server_config.shutdown_timeout,
        },
    )

    lifecycle = ServerLifecycle()
    install_signal_handlers(lifecycle)
    try:
        run_server(redirect_config, server_config, lifecycle)
    except ListenerError as error:
        MAIN_LOGGER.critical(
            f"listen error: {error}",
            extra={
                "event": "listener_error",
                "listen_address": redirect_config.listen_address,
            },
        )
        sys.exit(1)
    except ShutdownTimeoutError as error:
        MAIN_LOGGER.critical(
            str(error),
            extra={
                "event": "shutdown_timeout",
                "shutdown_timeout": server_config.shutdown_timeout,
            },
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
