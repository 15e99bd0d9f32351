"""Shared pytest fixtures for integration and unit tests."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Callable, Generator, Iterator, TypedDict

import pytest

from tests.utils.http import reserve_port, wait_for_port
from tests.utils.process import (
    PROJECT_ROOT,
    server_environment,
    spawn_server,
    stop_server,
)


class ServerProcessInfo(TypedDict):
    """Metadata describing a running server fixture instance."""

    base_url: str
    host: str
    port: int
    process: subprocess.Popen[str]
    log_file: Path


def _launch_server(
    host: str,
    port: int,
    log_file: Path,
    overrides: dict[str, str] | None = None,
) -> Generator[ServerProcessInfo, None, None]:
    env = server_environment({"LISTEN_ADDRESS": f"{host}:{port}", **(overrides or {})})
    process = spawn_server(env, log_file)
    try:
        try:
            wait_for_port(host, port)
        except Exception:
            stop_server(process)
            if log_file.exists():
                print(f"\nServer log:\n{log_file.read_text()}")
            raise

        yield {
            "base_url": f"http://{host}:{port}",
            "host": host,
            "port": port,
            "process": process,
            "log_file": log_file,
        }
    finally:
        stop_server(process)


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Expose the repository root path to tests."""

    return PROJECT_ROOT


@pytest.fixture(name="server_process")
def _server_process(
    tmp_path_factory: pytest.TempPathFactory,
) -> Generator[ServerProcessInfo, None, None]:
    """Launch the redirector with default settings."""

    host = "127.0.0.1"
    log_file = tmp_path_factory.mktemp("redirector") / "server.log"
    yield from _launch_server(host, reserve_port(host), log_file)


@pytest.fixture(name="launch_server")
def _launch_server_factory(
    tmp_path_factory: pytest.TempPathFactory,
) -> Iterator[Callable[..., ServerProcessInfo]]:
    """Launch redirectors with custom environment overrides."""

    generators: list[Generator[ServerProcessInfo, None, None]] = []

    def launch(**overrides: str) -> ServerProcessInfo:
        host = "127.0.0.1"
        log_file = tmp_path_factory.mktemp("redirector") / "server.log"
        generator = _launch_server(host, reserve_port(host), log_file, overrides)
        generators.append(generator)
        return next(generator)

    yield launch

    for generator in generators:
        generator.close()


@pytest.fixture()
def base_url(server_process: ServerProcessInfo) -> str:
    """Expose the running server base URL to integration tests."""

    return server_process["base_url"]
