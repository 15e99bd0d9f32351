"""Context object shared across worker threads."""

from dataclasses import dataclass, field
from typing import Optional

from redirector.bootstrap.config import RedirectConfig, ServerConfig
from redirector.lifecycle.state import ServerLifecycle


@dataclass(frozen=True)
class WorkerContext:
    """Read-only dependencies handed to every connection worker."""

    redirect_config: RedirectConfig
    server_config: ServerConfig = field(default_factory=ServerConfig)
    lifecycle: Optional[ServerLifecycle] = None
