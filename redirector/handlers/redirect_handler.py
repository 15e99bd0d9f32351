"""The redirect rule applied to every request."""

import logging

from redirector.bootstrap.config import RedirectConfig
from redirector.domain.correlation_id import CorrelationLoggerAdapter
from redirector.domain.http_types import HttpRequest, HttpResponse
from redirector.domain.redirect_target import RedirectTarget
from redirector.domain.response_builders import redirect_response

REDIRECT_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("redirector.handlers.redirect"), {}
)

FALLBACK_SCHEME = "http"


def _pick(override, fallback: str) -> str:
    return override if override is not None else fallback


def build_redirect_target(request: HttpRequest, config: RedirectConfig) -> RedirectTarget:
    """Resolve each URL component from its override or from the request.

    The request scheme is never consulted: without an override the scheme is
    always ``http``.
    """
    return RedirectTarget(
        scheme=_pick(config.scheme_override, FALLBACK_SCHEME),
        host=_pick(config.host_override, request.host),
        path=_pick(config.path_override, request.path),
        query=_pick(config.query_override, request.raw_query),
    )


def handle_redirect(request: HttpRequest, config: RedirectConfig) -> HttpResponse:
    """Answer any request with a redirect to its rewritten URL."""
    location = build_redirect_target(request, config).to_url()
    if REDIRECT_LOGGER.logger.isEnabledFor(logging.DEBUG):
        REDIRECT_LOGGER.debug(
            "Redirect issued",
            extra={
                "event": "redirect_issued",
                "method": request.method,
                "route": request.target,
                "location": location,
                "status_code": config.status_code,
            },
        )
    return redirect_response(location, config.status_code, request)
