# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
OpenTelemetry instrumentation of the HTTP server.

FastAPIInstrumentor opens one SERVER span per request. A server request hook
then renames it "<METHOD> <route template>" and sets the request attributes
before the handler runs. Naming by template keeps one span name per endpoint
instead of one per literal path (/users/{id}, not /users/42). Requests that
match no route fall back to the literal path.
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Optional

from starlette.routing import Match

from hello_otel.telemetry.context import SpanAttributes, SpanKindNames

if TYPE_CHECKING:
    from hello_otel.telemetry.core import ProviderRegistry


@dataclass(frozen=True)
class SpanDetails:
    """Name and attributes of a request's root span."""

    name: str
    attributes: Dict[str, str] = field(default_factory=dict)


def make_span_details(
    method: str,
    path: str,
    route: Optional[str] = None,
    http_version: str = "1.1",
    query_string: str = "",
) -> SpanDetails:
    """
    Build the root span name and attributes for a request.

    Args:
        method: HTTP method, e.g. "GET"
        path: Literal request path, e.g. "/users/42"
        route: Matched route template, e.g. "/users/{id}", if any
        http_version: ASGI http_version, e.g. "1.1"
        query_string: Raw query string without the "?"

    Returns:
        SpanDetails

    Example:
        >>> make_span_details("GET", "/users/42", "/users/{id}").name
        'GET /users/{id}'
        >>> make_span_details("GET", "/missing").name
        'GET /missing'
    """
    method = method.upper()
    name = f"{method} {route or path}"
    uri = f"{path}?{query_string}" if query_string else path
    return SpanDetails(
        name=name,
        attributes={
            SpanAttributes.HTTP_METHOD: method,
            SpanAttributes.HTTP_URI: uri,
            SpanAttributes.HTTP_VERSION: f"HTTP/{http_version}",
            SpanAttributes.OTEL_NAME: name,
            SpanAttributes.OTEL_KIND: SpanKindNames.SERVER,
        },
    )


def route_template(app: Any, scope: dict) -> Optional[str]:
    """
    Find the path template of the route handling an ASGI scope.

    A full match wins; a partial match (path matches, method does not) is
    used when there is no full match.
    """
    partial = None
    for route in app.routes:
        match, _ = route.matches(scope)
        if match == Match.FULL:
            return route.path
        if match == Match.PARTIAL and partial is None:
            partial = route.path
    return partial


def span_details_from_scope(app: Any, scope: dict) -> SpanDetails:
    """Build the SpanDetails of an ASGI http scope."""
    query_string = scope.get("query_string", b"")
    if isinstance(query_string, bytes):
        query_string = query_string.decode("latin-1")
    return make_span_details(
        method=scope.get("method", "GET"),
        path=scope.get("path", "/"),
        route=route_template(app, scope),
        http_version=scope.get("http_version", "1.1"),
        query_string=query_string,
    )


def create_server_request_hook(app: Any, logger: logging.Logger):
    """Create the hook naming the SERVER span of each request."""

    def server_request_hook(span, scope):
        """Hook called when a request is received, before routing."""
        if span is None or not span.is_recording():
            return
        if scope.get("type") != "http":
            return

        try:
            details = span_details_from_scope(app, scope)
            span.update_name(details.name)
            span.set_attributes(details.attributes)
        except Exception as e:
            logger.debug(f"Error in server_request_hook: {e}")

    return server_request_hook


def setup_opentelemetry_instrumentation(
    app: Any,
    registry: Optional["ProviderRegistry"] = None,
    logger: Optional[logging.Logger] = None,
) -> None:
    """
    Instrument a FastAPI application.

    Args:
        app: FastAPI application instance, not started yet
        registry: Providers to use; the global providers when None
        logger: Logger instance (optional, will create one if not provided)
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

    instrument_kwargs: Dict[str, Any] = {
        "server_request_hook": create_server_request_hook(app, logger),
        # Drop the internal http.send/http.receive spans
        "exclude_spans": ["receive", "send"],
    }
    if registry is not None:
        instrument_kwargs["tracer_provider"] = registry.tracer_provider
        instrument_kwargs["meter_provider"] = registry.meter_provider

    try:
        FastAPIInstrumentor.instrument_app(app, **instrument_kwargs)
    except TypeError as e:
        if "exclude_spans" not in str(e):
            raise
        logger.warning(
            "exclude_spans not supported in this version of "
            "opentelemetry-instrumentation-fastapi, keeping send/receive spans"
        )
        del instrument_kwargs["exclude_spans"]
        FastAPIInstrumentor.instrument_app(app, **instrument_kwargs)

    logger.info("FastAPI instrumentation enabled")
