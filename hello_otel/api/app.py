# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import HTMLResponse

from hello_otel import __version__
from hello_otel.api.handler import handler
from hello_otel.telemetry.core import ProviderRegistry, shutdown_telemetry
from hello_otel.telemetry.instrumentation import setup_opentelemetry_instrumentation

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI application.
    Flushes the telemetry pipelines on shutdown.
    """
    yield

    if app.state.shutdown_telemetry:
        shutdown_telemetry()
        logger.info("OpenTelemetry shutdown completed")


def create_app(
    registry: Optional[ProviderRegistry] = None,
    shutdown_telemetry_on_exit: bool = True,
) -> FastAPI:
    """
    Create the application with its single route, instrumented.

    Args:
        registry: Providers for request spans; the global providers when None
        shutdown_telemetry_on_exit: Whether the lifespan shuts telemetry down

    Returns:
        FastAPI application
    """
    app = FastAPI(
        title="fastapi-newrelic-example",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.shutdown_telemetry = shutdown_telemetry_on_exit

    app.add_api_route("/", handler, methods=["GET"], response_class=HTMLResponse)

    setup_opentelemetry_instrumentation(app, registry, logger)
    return app
