#!/usr/bin/env python

# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Main entry module, initializes telemetry and starts the HTTP server.

Supports two startup modes:
1. Run directly: python -m hello_otel
2. Console script: hello-otel
"""

import logging
import sys

import uvicorn
from pydantic import ValidationError

from hello_otel.api.app import create_app
from hello_otel.core.config import get_settings
from hello_otel.telemetry.config import get_telemetry_config
from hello_otel.telemetry.core import init_telemetry_from_config
from hello_otel.telemetry.exceptions import TelemetryInitError

logger = logging.getLogger(__name__)


def main() -> int:
    """
    Start the service.

    Returns:
        int: Process exit status; 1 when the configuration is missing or
             telemetry cannot be initialized, before anything is bound.
    """
    try:
        settings = get_settings()
    except ValidationError as e:
        logger.error(f"Invalid configuration, NEWRELIC_LICENSE_KEY is required: {e}")
        return 1

    config = get_telemetry_config(settings.NEWRELIC_LICENSE_KEY)
    try:
        registry = init_telemetry_from_config(config)
    except TelemetryInitError as e:
        logger.error(f"Failed to initialize OpenTelemetry: {e}")
        return 1

    app = create_app(registry)

    print(f"listening on http://{settings.APP_HOST}:{settings.APP_PORT}")
    # log_config=None keeps uvicorn from replacing the installed handlers
    uvicorn.run(app, host=settings.APP_HOST, port=settings.APP_PORT, log_config=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
