# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
OpenTelemetry integration module.

Builds the trace, metric and log export pipelines (OTLP/JSON over HTTP),
installs the process-wide subscriber chain and names request spans.

Directory Structure:
    telemetry/
    ├── __init__.py          # Public API exports (this file)
    ├── core.py              # ProviderRegistry, initialization and lifecycle
    ├── config.py            # Configuration from environment
    ├── exceptions.py        # ConfigError / InitError types
    ├── resource.py          # service.name / host.name resource
    ├── exporters.py         # OTLP/JSON span, metric and log exporters
    ├── providers.py         # Batching pipelines and provider setup
    ├── layers.py            # Console, filter, trace, metrics, log layers
    ├── subscriber.py        # SubscriberChain and its installation
    ├── instrumentation.py   # FastAPI request span naming
    ├── decorators.py        # @instrument for functions
    └── context/
        ├── __init__.py      # Context utilities exports
        ├── attributes.py    # Standard span attribute keys
        └── span.py          # Current span helpers

Usage:
    from hello_otel.telemetry import init_telemetry, shutdown_telemetry
    from hello_otel.telemetry import get_tracer, get_meter, instrument
    from hello_otel.telemetry.instrumentation import setup_opentelemetry_instrumentation
"""

from hello_otel.telemetry.config import (
    BatchConfig,
    TelemetryConfig,
    get_telemetry_config,
)
from hello_otel.telemetry.core import (
    ExporterSet,
    ProviderRegistry,
    get_meter,
    get_registry,
    get_tracer,
    init_telemetry,
    init_telemetry_from_config,
    is_telemetry_enabled,
    shutdown_telemetry,
)
from hello_otel.telemetry.decorators import instrument
from hello_otel.telemetry.exceptions import (
    ExporterConfigError,
    TelemetryAlreadyInitializedError,
    TelemetryError,
    TelemetryInitError,
)

__all__ = [
    # Config
    "BatchConfig",
    "TelemetryConfig",
    "get_telemetry_config",
    # Core
    "ExporterSet",
    "ProviderRegistry",
    "init_telemetry",
    "init_telemetry_from_config",
    "shutdown_telemetry",
    "is_telemetry_enabled",
    "get_registry",
    "get_tracer",
    "get_meter",
    # Decorators
    "instrument",
    # Errors
    "TelemetryError",
    "ExporterConfigError",
    "TelemetryInitError",
    "TelemetryAlreadyInitializedError",
]
