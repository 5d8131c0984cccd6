# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Telemetry error types.

Only configuration and startup problems surface as exceptions. Failures to
deliver telemetry at runtime stay inside the exporters.
"""

from typing import Optional


class TelemetryError(Exception):
    """Base class for telemetry errors."""


class ExporterConfigError(TelemetryError):
    """Raised when an exporter cannot be built from its configuration."""

    def __init__(self, signal: str, message: str):
        self.signal = signal
        self.message = message
        super().__init__(f"{signal} exporter: {message}")


class TelemetryInitError(TelemetryError):
    """Raised when the telemetry stack cannot be initialized."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.message = message
        self.cause = cause
        super().__init__(message)


class TelemetryAlreadyInitializedError(TelemetryInitError):
    """Raised when telemetry is initialized a second time in one process."""
