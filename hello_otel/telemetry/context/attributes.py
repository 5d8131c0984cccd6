# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Standard span attribute keys.

Provides consistent attribute naming for request and call spans.
"""


class SpanAttributes:
    """Standard span attribute keys for consistent tracing."""

    # HTTP request attributes set on the server span
    HTTP_METHOD = "http.method"
    HTTP_URI = "http.uri"
    HTTP_VERSION = "http.version"

    # Conventional overrides read by the collector
    OTEL_NAME = "otel.name"
    OTEL_KIND = "otel.kind"

    # Caller identity recorded on call spans
    CALL_FN = "call_fn"

    # Source location (semantic conventions)
    CODE_FUNCTION = "code.function"
    CODE_NAMESPACE = "code.namespace"
    CODE_FILEPATH = "code.filepath"
    CODE_LINENO = "code.lineno"

    # Log event attributes
    LOG_LEVEL = "level"
    LOG_TARGET = "target"


class SpanKindNames:
    """Values of the otel.kind attribute."""

    SERVER = "server"
