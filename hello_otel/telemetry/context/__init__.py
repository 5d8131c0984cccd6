# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Span context utilities.

Usage:
    from hello_otel.telemetry.context import SpanAttributes, get_current_span
    from hello_otel.telemetry.context import get_trace_ids, to_attribute_value
"""

from hello_otel.telemetry.context.attributes import SpanAttributes, SpanKindNames
from hello_otel.telemetry.context.span import (
    get_current_span,
    get_trace_ids,
    to_attribute_value,
)

__all__ = [
    "SpanAttributes",
    "SpanKindNames",
    "get_current_span",
    "get_trace_ids",
    "to_attribute_value",
]
