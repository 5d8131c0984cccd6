# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Span manipulation utilities for OpenTelemetry.

Provides functions for working with the current span: finding the
recording span and reading the trace/span ids used for log correlation.
The current span comes from the OpenTelemetry context, which is backed by
ContextVars and therefore private to each request task.
"""

from typing import Any, Optional, Tuple

from opentelemetry import trace
from opentelemetry.trace import Span


def to_attribute_value(value: Any) -> Any:
    """Keep primitive attribute values, stringify everything else."""
    if isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def get_current_span() -> Optional[Span]:
    """
    Get the current active span.

    Returns:
        Optional[Span]: The current span or None if no span is recording
    """
    span = trace.get_current_span()
    if span and span.is_recording():
        return span
    return None


def get_trace_ids(span: Optional[Span] = None) -> Tuple[str, str]:
    """
    Get the hex trace id and span id of a span (current span by default).

    Returns:
        (trace_id, span_id), or ("-", "-") outside a valid span
    """
    if span is None:
        span = trace.get_current_span()
    span_context = span.get_span_context()
    if not span_context.is_valid:
        return "-", "-"
    return (
        format(span_context.trace_id, "032x"),
        format(span_context.span_id, "016x"),
    )
