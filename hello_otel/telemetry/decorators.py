# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Tracing decorators for functions.

@instrument wraps a sync or async function in a span named after it. The
span becomes the current span for the duration of the call, so spans opened
by nested instrumented calls are its children and log records emitted inside
are attributed to it.
"""

import inspect
from functools import wraps
from typing import Any, Callable, Dict, Optional, Sequence

from opentelemetry.trace import SpanKind, Status, StatusCode

from hello_otel.telemetry.context import SpanAttributes, to_attribute_value
from hello_otel.telemetry.core import get_tracer


def _call_attributes(
    signature: inspect.Signature,
    args: tuple,
    kwargs: dict,
    skip: Sequence[str],
) -> Dict[str, Any]:
    try:
        bound = signature.bind(*args, **kwargs)
    except TypeError:
        # Let the real call raise the argument error
        return {}
    bound.apply_defaults()

    attributes = {}
    for name, value in bound.arguments.items():
        if name in skip or name in ("self", "cls") or value is None:
            continue
        attributes[name] = to_attribute_value(value)
    return attributes


def instrument(
    func: Optional[Callable] = None,
    *,
    name: Optional[str] = None,
    kind: SpanKind = SpanKind.INTERNAL,
    skip: Sequence[str] = (),
    record_args: bool = True,
):
    """
    Decorator running a function inside its own span.

    The span carries the call arguments as attributes (minus `skip`) and the
    code.function / code.namespace of the function. An exception is recorded
    on the span, which is marked ERROR, and re-raised. The span is ended on
    every exit path.

    Usage:
        @instrument
        def sub1(call_fn: str): ...

        @instrument(name="load", skip=["payload"])
        async def load(payload, user_id): ...
    """

    def decorator(fn: Callable) -> Callable:
        span_name = name or fn.__name__
        signature = inspect.signature(fn)
        location = {
            SpanAttributes.CODE_FUNCTION: fn.__qualname__,
            SpanAttributes.CODE_NAMESPACE: fn.__module__,
        }

        def start_span(args, kwargs):
            attributes = dict(location)
            if record_args:
                attributes.update(_call_attributes(signature, args, kwargs, skip))
            tracer = get_tracer(fn.__module__)
            return tracer.start_as_current_span(
                span_name,
                kind=kind,
                attributes=attributes,
                record_exception=False,
                set_status_on_exception=False,
            )

        def mark_error(span, error: BaseException) -> None:
            if span.is_recording():
                span.record_exception(error)
                span.set_status(
                    Status(
                        StatusCode.ERROR,
                        description=f"{type(error).__name__}: {error}",
                    )
                )

        if inspect.iscoroutinefunction(fn):

            @wraps(fn)
            async def async_wrapper(*args, **kwargs):
                with start_span(args, kwargs) as span:
                    try:
                        return await fn(*args, **kwargs)
                    except BaseException as e:
                        mark_error(span, e)
                        raise

            return async_wrapper

        @wraps(fn)
        def sync_wrapper(*args, **kwargs):
            with start_span(args, kwargs) as span:
                try:
                    return fn(*args, **kwargs)
                except BaseException as e:
                    mark_error(span, e)
                    raise

        return sync_wrapper

    if func is not None:
        return decorator(func)
    return decorator
