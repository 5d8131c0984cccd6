# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Request handler and its helper calls.

Each call runs in its own span and logs exactly one record:

    handler  INFO   "request received"
    sub1     INFO   "sub1"
    sub2     ERROR  "sub2"

handler calls sub1 then sub2, and sub1 calls sub2, so every request produces
the span tree handler -> (sub1 -> sub2, sub2).
"""

import logging

from fastapi.responses import HTMLResponse

from hello_otel.telemetry.context import SpanAttributes
from hello_otel.telemetry.decorators import instrument

logger = logging.getLogger(__name__)

HELLO_HTML = "<h1>Hello, World!</h1>"


@instrument
async def handler() -> HTMLResponse:
    logger.info("request received", extra={"monotonic_counter.hello_requests": 1})
    sub1("handler")
    sub2("handler")

    return HTMLResponse(HELLO_HTML)


@instrument
def sub1(call_fn: str) -> None:
    logger.info("sub1", extra={SpanAttributes.CALL_FN: call_fn})
    sub2("sub1")


@instrument
def sub2(call_fn: str) -> None:
    logger.error("sub2")
