# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""Minimal FastAPI service exporting traces, metrics and logs over OTLP/JSON."""

__version__ = "0.1.0"
