# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""Resource attributes attached to every exported span, metric and log."""

from opentelemetry.sdk.resources import HOST_NAME, SERVICE_NAME, Resource


def build_resource(service_name: str, host_name: str) -> Resource:
    """
    Create the Resource shared by the tracer, meter and logger providers.

    The plain constructor is used instead of Resource.create() so that no
    detector or OTEL_RESOURCE_ATTRIBUTES value is merged in: the three
    signals always carry exactly the same two attributes.

    Args:
        service_name: Logical service name (service.name)
        host_name: Host or environment name (host.name)

    Returns:
        Resource with service.name and host.name
    """
    return Resource(
        attributes={
            SERVICE_NAME: service_name,
            HOST_NAME: host_name,
        }
    )
