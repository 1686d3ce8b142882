"""OpenTelemetry tracing helpers.

distillate only depends on the OpenTelemetry API. Spans go to whatever
``TracerProvider`` the host application installed, or nowhere when none is.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Span, Tracer, TracerProvider

TRACER_NAME = "distillate.compression"


def get_tracer(provider: TracerProvider | None = None) -> Tracer:
    """
    Return the compression tracer.

    Args:
        provider: Explicit provider (tests pass an SDK provider with an
            in-memory exporter). Defaults to the global provider.
    """
    return trace.get_tracer(TRACER_NAME, tracer_provider=provider)


def set_attributes(span: Span, attributes: Mapping[str, Any]) -> None:
    """Set span attributes, skipping ``None`` values OpenTelemetry would reject."""
    span.set_attributes({key: value for key, value in attributes.items() if value is not None})
