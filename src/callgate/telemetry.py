"""OpenTelemetry span helpers.

Spans are no-ops unless the host application installs an OpenTelemetry SDK.
"""

from __future__ import annotations

from typing import Any

from opentelemetry import trace

_tracer = trace.get_tracer("callgate")


def start_verification_span(name: str, attributes: dict[str, Any] | None = None) -> Any:
    """Start an OTel span for a verification step. Returns a context manager."""
    clean = {k: v for k, v in (attributes or {}).items() if v is not None}
    return _tracer.start_as_current_span(name, attributes=clean)
