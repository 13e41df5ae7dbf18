"""Core domain logic for the Errorpilot telemetry layer.

This package contains zero external dependencies. Backend integrations
are handled by the adapters package.
"""

from .models import (
    BackendConfig,
    BackendConnectionError,
    ConnectionCheck,
    FetchErrorsOptions,
    Severity,
    SpanData,
    SpanStatus,
    TraceData,
    UnifiedError,
)

__all__ = [
    "BackendConfig",
    "BackendConnectionError",
    "ConnectionCheck",
    "FetchErrorsOptions",
    "Severity",
    "SpanData",
    "SpanStatus",
    "TraceData",
    "UnifiedError",
]
