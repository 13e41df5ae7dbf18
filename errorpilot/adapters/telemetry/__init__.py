"""Telemetry adapters for retrieving error logs and traces.

Implementations support the Grafana stack:
- Loki (log aggregation) via LokiLogAdapter
- Tempo (distributed tracing) via TempoTraceAdapter
"""

from .loki import LokiConnectionError, LokiLogAdapter
from .tempo import TempoConnectionError, TempoTraceAdapter

__all__ = [
    "LokiConnectionError",
    "LokiLogAdapter",
    "TempoConnectionError",
    "TempoTraceAdapter",
]
