"""Port interfaces for the Errorpilot telemetry layer.

These abstract base classes define the boundary between the tool
dispatcher that calls into this layer and the backend adapters that
implement it. Implementations live in the adapters/ package.

Both ports are driven ports: the caller hands in a filter request and
receives normalized domain objects. Implementations must:
- Perform exactly one backend round trip per call
- Never raise from test_connection
- Degrade query failures to empty or absent results, logging them
- Release their network client exactly once via close()
"""

from abc import ABC, abstractmethod
from typing import Any

from .models import ConnectionCheck, FetchErrorsOptions, TraceData, UnifiedError


class LogSourcePort(ABC):
    """Port for retrieving error logs from a log-aggregation backend."""

    async def __aenter__(self) -> "LogSourcePort":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying network client."""

    @abstractmethod
    async def test_connection(self) -> ConnectionCheck:
        """Probe backend readiness.

        Returns:
            ConnectionCheck describing success or failure. Never raises.
        """

    @abstractmethod
    async def get_labels(self) -> list[str]:
        """Return all label names known to the backend.

        Returns:
            List of label names. Empty list if the query fails.
        """

    @abstractmethod
    async def get_label_values(self, name: str) -> list[str]:
        """Return all values of a single label.

        Args:
            name: Label name (e.g. "service_name").

        Returns:
            List of label values. Empty list if the query fails.
        """

    @abstractmethod
    async def fetch_errors(self, options: FetchErrorsOptions) -> list[UnifiedError]:
        """Fetch error logs matching a structured filter request.

        Args:
            options: Validated filter request.

        Returns:
            List of UnifiedError in descending timestamp order.
            Empty list if nothing matched or the query failed.
        """

    @abstractmethod
    async def query(
        self, expression: str, since_minutes: int, limit: int
    ) -> list[UnifiedError]:
        """Run a caller-supplied query expression.

        Args:
            expression: Raw backend query expression.
            since_minutes: Lookback window in minutes.
            limit: Maximum number of log lines to return.

        Returns:
            List of UnifiedError in descending timestamp order.
        """


class TraceSourcePort(ABC):
    """Port for retrieving distributed traces from a trace backend."""

    async def __aenter__(self) -> "TraceSourcePort":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying network client."""

    @abstractmethod
    async def test_connection(self) -> ConnectionCheck:
        """Probe backend readiness. Never raises."""

    @abstractmethod
    async def get_trace(self, trace_id: str) -> TraceData | None:
        """Fetch and reconstruct a single trace.

        Args:
            trace_id: Trace identifier (hex string).

        Returns:
            TraceData with all spans populated, or None if the trace ID is
            malformed, the trace was not found, or it could not be parsed.
        """

    @abstractmethod
    async def search_traces(
        self,
        service: str | None = None,
        since_minutes: int = 60,
        min_duration: str | None = None,
        max_duration: str | None = None,
        limit: int = 20,
    ) -> list[TraceData]:
        """Search for recent traces.

        Args:
            service: Restrict to traces rooted in this service (optional).
            since_minutes: Lookback window in minutes.
            min_duration: Minimum duration, e.g. "500ms" (passed through).
            max_duration: Maximum duration, e.g. "10s" (passed through).
            limit: Maximum number of traces.

        Returns:
            Summary TraceData objects (span_count == 0, no spans).
        """
