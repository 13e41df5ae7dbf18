"""Unit tests for fake adapter implementations.

These tests verify that fake adapters behave like the real ones where
callers depend on it, so they can be used confidently in other tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from errorpilot.core.models import (
    BackendConnectionError,
    FetchErrorsOptions,
    Severity,
    TraceData,
    UnifiedError,
)
from errorpilot.tests.fakes import FakeLogSource, FakeTraceSource


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def base_time() -> datetime:
    return datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def errors(base_time: datetime) -> list[UnifiedError]:
    """Create errors spread across two services, oldest first."""
    return [
        UnifiedError(
            timestamp=base_time + timedelta(minutes=i),
            severity=Severity.ERROR,
            title=f"failure {i}",
            message=f"failure {i}",
            service="api" if i % 2 == 0 else "worker",
            namespace="prod",
        )
        for i in range(4)
    ]


# ============================================================================
# FakeLogSource
# ============================================================================


@pytest.mark.asyncio
class TestFakeLogSource:
    """Tests for the in-memory log source."""

    async def test_fetch_errors_filters_sorts_and_limits(
        self, errors: list[UnifiedError]
    ) -> None:
        source = FakeLogSource()
        source.add_errors(errors)

        result = await source.fetch_errors(FetchErrorsOptions(service="api", limit=1))

        assert [e.title for e in result] == ["failure 2"]
        assert source.fetch_errors_calls[0].service == "api"

    async def test_unreachable_reports_failure(self) -> None:
        check = await FakeLogSource(reachable=False).test_connection()

        assert not check.ok
        assert isinstance(check.error, BackendConnectionError)

    async def test_context_manager_closes(self) -> None:
        source = FakeLogSource()
        async with source as entered:
            assert entered is source
        assert source.close_call_count == 1

    async def test_labels(self) -> None:
        source = FakeLogSource()
        source.add_label("namespace", ["prod", "staging"])

        assert await source.get_labels() == ["namespace"]
        assert await source.get_label_values("namespace") == ["prod", "staging"]
        assert await source.get_label_values("missing") == []


# ============================================================================
# FakeTraceSource
# ============================================================================


@pytest.mark.asyncio
class TestFakeTraceSource:
    """Tests for the in-memory trace source."""

    async def test_search_returns_summaries(self, base_time: datetime) -> None:
        source = FakeTraceSource()
        source.add_trace(
            TraceData(
                trace_id="t1",
                root_service="gateway",
                root_operation="GET /",
                start_time=base_time,
                duration=10.0,
                span_count=0,
            )
        )

        found = await source.search_traces(service="gateway")
        missing = await source.search_traces(service="billing")

        assert [t.trace_id for t in found] == ["t1"]
        assert found[0].is_summary()
        assert missing == []
        assert await source.get_trace("t1") is not None
        assert await source.get_trace("nope") is None
