"""Unit tests for core domain models."""

from datetime import datetime, timezone

import pytest

from errorpilot.core.models import (
    BackendConfig,
    ConnectionCheck,
    FetchErrorsOptions,
    Severity,
    SpanData,
    TraceData,
    UnifiedError,
)


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def now() -> datetime:
    return datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def spans() -> tuple[SpanData, ...]:
    """Create a small span set with one error span."""
    return (
        SpanData(
            span_id="a1",
            service_name="gateway",
            operation_name="GET /orders",
            duration=120.0,
            status="ok",
            attributes={"http.method": "GET", "http.status_code": "500"},
        ),
        SpanData(
            span_id="b2",
            parent_span_id="a1",
            service_name="orders",
            operation_name="SELECT orders",
            duration=80.0,
            status="error",
            attributes={"db.system": "postgresql", "db.statement": "SELECT 1"},
        ),
    )


# ============================================================================
# Severity
# ============================================================================


class TestSeverity:
    """Tests for Severity parsing."""

    @pytest.mark.parametrize("severity", list(Severity))
    def test_parse_lowercase_and_uppercase_names(self, severity: Severity) -> None:
        assert Severity.parse(severity.name.lower()) == severity
        assert Severity.parse(severity.name.upper()) == severity

    def test_parse_mixed_case(self) -> None:
        assert Severity.parse("Warning") == Severity.WARNING

    @pytest.mark.parametrize("text", ["unknown", "debug", "", "FATAL", "warn"])
    def test_parse_invalid_returns_none(self, text: str) -> None:
        assert Severity.parse(text) is None

    @pytest.mark.parametrize("text", ["unknown", "debug", ""])
    def test_parse_or_default_returns_default(self, text: str) -> None:
        assert Severity.parse_or_default(text, Severity.ERROR) == Severity.ERROR
        assert Severity.parse_or_default(text) == Severity.INFO

    def test_parse_or_default_prefers_parsed_value(self) -> None:
        assert Severity.parse_or_default("critical", Severity.INFO) == Severity.CRITICAL

    def test_order_is_most_to_least_severe(self) -> None:
        assert [s.name for s in Severity] == ["CRITICAL", "ERROR", "WARNING", "INFO"]
        assert Severity.CRITICAL.rank < Severity.INFO.rank


# ============================================================================
# FetchErrorsOptions
# ============================================================================


class TestFetchErrorsOptions:
    """Tests for filter request validation."""

    def test_defaults(self) -> None:
        options = FetchErrorsOptions()
        assert options.since_minutes == 60
        assert options.limit == 100
        assert options.severity == ()
        assert options.service is None
        assert options.namespace is None

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"since_minutes": 0},
            {"since_minutes": -1},
            {"limit": 0},
            {"limit": 10001},
        ],
    )
    def test_invalid_values_reject_construction(self, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            FetchErrorsOptions(**kwargs)

    def test_limit_bounds_are_inclusive(self) -> None:
        assert FetchErrorsOptions(limit=1).limit == 1
        assert FetchErrorsOptions(limit=10000).limit == 10000

    def test_severity_list_is_frozen_to_tuple(self) -> None:
        options = FetchErrorsOptions(severity=[Severity.WARNING])  # type: ignore[arg-type]
        assert options.severity == (Severity.WARNING,)

    def test_rejects_non_severity_entries(self) -> None:
        with pytest.raises(ValueError, match="Severity"):
            FetchErrorsOptions(severity=("error",))  # type: ignore[arg-type]


# ============================================================================
# BackendConfig / ConnectionCheck
# ============================================================================


class TestBackendConfig:
    """Tests for connection settings."""

    def test_strips_trailing_slash(self) -> None:
        assert BackendConfig(url="http://loki:3100/").url == "http://loki:3100"

    @pytest.mark.parametrize("url", ["", "   ", "loki:3100", "ftp://loki"])
    def test_rejects_invalid_url(self, url: str) -> None:
        with pytest.raises(ValueError, match="url"):
            BackendConfig(url=url)

    def test_basic_auth_requires_both_credentials(self) -> None:
        assert not BackendConfig(url="http://loki").has_basic_auth()
        assert not BackendConfig(url="http://loki", username="admin").has_basic_auth()
        assert BackendConfig(
            url="http://loki", username="admin", password="secret"
        ).has_basic_auth()

    def test_connection_check_branches(self) -> None:
        ok = ConnectionCheck.success("ready")
        failed = ConnectionCheck.failure(RuntimeError("refused"))
        assert ok.ok and ok.error is None
        assert not failed.ok
        assert failed.message == "refused"
        assert isinstance(failed.error, RuntimeError)


# ============================================================================
# UnifiedError
# ============================================================================


class TestUnifiedError:
    """Tests for the normalized error model."""

    def test_generates_unique_ids_and_loki_source(self, now: datetime) -> None:
        first = UnifiedError(timestamp=now, severity=Severity.ERROR, title="a", message="a")
        second = UnifiedError(timestamp=now, severity=Severity.ERROR, title="a", message="a")
        assert first.id != second.id
        assert first.source == "loki"

    def test_empty_title_rejected(self, now: datetime) -> None:
        with pytest.raises(ValueError, match="title"):
            UnifiedError(timestamp=now, severity=Severity.INFO, title="", message="")

    def test_labels_are_read_only(self, now: datetime) -> None:
        labels = {"level": "error"}
        error = UnifiedError(
            timestamp=now, severity=Severity.ERROR, title="x", message="x", labels=labels
        )
        labels["level"] = "info"
        assert error.labels["level"] == "error"
        with pytest.raises(TypeError):
            error.labels["level"] = "warn"  # type: ignore[index]

    @pytest.mark.parametrize(
        "severity,expected",
        [
            (Severity.CRITICAL, True),
            (Severity.ERROR, True),
            (Severity.WARNING, False),
            (Severity.INFO, False),
        ],
    )
    def test_is_critical(self, now: datetime, severity: Severity, expected: bool) -> None:
        error = UnifiedError(timestamp=now, severity=severity, title="x", message="x")
        assert error.is_critical() is expected

    def test_has_trace_id(self, now: datetime) -> None:
        error = UnifiedError(
            timestamp=now, severity=Severity.ERROR, title="x", message="x", trace_id="abc"
        )
        assert error.has_trace_id()


# ============================================================================
# SpanData / TraceData
# ============================================================================


class TestSpanData:
    """Tests for span helpers."""

    def test_invalid_status_rejected(self) -> None:
        with pytest.raises(ValueError, match="status"):
            SpanData(
                span_id="x",
                service_name="svc",
                operation_name="op",
                duration=1.0,
                status="unset",  # type: ignore[arg-type]
            )

    def test_root_and_error_helpers(self, spans: tuple[SpanData, ...]) -> None:
        root, child = spans
        assert root.is_root() and not child.is_root()
        assert child.is_error() and not root.is_error()

    def test_attribute_prefix_filters(self, spans: tuple[SpanData, ...]) -> None:
        root, child = spans
        assert root.http_attributes() == {"http.method": "GET", "http.status_code": "500"}
        assert root.db_attributes() == {}
        assert child.db_attributes() == {"db.system": "postgresql", "db.statement": "SELECT 1"}


class TestTraceData:
    """Tests for trace invariants and helpers."""

    def test_span_count_must_match_spans(
        self, now: datetime, spans: tuple[SpanData, ...]
    ) -> None:
        with pytest.raises(ValueError, match="span_count"):
            TraceData(
                trace_id="t",
                root_service="gateway",
                root_operation="GET /orders",
                start_time=now,
                duration=120.0,
                span_count=3,
                spans=spans,
            )

    def test_summary_has_no_spans(self, now: datetime) -> None:
        summary = TraceData(
            trace_id="t",
            root_service="gateway",
            root_operation="GET /orders",
            start_time=now,
            duration=2500.0,
            span_count=0,
        )
        assert summary.is_summary()
        assert summary.spans == ()
        assert summary.is_slow()
        assert not summary.has_error()

    def test_detail_helpers(self, now: datetime, spans: tuple[SpanData, ...]) -> None:
        trace = TraceData(
            trace_id="t",
            root_service="gateway",
            root_operation="GET /orders",
            start_time=now,
            duration=120.0,
            span_count=2,
            spans=list(spans),  # type: ignore[arg-type]
        )
        assert trace.spans == spans
        assert trace.has_error()
        assert not trace.is_slow()
        assert trace.is_slow(threshold_ms=100.0)
        assert [s.span_id for s in trace.filter_by_service("orders")] == ["b2"]
        assert [s.span_id for s in trace.root_spans()] == ["a1"]
