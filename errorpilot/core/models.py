"""Domain models for the Errorpilot telemetry layer.

All models in this module use only Python standard library types,
ensuring zero external dependencies in the core domain. Log and trace
adapters normalize backend responses into these value objects.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Literal, TypeAlias


class Severity(Enum):
    """Error severity, ordered from most to least severe."""

    CRITICAL = "CRITICAL"
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"

    @classmethod
    def parse(cls, text: str) -> "Severity | None":
        """Parse a severity name case-insensitively.

        Args:
            text: Severity name such as "error" or "WARNING".

        Returns:
            The matching Severity, or None when the text names no member.
        """
        if not isinstance(text, str):
            return None
        try:
            return cls[text.strip().upper()]
        except KeyError:
            return None

    @classmethod
    def parse_or_default(
        cls, text: str, default: "Severity | None" = None
    ) -> "Severity":
        """Parse a severity name, falling back to a default.

        Args:
            text: Severity name to parse.
            default: Value returned when parsing fails (INFO if omitted).

        Returns:
            The parsed Severity or the default.
        """
        parsed = cls.parse(text)
        if parsed is not None:
            return parsed
        return default if default is not None else cls.INFO

    @property
    def rank(self) -> int:
        """Position in severity order (0 is most severe)."""
        return list(Severity).index(self)


class BackendConnectionError(Exception):
    """A telemetry backend readiness probe did not succeed."""


@dataclass(frozen=True)
class ConnectionCheck:
    """Outcome of a backend readiness probe.

    Exactly one of the two branches is meaningful: ``ok`` with a success
    message, or not ``ok`` with a failure message and the underlying error.
    """

    ok: bool
    message: str
    error: Exception | None = None

    @classmethod
    def success(cls, message: str) -> "ConnectionCheck":
        return cls(ok=True, message=message)

    @classmethod
    def failure(cls, error: Exception) -> "ConnectionCheck":
        return cls(ok=False, message=str(error) or type(error).__name__, error=error)


@dataclass(frozen=True)
class BackendConfig:
    """Connection settings for a single Loki or Tempo instance."""

    url: str
    org_id: str = "default"
    username: str | None = None
    password: str | None = None
    environment: str | None = None
    environment_label: str = "environment"

    DEFAULT_ORG_ID = "default"

    def __post_init__(self) -> None:
        """Validate connection settings on creation."""
        if not self.url or not self.url.strip():
            raise ValueError("url must be a non-empty string")
        if not self.url.startswith(("http://", "https://")):
            raise ValueError(f"url must start with http:// or https://, got {self.url}")
        if not self.org_id or not self.org_id.strip():
            raise ValueError("org_id must be a non-empty string")
        if not self.environment_label or not self.environment_label.strip():
            raise ValueError("environment_label must be a non-empty string")
        object.__setattr__(self, "url", self.url.rstrip("/"))

    def has_basic_auth(self) -> bool:
        """Return True when both username and password are set."""
        return bool(
            self.username and self.username.strip()
            and self.password and self.password.strip()
        )


@dataclass(frozen=True)
class FetchErrorsOptions:
    """Filter request for fetching error logs.

    An empty ``severity`` tuple means the adapter default (ERROR and CRITICAL).
    """

    since_minutes: int = 60
    severity: tuple[Severity, ...] = ()
    service: str | None = None
    namespace: str | None = None
    limit: int = 100

    DEFAULT_SINCE_MINUTES = 60
    DEFAULT_LIMIT = 100
    MAX_LIMIT = 10000

    def __post_init__(self) -> None:
        """Validate filter invariants before any query is built."""
        if isinstance(self.since_minutes, bool) or not isinstance(self.since_minutes, int):
            raise ValueError(f"since_minutes must be an integer, got {self.since_minutes!r}")
        if self.since_minutes <= 0:
            raise ValueError(f"since_minutes must be positive, got {self.since_minutes}")
        if isinstance(self.limit, bool) or not isinstance(self.limit, int):
            raise ValueError(f"limit must be an integer, got {self.limit!r}")
        if self.limit < 1:
            raise ValueError(f"limit must be positive, got {self.limit}")
        if self.limit > self.MAX_LIMIT:
            raise ValueError(f"limit cannot exceed {self.MAX_LIMIT}, got {self.limit}")
        severity = tuple(self.severity)
        for level in severity:
            if not isinstance(level, Severity):
                raise ValueError(f"severity entries must be Severity members, got {level!r}")
        object.__setattr__(self, "severity", severity)


@dataclass(frozen=True)
class UnifiedError:
    """A single error occurrence normalized from a log line.

    The canonical format handed to issue creation and summarization,
    independent of which backend produced it.
    """

    timestamp: datetime
    severity: Severity
    title: str
    message: str
    stack_trace: str | None = None
    service: str | None = None
    namespace: str | None = None
    pod: str | None = None
    container: str | None = None
    trace_id: str | None = None
    labels: dict[str, str] | MappingProxyType[str, str] = field(default_factory=dict)
    raw: Any = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    source: str = "loki"

    def __post_init__(self) -> None:
        """Validate the title and freeze the label map."""
        if not self.title:
            raise ValueError("title must be a non-empty string")
        if isinstance(self.labels, dict):
            object.__setattr__(self, "labels", MappingProxyType(dict(self.labels)))

    def is_critical(self) -> bool:
        """Return True for CRITICAL and ERROR severities."""
        return self.severity in (Severity.CRITICAL, Severity.ERROR)

    def has_trace_id(self) -> bool:
        return self.trace_id is not None


SpanStatus: TypeAlias = Literal["ok", "error"]


@dataclass(frozen=True)
class SpanData:
    """A single span in a distributed trace."""

    span_id: str
    service_name: str
    operation_name: str
    duration: float  # milliseconds
    status: SpanStatus
    parent_span_id: str | None = None
    start_time: datetime | None = None
    attributes: dict[str, str] | MappingProxyType[str, str] = field(default_factory=dict)

    STATUS_OK = "ok"
    STATUS_ERROR = "error"

    def __post_init__(self) -> None:
        """Validate status and convert attributes to a read-only proxy."""
        if self.status not in (self.STATUS_OK, self.STATUS_ERROR):
            raise ValueError(f"status must be 'ok' or 'error', got {self.status!r}")
        if isinstance(self.attributes, dict):
            object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    def is_error(self) -> bool:
        return self.status == self.STATUS_ERROR

    def is_root(self) -> bool:
        """Return True when the span has no parent."""
        return not self.parent_span_id

    def http_attributes(self) -> dict[str, str]:
        return {k: v for k, v in self.attributes.items() if k.startswith("http.")}

    def db_attributes(self) -> dict[str, str]:
        return {k: v for k, v in self.attributes.items() if k.startswith("db.")}


@dataclass(frozen=True)
class TraceData:
    """A distributed trace as reconstructed from the trace backend.

    Search summaries carry ``span_count == 0`` and no spans; a full fetch
    populates both and keeps them consistent.
    """

    trace_id: str
    root_service: str
    root_operation: str
    start_time: datetime
    duration: float  # milliseconds
    span_count: int
    spans: tuple[SpanData, ...] = ()

    DEFAULT_SLOW_THRESHOLD_MS = 1000.0

    def __post_init__(self) -> None:
        """Validate span count invariants on creation."""
        spans = tuple(self.spans)
        object.__setattr__(self, "spans", spans)
        if self.span_count < 0:
            raise ValueError(f"span_count must be non-negative, got {self.span_count}")
        if spans and self.span_count != len(spans):
            raise ValueError(
                f"span_count ({self.span_count}) does not match "
                f"number of spans ({len(spans)})"
            )

    def is_summary(self) -> bool:
        """Return True for search results that carry no span detail."""
        return not self.spans

    def has_error(self) -> bool:
        return any(span.is_error() for span in self.spans)

    def is_slow(self, threshold_ms: float = DEFAULT_SLOW_THRESHOLD_MS) -> bool:
        return self.duration > threshold_ms

    def filter_by_service(self, service_name: str) -> list[SpanData]:
        return [span for span in self.spans if span.service_name == service_name]

    def root_spans(self) -> list[SpanData]:
        """Return spans without a parent, in document order."""
        return [span for span in self.spans if span.is_root()]
