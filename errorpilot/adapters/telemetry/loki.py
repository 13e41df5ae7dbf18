"""Grafana Loki log adapter.

Implements LogSourcePort by querying the Loki HTTP API and normalizing
log streams into UnifiedError objects.

Loki exposes severity and trace correlation only through optional,
inconsistently named stream labels or substrings of the log line itself,
so classification walks ordered lookup tables defined at module level.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from errorpilot.adapters.telemetry.timestamps import nanos_to_datetime
from errorpilot.core.models import (
    BackendConfig,
    BackendConnectionError,
    ConnectionCheck,
    FetchErrorsOptions,
    Severity,
    UnifiedError,
)
from errorpilot.core.ports import LogSourcePort

logger = logging.getLogger(__name__)

ORG_ID_HEADER = "X-Scope-OrgID"
MAX_TITLE_LENGTH = 100
TITLE_ELLIPSIS = "..."
EMPTY_MESSAGE_TITLE = "(empty log line)"

# Label keys tried in order; the first non-empty value wins.
SERVICE_LABEL_KEYS = ("service_name", "service.name")
NAMESPACE_LABEL_KEYS = ("namespace", "k8s.namespace.name")
POD_LABEL_KEYS = ("pod", "k8s.pod.name")
CONTAINER_LABEL_KEYS = ("container", "k8s.container.name")
TRACE_ID_LABEL_KEYS = ("trace_id", "traceId")
SEVERITY_LABEL_KEYS = ("level", "severity_text", "severity")

# Exact (case-insensitive) severity label values.
EXACT_SEVERITY_KEYWORDS: dict[str, Severity] = {
    "critical": Severity.CRITICAL,
    "fatal": Severity.CRITICAL,
    "error": Severity.ERROR,
    "err": Severity.ERROR,
    "warning": Severity.WARNING,
    "warn": Severity.WARNING,
    "info": Severity.INFO,
}

# Substring fallback over "<label> <message>", highest priority first.
FALLBACK_SEVERITY_KEYWORDS: tuple[tuple[tuple[str, ...], Severity], ...] = (
    (("critical", "fatal"), Severity.CRITICAL),
    (("error", "exception"), Severity.ERROR),
    (("warn",), Severity.WARNING),
)

DEFAULT_SEVERITIES = (Severity.ERROR, Severity.CRITICAL)
CATCH_ALL_SELECTOR = 'service_name=~".+"'

TRACE_ID_PATTERN = re.compile(
    r"[0-9a-f]{32}|[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"
)
STACK_LINE_PATTERN = re.compile(r'^(\s+at |\s*File "|Traceback |\s*Caused by:)')


def _is_valid_identifier(identifier: str) -> bool:
    """Validate a label name before it is placed in a URL path.

    Args:
        identifier: The label name to validate.

    Returns:
        True if the label name is safe to use.
    """
    if not isinstance(identifier, str):
        return False
    return bool(identifier) and all(c.isalnum() or c in "_-." for c in identifier)


def _quote_label_value(value: str) -> str:
    """Quote a value for use inside a LogQL double-quoted string."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _first_label(labels: dict[str, str], keys: tuple[str, ...]) -> str | None:
    """Return the first non-empty label value among the given keys."""
    for key in keys:
        value = labels.get(key)
        if value:
            return value
    return None


def build_logql_query(
    options: FetchErrorsOptions,
    environment: str | None = None,
    environment_label: str = "environment",
) -> str:
    """Build a LogQL expression from a filter request.

    The selector always carries at least one matcher because Loki rejects
    queries without one.

    Args:
        options: Validated filter request.
        environment: Optional environment tag to match.
        environment_label: Label key holding the environment tag.

    Returns:
        LogQL query string, e.g.
        ``{service_name="api"} |~ "(?i)(error|ERROR|critical|CRITICAL)"``
    """
    selectors: list[str] = []
    if environment:
        selectors.append(f"{environment_label}={_quote_label_value(environment)}")
    if options.service:
        selectors.append(f"service_name={_quote_label_value(options.service)}")
    if options.namespace:
        selectors.append(f"namespace={_quote_label_value(options.namespace)}")
    if not selectors:
        selectors.append(CATCH_ALL_SELECTOR)

    severities = options.severity or DEFAULT_SEVERITIES
    keywords: list[str] = []
    for level in severities:
        for spelling in (level.name.lower(), level.name.upper()):
            if spelling not in keywords:
                keywords.append(spelling)

    selector = "{" + ", ".join(selectors) + "}"
    return f'{selector} |~ "(?i)({"|".join(keywords)})"'


def classify_severity(message: str, labels: dict[str, str]) -> Severity:
    """Classify a log line's severity.

    An exact keyword in the level label wins. Otherwise the label value and
    message are searched for fallback keywords, defaulting to INFO.

    Args:
        message: Log line text.
        labels: Stream labels.

    Returns:
        Detected Severity.
    """
    level_label = _first_label(labels, SEVERITY_LABEL_KEYS) or ""

    exact = EXACT_SEVERITY_KEYWORDS.get(level_label.strip().lower())
    if exact is not None:
        return exact

    combined = f"{level_label} {message}".lower()
    for keywords, severity in FALLBACK_SEVERITY_KEYWORDS:
        if any(keyword in combined for keyword in keywords):
            return severity
    return Severity.INFO


def extract_title(message: str) -> str:
    """Return the first line of a message, truncated to MAX_TITLE_LENGTH."""
    lines = message.splitlines()
    first_line = lines[0] if lines else ""
    if not first_line:
        return EMPTY_MESSAGE_TITLE
    if len(first_line) > MAX_TITLE_LENGTH:
        return first_line[:MAX_TITLE_LENGTH] + TITLE_ELLIPSIS
    return first_line


def extract_trace_id(message: str, labels: dict[str, str]) -> str | None:
    """Return the trace ID from labels, else the first ID-shaped token in the message."""
    from_label = _first_label(labels, TRACE_ID_LABEL_KEYS)
    if from_label:
        return from_label
    match = TRACE_ID_PATTERN.search(message)
    return match.group(0) if match else None


def extract_stack_trace(message: str) -> str | None:
    """Return the lines after the first when they contain stack frames."""
    lines = message.splitlines()
    if len(lines) < 2:
        return None
    rest = lines[1:]
    if any(STACK_LINE_PATTERN.match(line) for line in rest):
        return "\n".join(rest)
    return None


class LokiConnectionError(BackendConnectionError):
    """Loki readiness probe failed."""


class LokiLogAdapter(LogSourcePort):
    """Grafana Loki-backed log adapter via HTTP API."""

    def __init__(
        self,
        config: BackendConfig,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize Loki adapter.

        Args:
            config: Loki connection settings (URL, tenant, auth, environment).
            timeout: Transport timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self.config = config
        self.base_url = config.url
        self._closed = False
        auth = (config.username, config.password) if config.has_basic_auth() else None
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={ORG_ID_HEADER: config.org_id},
            auth=auth,
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        """Close the httpx client. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        await self.client.aclose()

    async def test_connection(self) -> ConnectionCheck:
        """Probe Loki's /ready endpoint."""
        try:
            response = await self.client.get("/ready")
        except Exception as e:
            logger.warning(f"Loki connection check failed ({self.base_url}): {e}")
            return ConnectionCheck.failure(
                LokiConnectionError(f"Loki connection failed ({self.base_url}): {e}")
            )

        if not response.is_success:
            logger.warning(
                f"Loki not ready ({self.base_url}): HTTP {response.status_code}"
            )
            return ConnectionCheck.failure(
                LokiConnectionError(
                    f"Loki connection failed ({self.base_url}): "
                    f"HTTP {response.status_code} {response.reason_phrase}"
                )
            )

        return ConnectionCheck.success(f"Loki connection succeeded ({self.base_url})")

    async def get_labels(self) -> list[str]:
        return await self._get_string_list("/loki/api/v1/labels")

    async def get_label_values(self, name: str) -> list[str]:
        """Return values of one label.

        Raises:
            ValueError: If the label name is not a valid identifier.
        """
        if not _is_valid_identifier(name):
            raise ValueError(f"Invalid label name: {name!r}")
        return await self._get_string_list(f"/loki/api/v1/label/{name}/values")

    async def _get_string_list(self, path: str) -> list[str]:
        """GET a Loki endpoint shaped ``{"status": ..., "data": [str, ...]}``."""
        try:
            response = await self.client.get(path)
            response.raise_for_status()
            payload = response.json()
            data = payload.get("data") if isinstance(payload, dict) else None
            if not isinstance(data, list):
                raise ValueError(f"Unexpected response shape from {path}")
            return [str(item) for item in data]
        except httpx.HTTPError as e:
            logger.error(f"Failed to fetch {path} from Loki: {e}", exc_info=True)
            return []
        except ValueError as e:
            logger.error(f"Failed to decode {path} response from Loki: {e}", exc_info=True)
            return []

    async def fetch_errors(self, options: FetchErrorsOptions) -> list[UnifiedError]:
        """Fetch error logs for a filter request.

        Builds the LogQL expression and delegates to query().
        """
        logql = build_logql_query(
            options,
            environment=self.config.environment,
            environment_label=self.config.environment_label,
        )
        return await self.query(logql, options.since_minutes, options.limit)

    async def query(
        self, expression: str, since_minutes: int, limit: int
    ) -> list[UnifiedError]:
        """Run a LogQL expression over the last ``since_minutes`` minutes.

        Raises:
            ValueError: If the expression is blank or the window/limit is invalid.
        """
        if not expression or not expression.strip():
            raise ValueError("expression must be a non-empty string")
        if since_minutes <= 0:
            raise ValueError(f"since_minutes must be positive, got {since_minutes}")
        if not 1 <= limit <= FetchErrorsOptions.MAX_LIMIT:
            raise ValueError(
                f"limit must be between 1 and {FetchErrorsOptions.MAX_LIMIT}, got {limit}"
            )

        now = datetime.now(timezone.utc)
        start = now - timedelta(minutes=since_minutes)

        logger.debug(f"Loki query: {expression}")

        try:
            response = await self.client.get(
                "/loki/api/v1/query_range",
                params={
                    "query": expression,
                    "start": int(start.timestamp()),
                    "end": int(now.timestamp()),
                    "limit": limit,
                },
            )
            response.raise_for_status()
            streams = self._extract_streams(response.json())
        except httpx.HTTPError as e:
            logger.error(f"Failed to query Loki: {e}", exc_info=True)
            return []
        except ValueError as e:
            logger.error(f"Failed to decode Loki query response: {e}", exc_info=True)
            return []

        errors: list[UnifiedError] = []
        for stream in streams:
            labels = stream.get("stream") or {}
            if not isinstance(labels, dict):
                logger.warning(f"Skipping Loki stream with malformed labels: {labels!r}")
                continue
            labels = {str(k): str(v) for k, v in labels.items()}
            values = stream.get("values") or []
            if not isinstance(values, list):
                logger.warning(f"Skipping Loki stream with malformed values: {values!r}")
                continue

            for value in values:
                try:
                    errors.append(self._parse_log_entry(labels, value))
                except (ValueError, TypeError, IndexError, KeyError) as e:
                    logger.warning(f"Skipping malformed Loki log entry {value!r}: {e}")

        errors.sort(key=lambda error: error.timestamp, reverse=True)
        return errors

    @staticmethod
    def _extract_streams(payload: Any) -> list[dict[str, Any]]:
        """Return the stream list from a query_range response.

        Raises:
            ValueError: If the payload is not a streams result.
        """
        if not isinstance(payload, dict):
            raise ValueError("Loki response is not a JSON object")
        data = payload.get("data") or {}
        if not isinstance(data, dict):
            raise ValueError("Loki response 'data' is not an object")
        result = data.get("result") or []
        if not isinstance(result, list):
            raise ValueError("Loki response 'data.result' is not a list")
        return [stream for stream in result if isinstance(stream, dict)]

    @staticmethod
    def _parse_log_entry(labels: dict[str, str], value: list[Any]) -> UnifiedError:
        """Convert a single ``[timestamp_ns, line]`` pair into a UnifiedError.

        Args:
            labels: Stream labels shared by every line in the stream.
            value: Two-element list from the stream's ``values``.

        Returns:
            UnifiedError for the log line.

        Raises:
            ValueError: If the timestamp is not an integer.
            IndexError: If the value pair is empty.
        """
        timestamp_nanos = int(value[0])
        message = str(value[1]) if len(value) > 1 and value[1] is not None else ""

        return UnifiedError(
            timestamp=nanos_to_datetime(timestamp_nanos),
            severity=classify_severity(message, labels),
            title=extract_title(message),
            message=message,
            stack_trace=extract_stack_trace(message),
            service=_first_label(labels, SERVICE_LABEL_KEYS),
            namespace=_first_label(labels, NAMESPACE_LABEL_KEYS),
            pod=_first_label(labels, POD_LABEL_KEYS),
            container=_first_label(labels, CONTAINER_LABEL_KEYS),
            trace_id=extract_trace_id(message, labels),
            labels=labels,
            raw={"stream": labels, "value": list(value)},
        )
