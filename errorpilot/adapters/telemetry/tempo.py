"""Grafana Tempo trace adapter.

Implements TraceSourcePort by querying the Tempo HTTP API.

Tempo returns a trace as an unordered set of spans grouped by resource
batch, with no explicit root marker. The root is inferred in a single
pass as the span with the earliest start time, first encountered on ties.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from errorpilot.adapters.telemetry.timestamps import nanos_to_datetime
from errorpilot.core.models import (
    BackendConfig,
    BackendConnectionError,
    ConnectionCheck,
    SpanData,
    TraceData,
)
from errorpilot.core.ports import TraceSourcePort

logger = logging.getLogger(__name__)

ORG_ID_HEADER = "X-Scope-OrgID"
UNKNOWN_VALUE = "unknown"
DEFAULT_SINCE_MINUTES = 60
DEFAULT_LIMIT = 20
NANOS_PER_MILLI = 1_000_000
OTEL_ERROR_STATUS_CODE = "2"
SERVICE_NAME_ATTRIBUTE = "service.name"

# Tempo and OTLP JSON have used different container names across versions.
BATCH_KEYS = ("batches", "resourceSpans")
SCOPE_SPAN_KEYS = ("scopeSpans", "instrumentationLibrarySpans")

# Variants of an OTLP AnyValue, checked in this order.
ATTRIBUTE_VALUE_VARIANTS = (
    "stringValue",
    "intValue",
    "doubleValue",
    "boolValue",
    "bytesValue",
    "arrayValue",
    "kvlistValue",
)

OTEL_STATUS_NAMES = {
    "STATUS_CODE_UNSET": "0",
    "STATUS_CODE_OK": "1",
    "STATUS_CODE_ERROR": "2",
}


def _is_valid_trace_id(trace_id: str) -> bool:
    """Validate trace ID format (hex string, optionally hyphenated).

    Args:
        trace_id: The trace ID to validate.

    Returns:
        True if the trace ID is valid format.
    """
    if not isinstance(trace_id, str):
        return False
    return bool(trace_id) and all(c in "0123456789abcdefABCDEF-" for c in trace_id)


def _first_present(container: dict[str, Any], keys: tuple[str, ...]) -> list[Any]:
    """Return the first list found under any of the given keys."""
    for key in keys:
        value = container.get(key)
        if value is not None:
            if not isinstance(value, list):
                raise ValueError(f"Expected '{key}' to be a list")
            return value
    return []


def _nanos(span: dict[str, Any], key: str) -> int:
    """Read a nanosecond timestamp field (string or integer), 0 if absent."""
    value = span.get(key)
    if value is None or value == "":
        return 0
    return int(value)


def attribute_value_to_text(value: Any) -> str:
    """Flatten an OTLP AnyValue into text.

    Only the first populated variant is used.

    Args:
        value: Mapping such as ``{"stringValue": "GET"}`` or ``{"intValue": "200"}``.

    Returns:
        Text form of the value, or "" if no variant is populated.
    """
    if not isinstance(value, dict):
        return ""

    for variant in ATTRIBUTE_VALUE_VARIANTS:
        item = value.get(variant)
        if item is None or item == "":
            continue

        if variant == "boolValue":
            return "true" if item else "false"
        if variant == "arrayValue":
            values = item.get("values", []) if isinstance(item, dict) else []
            return "[" + ", ".join(attribute_value_to_text(v) for v in values) + "]"
        if variant == "kvlistValue":
            entries = item.get("values", []) if isinstance(item, dict) else []
            return "{" + ", ".join(
                f"{entry.get('key', '')}={attribute_value_to_text(entry.get('value'))}"
                for entry in entries
                if isinstance(entry, dict)
            ) + "}"
        return str(item)

    return ""


def flatten_attributes(attributes: Any) -> dict[str, str]:
    """Convert an OTLP ``[{key, value}]`` list into a string map."""
    result: dict[str, str] = {}
    for attr in attributes or []:
        if not isinstance(attr, dict):
            continue
        key = attr.get("key")
        if not key:
            continue
        result[str(key)] = attribute_value_to_text(attr.get("value"))
    return result


def resolve_service_name(batch: dict[str, Any]) -> str:
    """Return the batch's ``service.name`` resource attribute, or "unknown"."""
    resource = batch.get("resource") or {}
    for attr in resource.get("attributes") or []:
        if isinstance(attr, dict) and attr.get("key") == SERVICE_NAME_ATTRIBUTE:
            value = (attr.get("value") or {}).get("stringValue")
            if value:
                return str(value)
    return UNKNOWN_VALUE


def span_status(span: dict[str, Any]) -> str:
    """Map an OTLP span status to "ok" or "error"."""
    status = span.get("status") or {}
    code = status.get("code") if isinstance(status, dict) else None
    code = OTEL_STATUS_NAMES.get(str(code), str(code)) if code is not None else None
    return SpanData.STATUS_ERROR if code == OTEL_ERROR_STATUS_CODE else SpanData.STATUS_OK


def parse_trace(trace_id: str, payload: dict[str, Any]) -> TraceData | None:
    """Reconstruct a TraceData from a Tempo trace export.

    Args:
        trace_id: The requested trace ID.
        payload: Decoded JSON body of ``/api/traces/{trace_id}``.

    Returns:
        TraceData with every span, or None if the export holds no spans.

    Raises:
        ValueError: If the payload structure or a timestamp is malformed.
    """
    if not isinstance(payload, dict):
        raise ValueError("Trace response is not a JSON object")

    spans: list[SpanData] = []
    min_start: int | None = None
    max_end = 0
    root_service = UNKNOWN_VALUE
    root_operation = UNKNOWN_VALUE

    for batch in _first_present(payload, BATCH_KEYS):
        service_name = resolve_service_name(batch)

        for scope_span in _first_present(batch, SCOPE_SPAN_KEYS):
            for span in scope_span.get("spans") or []:
                start = _nanos(span, "startTimeUnixNano")
                end = _nanos(span, "endTimeUnixNano")
                operation = span.get("name") or UNKNOWN_VALUE

                # Strict comparison keeps the first span seen on ties.
                if min_start is None or start < min_start:
                    min_start = start
                    root_service = service_name
                    root_operation = operation
                if end > max_end:
                    max_end = end

                spans.append(
                    SpanData(
                        span_id=str(span.get("spanId", "")),
                        parent_span_id=span.get("parentSpanId") or None,
                        service_name=service_name,
                        operation_name=operation,
                        start_time=nanos_to_datetime(start),
                        duration=(end - start) / NANOS_PER_MILLI,
                        status=span_status(span),
                        attributes=flatten_attributes(span.get("attributes")),
                    )
                )

    if not spans or min_start is None:
        return None

    return TraceData(
        trace_id=trace_id,
        root_service=root_service,
        root_operation=root_operation,
        start_time=nanos_to_datetime(min_start),
        duration=(max_end - min_start) / NANOS_PER_MILLI,
        span_count=len(spans),
        spans=tuple(spans),
    )


def parse_search_result(trace: Any) -> TraceData:
    """Convert one ``/api/search`` result into a summary TraceData.

    Raises:
        ValueError: If the element is not an object, lacks a trace ID,
            or carries a non-numeric timestamp or duration.
    """
    if not isinstance(trace, dict):
        raise ValueError(f"Search result is not an object: {trace!r}")
    trace_id = trace.get("traceID")
    if not trace_id:
        raise ValueError("Search result has no traceID")

    start_nanos = _nanos(trace, "startTimeUnixNano")
    duration_ms = trace.get("durationMs")

    return TraceData(
        trace_id=str(trace_id),
        root_service=trace.get("rootServiceName") or UNKNOWN_VALUE,
        root_operation=trace.get("rootTraceName") or UNKNOWN_VALUE,
        start_time=nanos_to_datetime(start_nanos),
        duration=float(duration_ms) if duration_ms is not None else 0.0,
        span_count=0,
        spans=(),
    )


class TempoConnectionError(BackendConnectionError):
    """Tempo readiness probe failed."""


class TempoTraceAdapter(TraceSourcePort):
    """Grafana Tempo-backed trace adapter via HTTP API."""

    def __init__(
        self,
        config: BackendConfig,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize Tempo adapter.

        Args:
            config: Tempo connection settings (URL, tenant, auth).
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
        """Probe Tempo's /ready endpoint."""
        try:
            response = await self.client.get("/ready")
        except Exception as e:
            logger.warning(f"Tempo connection check failed ({self.base_url}): {e}")
            return ConnectionCheck.failure(
                TempoConnectionError(f"Tempo connection failed ({self.base_url}): {e}")
            )

        if not response.is_success:
            logger.warning(
                f"Tempo not ready ({self.base_url}): HTTP {response.status_code}"
            )
            return ConnectionCheck.failure(
                TempoConnectionError(
                    f"Tempo connection failed ({self.base_url}): "
                    f"HTTP {response.status_code} {response.reason_phrase}"
                )
            )

        return ConnectionCheck.success(f"Tempo connection succeeded ({self.base_url})")

    async def get_trace(self, trace_id: str) -> TraceData | None:
        """Return the reconstructed trace, or None if invalid, not found, or unparseable."""
        if not _is_valid_trace_id(trace_id):
            logger.warning(f"Invalid trace ID format: {trace_id!r}")
            return None

        try:
            response = await self.client.get(f"/api/traces/{trace_id}")
        except httpx.HTTPError as e:
            logger.error(f"Failed to fetch trace {trace_id} from Tempo: {e}", exc_info=True)
            return None

        if not response.is_success:
            logger.warning(f"Trace not found: {trace_id} (HTTP {response.status_code})")
            return None

        try:
            trace = parse_trace(trace_id, response.json())
        except Exception as e:
            logger.error(f"Failed to parse trace {trace_id}: {e}", exc_info=True)
            return None

        if trace is None:
            logger.warning(f"No spans found for trace {trace_id}")
        return trace

    async def search_traces(
        self,
        service: str | None = None,
        since_minutes: int = DEFAULT_SINCE_MINUTES,
        min_duration: str | None = None,
        max_duration: str | None = None,
        limit: int = DEFAULT_LIMIT,
    ) -> list[TraceData]:
        """Search recent traces and return summaries.

        Raises:
            ValueError: If since_minutes or limit is not positive.
        """
        if since_minutes <= 0:
            raise ValueError(f"since_minutes must be positive, got {since_minutes}")
        if limit <= 0:
            raise ValueError(f"limit must be positive, got {limit}")

        now = datetime.now(timezone.utc)
        start = now - timedelta(minutes=since_minutes)

        params: dict[str, Any] = {
            "start": int(start.timestamp()),
            "end": int(now.timestamp()),
            "limit": limit,
        }
        if service:
            params["tags"] = f"{SERVICE_NAME_ATTRIBUTE}={service}"
        if min_duration:
            params["minDuration"] = min_duration
        if max_duration:
            params["maxDuration"] = max_duration

        logger.debug(f"Tempo search: {params}")

        try:
            response = await self.client.get("/api/search", params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Failed to search traces in Tempo: {e}", exc_info=True)
            return []
        except ValueError as e:
            logger.error(f"Failed to decode Tempo search response: {e}", exc_info=True)
            return []

        raw_traces = payload.get("traces") if isinstance(payload, dict) else None
        if not isinstance(raw_traces, list):
            return []

        traces: list[TraceData] = []
        for raw in raw_traces:
            try:
                traces.append(parse_search_result(raw))
            except (ValueError, TypeError) as e:
                logger.warning(f"Skipping malformed trace search result: {e}")
        return traces
