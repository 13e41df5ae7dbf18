"""Composition root for the Errorpilot telemetry layer.

This module is the ONLY location that wires configuration to concrete
adapter implementations. It provides a connection check that probes
the configured Loki and Tempo backends and prints a short sample of
what each one returns.

Module Structure:
- Configuration loading via config module
- Logging setup
- Adapter instantiation and scoped cleanup
- Connection check entry point
"""

import asyncio
import logging
import sys

from errorpilot.adapters.telemetry.loki import LokiLogAdapter
from errorpilot.adapters.telemetry.tempo import TempoTraceAdapter
from errorpilot.config import Settings, load_settings
from errorpilot.core.models import FetchErrorsOptions
from errorpilot.core.ports import LogSourcePort, TraceSourcePort

SAMPLE_ERROR_LIMIT = 5
SAMPLE_TRACE_LIMIT = 3
SAMPLE_SINCE_MINUTES = 60
SERVICE_LABEL = "service_name"


def configure_logging(log_level: str, log_format: str) -> None:
    """Configure application logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: Log format (json, text).
    """
    level = getattr(logging, log_level, logging.INFO)

    if log_format == "json":
        format_str = '{"time": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}'
    else:
        format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[
            logging.StreamHandler(sys.stderr),
        ],
    )


async def check_logs(loki: LogSourcePort) -> bool:
    """Probe Loki and print labels, services, and recent errors.

    Returns:
        True if the backend is reachable.
    """
    result = await loki.test_connection()
    if not result.ok:
        print(f"  FAILED: {result.message}")
        return False
    print(f"  OK: {result.message}")

    labels = await loki.get_labels()
    print(f"  Labels ({len(labels)}): {', '.join(labels) or '-'}")

    services = await loki.get_label_values(SERVICE_LABEL)
    print(f"  Services ({len(services)}): {', '.join(services) or '-'}")

    errors = await loki.fetch_errors(
        FetchErrorsOptions(since_minutes=SAMPLE_SINCE_MINUTES, limit=SAMPLE_ERROR_LIMIT)
    )
    if not errors:
        print("  No recent errors")
    for error in errors:
        print(f"  [{error.severity.value}] {error.service or 'unknown'}: {error.title[:50]}")
    return True


async def check_traces(tempo: TraceSourcePort) -> bool:
    """Probe Tempo and print recent trace summaries.

    Returns:
        True if the backend is reachable.
    """
    result = await tempo.test_connection()
    if not result.ok:
        print(f"  FAILED: {result.message}")
        return False
    print(f"  OK: {result.message}")

    traces = await tempo.search_traces(
        since_minutes=SAMPLE_SINCE_MINUTES, limit=SAMPLE_TRACE_LIMIT
    )
    if not traces:
        print("  No recent traces")
    for trace in traces:
        print(f"  {trace.root_service} / {trace.root_operation} ({int(trace.duration)}ms)")
    return True


async def run_connection_check(settings: Settings) -> bool:
    """Run the connection check against every configured backend.

    Adapters are closed on exit even when a check fails.

    Returns:
        True if every configured backend is reachable.
    """
    logger = logging.getLogger(__name__)
    healthy = True

    loki_config = settings.loki_config()
    print(f"Loki: {loki_config.url} (tenant {loki_config.org_id})")
    async with LokiLogAdapter(loki_config, timeout=settings.http_timeout_seconds) as loki:
        healthy = await check_logs(loki) and healthy

    tempo_config = settings.tempo_config()
    if tempo_config is None:
        logger.info("Tempo not configured, skipping trace check")
        print("Tempo: not configured")
        return healthy

    print(f"Tempo: {tempo_config.url} (tenant {tempo_config.org_id})")
    async with TempoTraceAdapter(tempo_config, timeout=settings.http_timeout_seconds) as tempo:
        healthy = await check_traces(tempo) and healthy

    return healthy


def main() -> None:
    """Connection check entry point.

    Exit codes:
        0: All configured backends reachable
        1: A backend is unreachable or configuration is invalid
        130: Interrupted by user (SIGINT/KeyboardInterrupt)
    """
    logger = logging.getLogger(__name__)
    try:
        settings = load_settings()
    except Exception as e:
        logging.basicConfig(level=logging.ERROR)
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    configure_logging(settings.log_level, settings.log_format)

    try:
        healthy = asyncio.run(run_connection_check(settings))
    except KeyboardInterrupt:
        logger.warning("Interrupted by user (SIGINT)")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)

    sys.exit(0 if healthy else 1)


if __name__ == "__main__":
    main()
