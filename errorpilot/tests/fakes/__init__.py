"""Fake implementations of port interfaces for testing."""

from .telemetry import FakeLogSource, FakeTraceSource

__all__ = ["FakeLogSource", "FakeTraceSource"]
