"""Test suite for the Errorpilot telemetry layer.

Organized into three categories:

1. core/: Unit tests for domain models
   - No I/O, fast execution

2. adapters/: Tests for the Loki and Tempo adapters
   - Backend responses served by httpx.MockTransport
   - Validates query construction, normalization, and error handling

3. fakes/: Port implementations for testing
   - In-memory LogSourcePort and TraceSourcePort
   - Used by composition root tests
"""
