"""Tests for nanosecond timestamp conversion."""

from datetime import datetime, timezone

import pytest

from errorpilot.adapters.telemetry.timestamps import nanos_to_datetime


class TestNanosToDatetime:
    """Tests for nanos_to_datetime."""

    def test_keeps_microsecond_precision(self) -> None:
        assert nanos_to_datetime(1_700_000_000_123_456_789) == datetime(
            2023, 11, 14, 22, 13, 20, 123456, tzinfo=timezone.utc
        )

    def test_epoch(self) -> None:
        assert nanos_to_datetime(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize("nanos", [10**30, -(10**30)])
    def test_out_of_range_raises_value_error(self, nanos: int) -> None:
        with pytest.raises(ValueError, match="Timestamp out of range"):
            nanos_to_datetime(nanos)
