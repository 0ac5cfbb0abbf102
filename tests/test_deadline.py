"""
Tests for wall-clock call limits
"""
import time

import pytest

from src.services.deadline import DeadlineExceeded, call_with_deadline


class TestCallWithDeadline:
    """Test suite for call_with_deadline()."""

    def test_returns_result(self):
        assert call_with_deadline(1.0, lambda a, b=0: a + b, 2, b=3) == 5

    def test_reraises_call_error(self):
        def fail():
            raise KeyError("missing")

        with pytest.raises(KeyError):
            call_with_deadline(1.0, fail)

    def test_stops_waiting_at_deadline(self):
        started = time.monotonic()

        with pytest.raises(DeadlineExceeded) as exc_info:
            call_with_deadline(0.2, time.sleep, 2)

        assert time.monotonic() - started < 1.0
        assert exc_info.value.seconds == 0.2
