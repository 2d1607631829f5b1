"""Tests for window high, performance vs baseline and reversal confirmation."""

import pytest

from mcm_snapshot.services.signal_service import SignalService

from conftest import make_candles


class TestComputeHigh:
    def test_high_and_last_close(self):
        values = make_candles([101.0, 105.0, 103.0], closes=[100.5, 104.0, 102.0])
        high, last_close = SignalService.compute_high(values)
        assert high == 105.0
        # newest candle comes first upstream
        assert last_close == 100.5

    def test_order_independent(self):
        values = make_candles([101.0, 105.0, 103.0], closes=[100.5, 104.0, 102.0])
        high, last_close = SignalService.compute_high(list(reversed(values)))
        assert high == 105.0
        assert last_close == 100.5

    def test_empty(self):
        assert SignalService.compute_high([]) == (None, None)

    def test_junk_values_ignored(self):
        values = [
            {"datetime": "2024-01-16 10:05:00", "high": "oops", "close": "99.0"},
            {"datetime": "2024-01-16 10:00:00", "high": "100.0", "close": "98.0"},
        ]
        high, last_close = SignalService.compute_high(values)
        assert high == 100.0
        assert last_close == 99.0

    def test_no_numeric_highs(self):
        values = [{"datetime": "2024-01-16 10:05:00", "high": None, "close": None}]
        assert SignalService.compute_high(values) == (None, None)

    def test_frame_sorted_newest_first(self):
        values = [
            {"datetime": "2024-01-16 09:35:00", "high": "1", "close": "1"},
            {"datetime": "2024-01-16 09:45:00", "high": "3", "close": "3"},
            {"datetime": "2024-01-16 09:40:00", "high": "2", "close": "2"},
        ]
        df = SignalService.candles_frame(values)
        assert list(df["close"]) == [3.0, 2.0, 1.0]


class TestPerfHigh:
    def test_fraction(self):
        assert SignalService.compute_perf_high(110.0, 100.0) == pytest.approx(0.10)

    def test_below_baseline(self):
        assert SignalService.compute_perf_high(95.0, 100.0) == pytest.approx(-0.05)

    @pytest.mark.parametrize("high,baseline", [
        (None, 100.0),
        (110.0, None),
        (110.0, 0.0),
        (float("nan"), 100.0),
    ])
    def test_undefined(self, high, baseline):
        assert SignalService.compute_perf_high(high, baseline) is None


class TestReversal:
    def test_confirmed_when_high_touches(self):
        r = SignalService.compute_reversal(high=100.0, last=100.01, baseline=100.0)
        assert r.confirmed is True

    def test_last_must_exceed(self):
        r = SignalService.compute_reversal(high=101.0, last=100.0, baseline=100.0)
        assert r.confirmed is False

    def test_high_below_baseline(self):
        r = SignalService.compute_reversal(high=99.0, last=101.0, baseline=100.0)
        assert r.confirmed is False

    def test_detail(self):
        r = SignalService.compute_reversal(high=101.0, last=101.0, baseline=100.0)
        assert r.detail == "Need High ≥ 100.00 AND Last > 100.00"

    def test_no_baseline(self):
        r = SignalService.compute_reversal(high=101.0, last=101.0, baseline=None)
        assert r.confirmed is False
        assert r.detail == "Need High ≥ — AND Last > —"

    def test_missing_inputs(self):
        assert SignalService.compute_reversal(high=None, last=101.0, baseline=100.0).confirmed is False
        assert SignalService.compute_reversal(high=101.0, last=None, baseline=100.0).confirmed is False


class TestWindows:
    def test_window_wire_names(self):
        window = SignalService.build_window(110.0, 105.0, 100.0)
        dumped = window.model_dump(by_alias=True)
        assert dumped["high"] == 110.0
        assert dumped["perfHigh"] == pytest.approx(0.10)
        assert dumped["reversal"]["confirmed"] is True

    def test_extended_window_available(self):
        window = SignalService.build_extended_window(None, None, 100.0)
        assert window.available is True
        assert window.perf_high is None
        assert window.reversal.confirmed is False
