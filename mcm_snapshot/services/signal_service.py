"""
MCM Snapshot - Signal Service
Turns raw candles, last price and baseline into window high, performance-vs-baseline
and reversal confirmation. Pure functions; pandas for candle normalization.
"""

import math
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from mcm_snapshot.models.snapshot_models import ExtendedWindowSignals, Reversal, WindowSignals

CANDLE_COLUMNS = ["timestamp", "open", "high", "low", "close", "volume"]
PLACEHOLDER = "—"


def _finite(x: Any) -> bool:
    return isinstance(x, (int, float)) and not isinstance(x, bool) and math.isfinite(x)


def _clean(x: Any) -> Optional[float]:
    """pandas scalar -> finite float or None"""
    if x is None or pd.isna(x):
        return None
    x = float(x)
    return x if math.isfinite(x) else None


class SignalService:
    """Signal computer for one symbol's fetched data"""

    @staticmethod
    def candles_frame(values: List[Dict[str, Any]]) -> pd.DataFrame:
        """
        Normalize upstream candles.

        Returns:
            DataFrame with columns timestamp, open, high, low, close, volume:
            - numeric columns coerced (junk -> NaN)
            - sorted by timestamp DESCENDING (newest first); unparseable timestamps last
        """
        if not values:
            return pd.DataFrame(columns=CANDLE_COLUMNS)

        df = pd.DataFrame(values)
        if "timestamp" not in df.columns:
            df["timestamp"] = df["datetime"] if "datetime" in df.columns else None
        df["timestamp"] = pd.to_datetime(df["timestamp"], errors="coerce")

        for col in ["open", "high", "low", "close", "volume"]:
            if col in df.columns:
                df[col] = pd.to_numeric(df[col], errors="coerce")
            else:
                df[col] = float("nan")

        df = df[CANDLE_COLUMNS]
        return df.sort_values("timestamp", ascending=False, na_position="last", kind="stable").reset_index(drop=True)

    @staticmethod
    def compute_high(values: List[Dict[str, Any]]) -> Tuple[Optional[float], Optional[float]]:
        """
        Window high and last close.

        high: max of every candle's high (order-independent)
        last_close: close of the most recently timestamped candle

        Returns:
            (high, last_close), each None when unavailable
        """
        df = SignalService.candles_frame(values)
        if df.empty:
            return None, None
        high = _clean(df["high"].max(skipna=True))
        last_close = _clean(df["close"].iloc[0])
        return high, last_close

    @staticmethod
    def compute_perf_high(high: Optional[float], baseline: Optional[float]) -> Optional[float]:
        """(high - baseline) / baseline as a fraction; None unless both finite and baseline != 0"""
        if not _finite(high) or not _finite(baseline) or baseline == 0:
            return None
        return (high - baseline) / baseline

    @staticmethod
    def compute_reversal(
        high: Optional[float],
        last: Optional[float],
        baseline: Optional[float],
    ) -> Reversal:
        """
        Confirmed iff high >= baseline AND last > baseline.
        The high only needs to touch the baseline; the last price must exceed it.
        """
        need_high = baseline if _finite(baseline) else None
        need_last = baseline if _finite(baseline) else None

        ok_high = _finite(high) and need_high is not None and high >= need_high
        ok_last = _finite(last) and need_last is not None and last > need_last

        def fmt(v: Optional[float]) -> str:
            return f"{v:.2f}" if v is not None else PLACEHOLDER

        return Reversal(
            confirmed=bool(ok_high and ok_last),
            detail=f"Need High ≥ {fmt(need_high)} AND Last > {fmt(need_last)}",
        )

    @classmethod
    def build_window(
        cls,
        high: Optional[float],
        last: Optional[float],
        baseline: Optional[float],
    ) -> WindowSignals:
        return WindowSignals(
            high=high,
            perf_high=cls.compute_perf_high(high, baseline),
            reversal=cls.compute_reversal(high, last, baseline),
        )

    @classmethod
    def build_extended_window(
        cls,
        high: Optional[float],
        last: Optional[float],
        baseline: Optional[float],
    ) -> ExtendedWindowSignals:
        return ExtendedWindowSignals(
            available=True,
            high=high,
            perf_high=cls.compute_perf_high(high, baseline),
            reversal=cls.compute_reversal(high, last, baseline),
        )
