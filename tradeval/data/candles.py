# -*- coding: utf-8 -*-
"""
Candle model and time helpers.

Candle timestamps are epoch milliseconds (UTC) throughout the package.
"""

import re
from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterable, List

import numpy as np
import pandas as pd

from tradeval.errors import ValidationError


MS_PER_MINUTE = 60 * 1000
MS_PER_DAY = 24 * 60 * MS_PER_MINUTE

_TIMEFRAME_RE = re.compile(r"^(\d+)([mhd]?)$")


@dataclass(frozen=True)
class Candle:
    """One OHLCV bar. ``ts`` is the bar open time in epoch milliseconds."""

    ts: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Candle":
        return cls(
            ts=int(data['ts']),
            open=float(data['open']),
            high=float(data['high']),
            low=float(data['low']),
            close=float(data['close']),
            volume=float(data.get('volume', 0.0) or 0.0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def timeframe_to_ms(timeframe: str) -> int:
    """
    Convert a timeframe string to milliseconds.

    Accepts ``"5m"``, ``"1h"``, ``"1d"`` or a bare number of minutes (``"5"``).
    Anything else maps to one minute.
    """
    match = _TIMEFRAME_RE.match(str(timeframe).strip())
    if not match:
        return MS_PER_MINUTE

    value = int(match.group(1))
    unit = match.group(2) or 'm'
    if unit == 'h':
        return value * 60 * MS_PER_MINUTE
    if unit == 'd':
        return value * MS_PER_DAY
    return value * MS_PER_MINUTE


def to_timestamp_ms(value: Any) -> int:
    """
    Parse a date-like value to epoch milliseconds (UTC).

    Parameters
    ----------
    value : int, float, str, datetime, date or pd.Timestamp
        Integers are taken as epoch milliseconds already. Naive datetimes and
        strings without an offset are read as UTC.

    Returns
    -------
    int
        Epoch milliseconds

    Raises
    ------
    ValidationError
        If the value is missing or cannot be parsed.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"Invalid date value: {value!r}")
    if isinstance(value, (int, np.integer)):
        return int(value)
    if isinstance(value, (float, np.floating)):
        return int(value)

    try:
        ts = pd.Timestamp(value)
    except (ValueError, TypeError) as e:
        raise ValidationError(f"Invalid date value: {value!r}") from e
    if pd.isna(ts):
        raise ValidationError(f"Invalid date value: {value!r}")

    if ts.tzinfo is None:
        ts = ts.tz_localize('UTC')
    else:
        ts = ts.tz_convert('UTC')
    return int(round(ts.timestamp() * 1000))


def ms_to_iso(ts: int) -> str:
    """Format epoch milliseconds as an ISO-8601 UTC string."""
    return pd.Timestamp(int(ts), unit='ms', tz='UTC').isoformat()


def prepare_candles(candles: Iterable[Candle]) -> List[Candle]:
    """Sort ascending by ``ts`` and drop duplicate timestamps (last one wins)."""
    by_ts: Dict[int, Candle] = {}
    for candle in candles:
        by_ts[candle.ts] = candle
    return [by_ts[ts] for ts in sorted(by_ts)]


def candles_from_dataframe(df: pd.DataFrame) -> List[Candle]:
    """
    Convert an OHLCV DataFrame indexed by datetime into candles.

    Parameters
    ----------
    df : pd.DataFrame
        Frame with open, high, low, close (and optionally volume) columns and
        a DatetimeIndex.

    Returns
    -------
    list of Candle
    """
    required_cols = ["open", "high", "low", "close"]
    missing_cols = [col for col in required_cols if col not in df.columns]
    if missing_cols:
        raise ValidationError(f"DataFrame missing required columns: {missing_cols}")

    index = pd.DatetimeIndex(df.index)
    if index.tz is None:
        index = index.tz_localize('UTC')
    else:
        index = index.tz_convert('UTC')
    ts_values = index.as_unit("ms").asi8

    volumes = df['volume'] if 'volume' in df.columns else pd.Series(0.0, index=df.index)

    return [
        Candle(
            ts=int(ts),
            open=float(o),
            high=float(h),
            low=float(lo),
            close=float(c),
            volume=float(v),
        )
        for ts, o, h, lo, c, v in zip(
            ts_values, df['open'], df['high'], df['low'], df['close'], volumes
        )
    ]
