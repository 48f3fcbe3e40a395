# -*- coding: utf-8 -*-
"""
Local OHLCV candle cache.

Stores candles as JSON lines, one file per symbol/timeframe:
``<cache_dir>/<symbol>/<timeframe>.jsonl``. Implements the candle-source
interface consumed by the backtest engine.
"""

import json
import os
import logging
from pathlib import Path
from typing import Iterable, List, Optional

import pandas as pd

from tradeval.data.candles import Candle, candles_from_dataframe


logger = logging.getLogger(__name__)


BINANCE_COLS = [
    "open_time", "open", "high", "low", "close", "volume",
    "close_time", "quote_volume", "trades", "taker_buy_base",
    "taker_buy_quote", "ignore",
]


class OHLCVCache:
    """JSONL-backed candle store."""

    def __init__(self, cache_dir: str = "data/ohlcv"):
        """
        Initialize candle cache.

        Parameters
        ----------
        cache_dir : str, default "data/ohlcv"
            Root directory of the cache
        """
        self.cache_dir = Path(cache_dir)

    def get_cache_path(self, symbol: str, timeframe: str) -> Path:
        return self.cache_dir / symbol / f"{timeframe}.jsonl"

    def _ensure_cache_dir(self, symbol: str):
        (self.cache_dir / symbol).mkdir(parents=True, exist_ok=True)

    def read_candles(self, symbol: str, timeframe: str) -> List[Candle]:
        """
        Read all candles for a symbol/timeframe in file order.

        Returns an empty list when nothing is cached yet.
        """
        cache_path = self.get_cache_path(symbol, timeframe)
        if not cache_path.exists():
            return []

        candles = []
        with open(cache_path, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if line:
                    candles.append(Candle.from_dict(json.loads(line)))
        return candles

    def append_candles(self, symbol: str, timeframe: str, candles: Iterable[Candle]):
        """Append candles to the cache file."""
        self._ensure_cache_dir(symbol)
        cache_path = self.get_cache_path(symbol, timeframe)

        with open(cache_path, 'a', encoding='utf-8') as f:
            for candle in candles:
                f.write(json.dumps(candle.to_dict()) + '\n')

    @staticmethod
    def merge_candles(existing: Iterable[Candle], new_candles: Iterable[Candle]) -> List[Candle]:
        """Merge two candle sets, deduplicating by ``ts`` (new wins), sorted ascending."""
        candle_map = {}
        for candle in existing:
            candle_map[candle.ts] = candle
        for candle in new_candles:
            candle_map[candle.ts] = candle
        return [candle_map[ts] for ts in sorted(candle_map)]

    def replace_cache(self, symbol: str, timeframe: str, candles: Iterable[Candle]):
        """Rewrite the whole cache file atomically (temp file + rename)."""
        self._ensure_cache_dir(symbol)
        cache_path = self.get_cache_path(symbol, timeframe)
        temp_path = cache_path.with_suffix(cache_path.suffix + '.tmp')

        with open(temp_path, 'w', encoding='utf-8') as f:
            for candle in candles:
                f.write(json.dumps(candle.to_dict()) + '\n')

        os.replace(temp_path, cache_path)
        logger.debug(f"Replaced cache {cache_path}")

    def get_last_timestamp(self, symbol: str, timeframe: str) -> Optional[int]:
        candles = self.read_candles(symbol, timeframe)
        if not candles:
            return None
        return candles[-1].ts

    def get_cache_size(self, symbol: str, timeframe: str) -> int:
        return len(self.read_candles(symbol, timeframe))


class InMemoryCandleSource:
    """Candle source over a fixed candle list, keyed by symbol/timeframe."""

    def __init__(self, candles: Optional[dict] = None):
        self._candles = dict(candles or {})

    def add(self, symbol: str, timeframe: str, candles: Iterable[Candle]):
        self._candles[(symbol, timeframe)] = list(candles)

    def read_candles(self, symbol: str, timeframe: str) -> List[Candle]:
        return list(self._candles.get((symbol, timeframe), []))


def parse_epoch(x):
    """Parse epoch timestamp to datetime."""
    x = int(x)
    if x > 1e17:
        return pd.to_datetime(x, unit="ns", utc=True)
    elif x > 1e14:
        return pd.to_datetime(x, unit="us", utc=True)
    elif x > 1e11:
        return pd.to_datetime(x, unit="ms", utc=True)
    else:
        return pd.to_datetime(x, unit="s", utc=True)


def parse_timestamp(value):
    """Parse timestamp that could be epoch (int), datetime string, or already a datetime."""
    if isinstance(value, pd.Timestamp):
        return value if value.tz is not None else value.tz_localize('UTC')

    # Numeric values are epochs of unknown resolution
    try:
        float(value)
        return parse_epoch(value)
    except (ValueError, TypeError):
        pass

    return pd.to_datetime(value, errors='coerce', utc=True)


def load_binance_csv(path: str) -> pd.DataFrame:
    """
    Load a Binance klines CSV file.

    Supports two formats:
    1. No header with epoch timestamps
    2. Header row with datetime strings

    Returns
    -------
    pd.DataFrame
        open, high, low, close, volume indexed by UTC datetime, sorted and
        deduplicated
    """
    with open(path, 'r') as f:
        first_line = f.readline().strip()

    # A numeric first column means there is no header row
    has_header = False
    if first_line:
        first_col = first_line.split(',')[0].strip()
        try:
            float(first_col)
        except ValueError:
            has_header = True

    if has_header:
        df = pd.read_csv(path)

        col_mapping = {}
        for col in df.columns:
            col_lower = col.lower().strip()
            if 'open time' in col_lower or 'open_time' in col_lower:
                col_mapping[col] = 'open_time'
            elif col_lower in ('open', 'high', 'low', 'close', 'volume'):
                col_mapping[col] = col_lower
        df = df.rename(columns=col_mapping)
    else:
        df = pd.read_csv(path, header=None, names=BINANCE_COLS)

    required_cols = ["open_time", "open", "high", "low", "close", "volume"]
    missing_cols = [col for col in required_cols if col not in df.columns]
    if missing_cols:
        raise ValueError(f"CSV file missing required columns: {missing_cols}. Found columns: {list(df.columns)}")

    num_cols = ["open", "high", "low", "close", "volume"]
    df[num_cols] = df[num_cols].astype(float)

    df["datetime"] = df["open_time"].apply(parse_timestamp)

    df = (
        df
        .dropna(subset=["datetime"])
        .drop_duplicates(subset=["datetime"])
        .sort_values("datetime")
        .set_index("datetime")
    )

    return df[num_cols]


def import_binance_csv(cache: OHLCVCache, path: str, symbol: str, timeframe: str) -> int:
    """
    Merge a Binance klines CSV into the cache.

    Returns
    -------
    int
        Number of candles in the cache after the merge
    """
    new_candles = candles_from_dataframe(load_binance_csv(path))
    merged = cache.merge_candles(cache.read_candles(symbol, timeframe), new_candles)
    cache.replace_cache(symbol, timeframe, merged)
    logger.info(f"Imported {len(new_candles)} candles from {path} into {symbol}/{timeframe}")
    return len(merged)
