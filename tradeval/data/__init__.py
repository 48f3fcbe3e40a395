# -*- coding: utf-8 -*-
"""
Market data: candle model, time helpers, and the local OHLCV cache.
"""

from tradeval.data.candles import (
    Candle,
    candles_from_dataframe,
    ms_to_iso,
    prepare_candles,
    timeframe_to_ms,
    to_timestamp_ms,
    MS_PER_DAY,
    MS_PER_MINUTE,
)
from tradeval.data.ohlcv_cache import (
    OHLCVCache,
    InMemoryCandleSource,
    load_binance_csv,
    import_binance_csv,
)

__all__ = [
    'Candle',
    'candles_from_dataframe',
    'ms_to_iso',
    'prepare_candles',
    'timeframe_to_ms',
    'to_timestamp_ms',
    'MS_PER_DAY',
    'MS_PER_MINUTE',
    'OHLCVCache',
    'InMemoryCandleSource',
    'load_binance_csv',
    'import_binance_csv',
]
