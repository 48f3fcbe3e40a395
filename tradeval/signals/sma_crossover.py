# -*- coding: utf-8 -*-
"""
Simple moving average crossover strategy.

Entry: fast MA crosses above slow MA (golden cross).
Exit: fast MA crosses below slow MA (death cross), or the strategy's own
stop-loss / take-profit levels are touched.
"""

from typing import Any, Dict, List, Optional

import numpy as np

from tradeval.data.candles import Candle
from tradeval.signals.base import Signal, Strategy


DEFAULT_CONFIG = {
    'fast_period': 10,
    'slow_period': 30,
    'stop_loss_pct': 0.02,
    'take_profit_pct': 0.04,
}


def calculate_ma(prices: List[float], period: int) -> Optional[float]:
    if len(prices) < period:
        return None
    return float(np.mean(prices[-period:]))


class SmaCrossoverStrategy(Strategy):
    """Golden/death cross on two simple moving averages of the close."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        merged = dict(DEFAULT_CONFIG)
        merged.update(config or {})
        if merged['fast_period'] >= merged['slow_period']:
            raise ValueError("fast_period must be smaller than slow_period")
        super().__init__('sma_crossover', 'Simple Moving Average Crossover', merged)
        self.reset()

    def reset(self):
        self.state = {
            'price_history': [],
            'fast_ma': [],
            'slow_ma': [],
            'position': None,
            'last_signal': None,
        }

    def generate_signal(self, candle: Candle, state: Dict[str, Any]) -> Optional[Signal]:
        history = state.setdefault('price_history', [])
        history.append(candle.close)

        # Keep only what the slow MA needs plus a margin
        max_history = self.config['slow_period'] + 10
        if len(history) > max_history:
            del history[:-max_history]

        fast = calculate_ma(history, self.config['fast_period'])
        slow = calculate_ma(history, self.config['slow_period'])
        if fast is None or slow is None:
            return None

        fast_ma = state.setdefault('fast_ma', [])
        slow_ma = state.setdefault('slow_ma', [])
        fast_ma.append(fast)
        slow_ma.append(slow)
        del fast_ma[:-2]
        del slow_ma[:-2]

        signal = None
        position = state.get('position')

        if len(fast_ma) == 2:
            fast_prev, fast_curr = fast_ma
            slow_prev, slow_curr = slow_ma

            if fast_prev <= slow_prev and fast_curr > slow_curr:
                if position is not None:
                    signal = Signal.close('Golden cross detected, closing existing position', confidence=0.8)
                    state['position'] = None
                else:
                    stop_loss = candle.close * (1 - self.config['stop_loss_pct'])
                    take_profit = candle.close * (1 + self.config['take_profit_pct'])
                    signal = Signal.buy(
                        0.7,
                        stop_loss=stop_loss,
                        take_profit=take_profit,
                        metadata={'fast_ma': fast, 'slow_ma': slow, 'reason': 'Golden cross'},
                    )
                    state['position'] = {
                        'entry_price': candle.close,
                        'entry_time': candle.ts,
                        'stop_loss': stop_loss,
                        'take_profit': take_profit,
                    }
            elif fast_prev >= slow_prev and fast_curr < slow_curr and position is not None:
                signal = Signal.close('Death cross detected, closing existing position', confidence=0.8)
                state['position'] = None

        position = state.get('position')
        if position is not None and signal is None:
            if candle.low <= position['stop_loss']:
                signal = Signal.close('Stop loss hit')
                state['position'] = None
            elif candle.high >= position['take_profit']:
                signal = Signal.close('Take profit hit')
                state['position'] = None

        if signal is not None:
            state['last_signal'] = {'action': signal.action.value, 'timestamp': candle.ts}

        return signal
