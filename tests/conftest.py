"""
Shared fixtures and fakes for the tradeval test suite.
"""

from datetime import date
from typing import Any, Dict, List, Optional

import pytest

from tradeval.backtesting import BacktestConfig, BacktestEngine, BacktestResult
from tradeval.data import Candle, InMemoryCandleSource
from tradeval.data.candles import MS_PER_MINUTE
from tradeval.signals import Signal, Strategy


BASE_TS = 1_735_689_600_000  # 2025-01-01T00:00:00Z
FIVE_MIN = 5 * MS_PER_MINUTE


def make_candles(rows, start_ts: int = BASE_TS, step_ms: int = FIVE_MIN) -> List[Candle]:
    """Build candles from (open, high, low, close) tuples at a fixed step."""
    return [
        Candle(ts=start_ts + i * step_ms, open=o, high=h, low=l, close=c, volume=1.0)
        for i, (o, h, l, c) in enumerate(rows)
    ]


def flat_candles(count: int, price: float = 100.0, start_ts: int = BASE_TS,
                 step_ms: int = FIVE_MIN) -> List[Candle]:
    return make_candles([(price, price, price, price)] * count, start_ts, step_ms)


class ScriptedStrategy(Strategy):
    """
    Emits pre-scripted signals by candle position within the run.

    ``config['signals']`` maps the 0-based candle index to a Signal.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__('scripted', 'Scripted', config or {'signals': {}})
        self.seen: List[int] = []

    def reset(self):
        self.state = {'index': 0}
        self.seen = []

    def generate_signal(self, candle: Candle, state: Dict[str, Any]) -> Optional[Signal]:
        index = state['index']
        state['index'] = index + 1
        self.seen.append(candle.ts)
        return self.config['signals'].get(index)


class ExplodingStrategy(Strategy):
    def __init__(self, config=None):
        super().__init__('exploding', 'Exploding', config)

    def generate_signal(self, candle, state):
        raise RuntimeError("strategy bug")


class FakeResultsStore:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.backtests = []
        self.folds = []

    def save_backtest_run(self, result):
        if self.fail:
            raise IOError("disk full")
        self.backtests.append(result)

    def save_walk_forward_run(self, record):
        if self.fail:
            raise IOError("disk full")
        self.folds.append(record)


class FakeAttribution:
    def __init__(self):
        self.calls = []

    def attribute_trade(self, trade_id, patterns, trade_result):
        self.calls.append((trade_id, patterns, trade_result))


class FakeStatsStore:
    def __init__(self, stored=None, fail_load: bool = False):
        self.stored = dict(stored or {})
        self.fail_load = fail_load
        self.saved = []

    def load(self, date_str):
        if self.fail_load:
            raise IOError("db locked")
        return self.stored.get(date_str)

    def save(self, stats, account_balance=None):
        self.saved.append((stats.to_dict(), account_balance))


class FakeNotifier:
    def __init__(self):
        self.rejections = []
        self.resets = []
        self.kill_switch = []

    def notify_rejection(self, intent, reason):
        self.rejections.append((intent, reason))

    def notify_daily_reset(self, previous_stats, account_balance=None):
        self.resets.append(previous_stats)

    def notify_kill_switch(self, enabled):
        self.kill_switch.append(enabled)


class MutableClock:
    def __init__(self, today: date):
        self.today = today

    def __call__(self) -> date:
        return self.today


def make_result(net_profit_pct: float = 1.0, sharpe_ratio: Optional[float] = 1.0,
                win_rate: float = 0.5) -> BacktestResult:
    return BacktestResult(
        id='bt_test', strategy_id='scripted', symbol='BTCUSDT', timeframe='1d',
        start_date='2025-01-01T00:00:00+00:00', end_date='2025-01-02T00:00:00+00:00',
        initial_capital=10000, final_capital=10000 * (1 + net_profit_pct / 100),
        total_trades=2, winning_trades=1, losing_trades=1, win_rate=win_rate,
        net_profit=100 * net_profit_pct, net_profit_pct=net_profit_pct,
        max_drawdown=0.0, max_drawdown_pct=0.0, sharpe_ratio=sharpe_ratio,
        profit_factor=None, avg_trade_duration_seconds=0,
    )


@pytest.fixture
def zero_cost_config():
    return BacktestConfig(spread_pct=0.0, slippage_pct=0.0, commission_pct=0.0)


@pytest.fixture
def source():
    return InMemoryCandleSource()


@pytest.fixture
def engine(source, zero_cost_config):
    return BacktestEngine(source, config=zero_cost_config)
