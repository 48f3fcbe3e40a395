"""
Tests for walk-forward validation.

Tests cover:
- Fold generation and exclusive window ends
- Consecutive degradation detection
- Aggregation with missing metrics
- Fold persistence and deterministic fold ids
- End-to-end run through the real backtest engine
"""

import logging
import math

import pytest

from tradeval.backtesting import BacktestEngine, WalkForwardValidator
from tradeval.data import InMemoryCandleSource
from tradeval.data.candles import MS_PER_DAY, to_timestamp_ms
from tradeval.errors import DataError, ValidationError
from tradeval.ids import generate_deterministic_id
from tradeval.signals import Signal

from conftest import FakeResultsStore, ScriptedStrategy, flat_candles, make_result


class FakeEngine:
    """Returns queued results; train calls get a neutral result."""

    def __init__(self, test_results):
        self.test_results = list(test_results)
        self.calls = []

    def run_backtest(self, strategy, symbol, timeframe, start, end, initial_capital=10000):
        self.calls.append((strategy, start, end, initial_capital))
        if len(self.calls) % 2 == 1:
            return make_result(net_profit_pct=2.0, sharpe_ratio=1.5)
        return self.test_results.pop(0)


def run_validator(test_results, end='2025-01-13', store=None):
    engine = FakeEngine(test_results)
    validator = WalkForwardValidator(engine, store=store)
    result = validator.run_walk_forward(
        ScriptedStrategy(), 'BTCUSDT', '1d',
        train_days=4, test_days=2, step_days=2,
        start_date='2025-01-01', end_date=end,
    )
    return result, engine


# =============================================================
# TEST: Fold generation
# =============================================================

class TestFoldGeneration:

    def test_fold_count(self):
        result, _ = run_validator([make_result()] * 4)
        assert result.total_folds == 4
        assert [f.fold_number for f in result.folds] == [0, 1, 2, 3]

    def test_window_ends_are_exclusive(self):
        _, engine = run_validator([make_result()] * 4)
        start = to_timestamp_ms('2025-01-01')

        _, train_start, train_end, _ = engine.calls[0]
        _, test_start, test_end, _ = engine.calls[1]
        assert train_start == start
        assert train_end == start + 4 * MS_PER_DAY - 1
        assert test_start == start + 4 * MS_PER_DAY
        assert test_end == start + 6 * MS_PER_DAY - 1

    def test_each_window_gets_a_fresh_clone(self):
        _, engine = run_validator([make_result()] * 4)
        strategies = [call[0] for call in engine.calls]
        assert len({id(s) for s in strategies}) == len(strategies)

    def test_fold_ids_are_deterministic(self):
        result, _ = run_validator([make_result()] * 4)
        assert result.folds[2].id == generate_deterministic_id('wf', 'scripted', 'BTCUSDT', '1d', 2)

    def test_range_too_short_gives_no_folds(self):
        result, engine = run_validator([], end='2025-01-05')
        assert result.total_folds == 0
        assert engine.calls == []
        assert result.aggregate['avg_sharpe_ratio'] is None
        assert result.aggregate['degradation_rate'] == 0.0

    @pytest.mark.parametrize("field", ['train_days', 'test_days', 'step_days'])
    def test_non_positive_days_rejected(self, field):
        params = {'train_days': 4, 'test_days': 2, 'step_days': 2}
        params[field] = 0
        validator = WalkForwardValidator(FakeEngine([]))
        with pytest.raises(ValidationError):
            validator.run_walk_forward(ScriptedStrategy(), 'BTCUSDT', '1d',
                                       start_date='2025-01-01', end_date='2025-02-01', **params)


# =============================================================
# TEST: Degradation
# =============================================================

class TestDegradation:

    def test_two_consecutive_bad_folds_raise_flag(self):
        results = [
            make_result(net_profit_pct=-1.0),
            make_result(net_profit_pct=1.0),
            make_result(net_profit_pct=-1.0),
            make_result(net_profit_pct=1.0, sharpe_ratio=-0.3),
        ]
        result, _ = run_validator(results)

        assert [f.degraded for f in result.folds] == [True, False, True, True]
        assert [f.degradation_detected for f in result.folds] == [False, False, False, True]
        assert result.degradation_detected is True

    def test_isolated_bad_folds_do_not_raise_flag(self):
        results = [
            make_result(net_profit_pct=-1.0),
            make_result(net_profit_pct=1.0),
            make_result(net_profit_pct=-1.0),
            make_result(net_profit_pct=1.0),
        ]
        result, _ = run_validator(results)

        assert result.aggregate['degradation_count'] == 2
        assert result.aggregate['degradation_rate'] == pytest.approx(0.5)
        assert result.degradation_detected is False

    def test_missing_sharpe_is_not_degradation(self):
        result, _ = run_validator([make_result(net_profit_pct=0.0, sharpe_ratio=None)] * 4)
        assert not any(f.degraded for f in result.folds)


# =============================================================
# TEST: Aggregation
# =============================================================

class TestAggregate:

    def test_means_exclude_missing_values(self):
        results = [
            make_result(net_profit_pct=1.0, sharpe_ratio=None, win_rate=0.4),
            make_result(net_profit_pct=3.0, sharpe_ratio=float('nan'), win_rate=0.6),
            make_result(net_profit_pct=2.0, sharpe_ratio=2.0, win_rate=0.5),
            make_result(net_profit_pct=2.0, sharpe_ratio=1.0, win_rate=0.5),
        ]
        result, _ = run_validator(results)

        aggregate = result.aggregate
        assert aggregate['avg_sharpe_ratio'] == pytest.approx(1.5)
        assert aggregate['avg_win_rate'] == pytest.approx(0.5)
        assert aggregate['avg_return_pct'] == pytest.approx(2.0)
        assert not math.isnan(aggregate['avg_sharpe_ratio'])

    def test_all_missing_sharpe_gives_none(self):
        result, _ = run_validator([make_result(sharpe_ratio=None)] * 4)
        assert result.aggregate['avg_sharpe_ratio'] is None


# =============================================================
# TEST: Persistence
# =============================================================

class TestPersistence:

    def test_every_fold_is_saved(self):
        store = FakeResultsStore()
        results = [make_result(net_profit_pct=-1.0)] * 2 + [make_result()] * 2
        result, _ = run_validator(results, store=store)

        assert [r['id'] for r in store.folds] == [f.id for f in result.folds]
        assert [r['degradation_detected'] for r in store.folds] == [False, True, False, False]
        record = store.folds[0]
        assert record['strategy_id'] == 'scripted'
        assert record['step_days'] == 2
        assert record['test_performance']['net_profit_pct'] == -1.0
        assert set(record['train_performance']) == {'net_profit_pct', 'sharpe_ratio', 'win_rate',
                                                    'max_drawdown_pct'}

    def test_store_failure_does_not_abort(self, caplog):
        caplog.set_level(logging.WARNING, logger='tradeval.backtesting.walk_forward')
        result, _ = run_validator([make_result()] * 4, store=FakeResultsStore(fail=True))

        assert result.total_folds == 4
        assert "Could not save walk-forward fold" in caplog.text


# =============================================================
# TEST: End to end
# =============================================================

class TestWithRealEngine:

    def _engine(self, candles, zero_cost_config):
        source = InMemoryCandleSource()
        source.add('BTCUSDT', '1d', candles)
        return BacktestEngine(source, config=zero_cost_config)

    def test_runs_folds_on_daily_candles(self, zero_cost_config):
        start = to_timestamp_ms('2025-01-01')
        candles = flat_candles(20, start_ts=start, step_ms=MS_PER_DAY)
        validator = WalkForwardValidator(self._engine(candles, zero_cost_config))
        strategy = ScriptedStrategy({'signals': {0: Signal.buy(0.5)}})

        result = validator.run_walk_forward(strategy, 'BTCUSDT', '1d', 6, 3, 3,
                                            '2025-01-01', '2025-01-20')

        assert result.total_folds == 4
        for fold in result.folds:
            assert fold.train_performance.total_trades == 1
            assert fold.test_performance.net_profit_pct == pytest.approx(0.0)
            # Test window [start+6d, start+9d) holds exactly three daily candles
            assert len(fold.test_performance.equity_curve) == 1 + 3

    def test_empty_window_raises_data_error(self, zero_cost_config):
        start = to_timestamp_ms('2025-01-01')
        candles = flat_candles(5, start_ts=start, step_ms=MS_PER_DAY)
        validator = WalkForwardValidator(self._engine(candles, zero_cost_config))

        with pytest.raises(DataError):
            validator.run_walk_forward(ScriptedStrategy(), 'BTCUSDT', '1d', 4, 4, 4,
                                       '2025-01-01', '2025-01-20')
