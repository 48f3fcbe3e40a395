# -*- coding: utf-8 -*-
"""
Rolling walk-forward validation.

Each fold runs an in-sample (train) backtest followed by an out-of-sample
(test) backtest on the adjacent window, then rolls forward by ``step_days``.
Nothing is optimized on the train window; it is kept as a reference to compare
against the test window.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from tradeval.backtesting.engine import BacktestEngine, BacktestResult
from tradeval.data.candles import MS_PER_DAY, ms_to_iso, to_timestamp_ms
from tradeval.errors import ValidationError
from tradeval.ids import generate_deterministic_id
from tradeval.signals.base import Strategy


logger = logging.getLogger(__name__)

# Consecutive flagged folds needed before degradation is reported
DEGRADATION_CONSECUTIVE_FOLDS = 2


@dataclass(frozen=True)
class Fold:
    """One train/test window pair and its results."""

    id: str
    fold_number: int
    train_start: str
    train_end: str
    test_start: str
    test_end: str
    train_performance: BacktestResult
    test_performance: BacktestResult
    degraded: bool
    degradation_detected: bool = False

    def to_record(self, strategy_id: str, symbol: str, timeframe: str, step_days: float) -> Dict[str, Any]:
        """Row shape written to the results store."""
        return {
            'id': self.id,
            'strategy_id': strategy_id,
            'symbol': symbol,
            'timeframe': timeframe,
            'train_start_date': self.train_start,
            'train_end_date': self.train_end,
            'test_start_date': self.test_start,
            'test_end_date': self.test_end,
            'step_days': step_days,
            'fold_number': self.fold_number,
            'train_performance': self.train_performance.performance_summary(),
            'test_performance': self.test_performance.performance_summary(),
            'degradation_detected': self.degradation_detected,
        }


@dataclass
class WalkForwardResult:
    strategy_id: str
    symbol: str
    timeframe: str
    train_days: float
    test_days: float
    step_days: float
    folds: List[Fold] = field(default_factory=list)
    aggregate: Dict[str, Any] = field(default_factory=dict)
    degradation_detected: bool = False

    @property
    def total_folds(self) -> int:
        return len(self.folds)


def _is_number(value) -> bool:
    return value is not None and not (isinstance(value, float) and math.isnan(value))


def _mean(values: List[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


class WalkForwardValidator:
    """Runs rolling train/test folds through a BacktestEngine."""

    def __init__(self, backtest_engine: BacktestEngine, store=None):
        """
        Parameters
        ----------
        backtest_engine : BacktestEngine
            Engine used for both windows of every fold
        store : object or None, optional
            Results store with ``save_walk_forward_run(record)``
        """
        self.backtest_engine = backtest_engine
        self.store = store

    def run_walk_forward(self, strategy: Strategy, symbol: str, timeframe: str,
                         train_days: float, test_days: float, step_days: float,
                         start_date, end_date, initial_capital: float = 10000) -> WalkForwardResult:
        """
        Run walk-forward validation over ``[start_date, end_date]``.

        Parameters
        ----------
        strategy : Strategy
            Template strategy; every window runs on a fresh clone
        symbol, timeframe : str
            Market to replay
        train_days, test_days, step_days : float
            Window and step lengths in days
        start_date, end_date : date-like
            Overall range
        initial_capital : float, default 10000
            Starting capital of every window

        Returns
        -------
        WalkForwardResult

        Raises
        ------
        ValidationError
            On missing parameters or non-positive day counts
        DataError
            When a fold window has no candles
        """
        if not strategy or not symbol or not timeframe or start_date is None or end_date is None:
            raise ValidationError('Missing required parameters')
        for name, value in (('train_days', train_days), ('test_days', test_days), ('step_days', step_days)):
            if value is None or value <= 0:
                raise ValidationError(f"{name} must be positive, got {value}")

        start_ts = to_timestamp_ms(start_date)
        end_ts = to_timestamp_ms(end_date)
        train_ms = int(train_days * MS_PER_DAY)
        test_ms = int(test_days * MS_PER_DAY)
        step_ms = int(step_days * MS_PER_DAY)

        folds: List[Fold] = []
        current_start = start_ts
        fold_number = 0
        consecutive_degradation = 0
        any_detected = False

        while current_start + train_ms + test_ms <= end_ts:
            train_start = current_start
            train_end = current_start + train_ms
            test_start = train_end
            test_end = train_end + test_ms

            # Window ends are exclusive
            train_result = self.backtest_engine.run_backtest(
                strategy.clone(), symbol, timeframe, train_start, train_end - 1,
                initial_capital=initial_capital,
            )
            test_result = self.backtest_engine.run_backtest(
                strategy.clone(), symbol, timeframe, test_start, test_end - 1,
                initial_capital=initial_capital,
            )

            degraded = self._detect_degradation(train_result, test_result)
            consecutive_degradation = consecutive_degradation + 1 if degraded else 0
            degradation_detected = consecutive_degradation >= DEGRADATION_CONSECUTIVE_FOLDS
            any_detected = any_detected or degradation_detected

            fold = Fold(
                id=generate_deterministic_id('wf', strategy.id, symbol, timeframe, fold_number),
                fold_number=fold_number,
                train_start=ms_to_iso(train_start),
                train_end=ms_to_iso(train_end),
                test_start=ms_to_iso(test_start),
                test_end=ms_to_iso(test_end),
                train_performance=train_result,
                test_performance=test_result,
                degraded=degraded,
                degradation_detected=degradation_detected,
            )
            folds.append(fold)

            logger.info(
                f"Fold {fold_number}: train {train_result.net_profit_pct:.2f}% / "
                f"test {test_result.net_profit_pct:.2f}%"
                + (" [degraded]" if degraded else "")
            )

            if self.store is not None:
                try:
                    self.store.save_walk_forward_run(fold.to_record(strategy.id, symbol, timeframe, step_days))
                except Exception as e:
                    logger.warning(f"Could not save walk-forward fold {fold.id}: {e}")

            current_start += step_ms
            fold_number += 1

        if not folds:
            logger.warning(
                f"No complete folds fit between {ms_to_iso(start_ts)} and {ms_to_iso(end_ts)} "
                f"(train={train_days}d, test={test_days}d)"
            )

        return WalkForwardResult(
            strategy_id=strategy.id,
            symbol=symbol,
            timeframe=timeframe,
            train_days=train_days,
            test_days=test_days,
            step_days=step_days,
            folds=folds,
            aggregate=self._aggregate_results(folds),
            degradation_detected=any_detected,
        )

    @staticmethod
    def _detect_degradation(train_result: BacktestResult, test_result: BacktestResult) -> bool:
        """A fold is flagged when its out-of-sample Sharpe or return is negative."""
        sharpe_negative = test_result.sharpe_ratio is not None and test_result.sharpe_ratio < 0
        return sharpe_negative or test_result.net_profit_pct < 0

    @staticmethod
    def _aggregate_results(folds: List[Fold]) -> Dict[str, Any]:
        sharpes = [f.test_performance.sharpe_ratio for f in folds if _is_number(f.test_performance.sharpe_ratio)]
        win_rates = [f.test_performance.win_rate for f in folds if _is_number(f.test_performance.win_rate)]
        returns = [f.test_performance.net_profit_pct for f in folds if _is_number(f.test_performance.net_profit_pct)]
        degradation_count = sum(1 for f in folds if f.degraded)

        return {
            'avg_sharpe_ratio': _mean(sharpes),
            'avg_win_rate': _mean(win_rates),
            'avg_return_pct': _mean(returns),
            'degradation_count': degradation_count,
            'degradation_rate': degradation_count / len(folds) if folds else 0.0,
        }
