# -*- coding: utf-8 -*-
"""
Run rolling walk-forward validation from the local OHLCV cache.

Example:
    python walkforward.py --strategy sma_crossover --symbol BTCUSDT --tf 1h \
        --start 2025-01-01 --end 2025-06-30 --train-days 30 --test-days 10 --step-days 10
"""

import sys
import argparse

from tradeval.config import Config
from tradeval.logging_setup import setup_logging
from tradeval.errors import TradevalError
from tradeval.data import OHLCVCache, import_binance_csv
from tradeval.backtesting import BacktestConfig, BacktestEngine, WalkForwardValidator
from tradeval.signals import STRATEGY_REGISTRY, create_strategy
from tradeval.storage import EvaluationStore
from backtest import parse_params


def _fmt(value, suffix=""):
    return f"{value:.2f}{suffix}" if value is not None else "n/a"


def print_report(result):
    """Print walk-forward report."""
    print("\n" + "=" * 80)
    print("WALK-FORWARD REPORT")
    print("=" * 80)
    print(f"  Strategy: {result.strategy_id}")
    print(f"  Market: {result.symbol} {result.timeframe}")
    print(f"  Windows: train {result.train_days}d / test {result.test_days}d / step {result.step_days}d")
    print(f"  Folds: {result.total_folds}")

    print("\n1. FOLDS")
    print("-" * 80)
    for fold in result.folds:
        train = fold.train_performance
        test = fold.test_performance
        flag = " DEGRADED" if fold.degraded else ""
        print(
            f"  #{fold.fold_number:<3} test {fold.test_start[:10]} -> {fold.test_end[:10]}  "
            f"train {train.net_profit_pct:+.2f}%  test {test.net_profit_pct:+.2f}%  "
            f"sharpe {_fmt(test.sharpe_ratio)}{flag}"
        )

    aggregate = result.aggregate
    print("\n2. OUT-OF-SAMPLE AGGREGATE")
    print("-" * 80)
    print(f"  Avg Sharpe: {_fmt(aggregate['avg_sharpe_ratio'])}")
    avg_win_rate = aggregate['avg_win_rate']
    print(f"  Avg Win Rate: {_fmt(avg_win_rate * 100 if avg_win_rate is not None else None, '%')}")
    print(f"  Avg Return: {_fmt(aggregate['avg_return_pct'], '%')}")
    print(f"  Degraded Folds: {aggregate['degradation_count']} ({aggregate['degradation_rate'] * 100:.1f}%)")
    print(f"  Degradation Detected: {'YES' if result.degradation_detected else 'no'}")
    print("\n" + "=" * 80)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description='Walk-forward validation of a strategy')
    parser.add_argument('--strategy', type=str, required=True,
                        help=f"Strategy id ({', '.join(sorted(STRATEGY_REGISTRY))})")
    parser.add_argument('--symbol', type=str, required=True, help='Symbol, e.g. BTCUSDT')
    parser.add_argument('--tf', '--timeframe', dest='timeframe', type=str, required=True,
                        help='Candle timeframe, e.g. 5m, 1h')
    parser.add_argument('--start', type=str, required=True, help='Start date')
    parser.add_argument('--end', type=str, required=True, help='End date')
    parser.add_argument('--train-days', type=float, required=True, help='Train window length in days')
    parser.add_argument('--test-days', type=float, required=True, help='Test window length in days')
    parser.add_argument('--step-days', type=float, required=True, help='Roll-forward step in days')
    parser.add_argument('--capital', type=float, default=10000, help='Initial capital per window (default: 10000)')
    parser.add_argument('--csv', type=str, default=None,
                        help='Binance kline CSV to merge into the cache before running')
    parser.add_argument('--param', action='append', default=[],
                        help='Strategy parameter as key=value (repeatable)')
    parser.add_argument('--no-save', action='store_true', help='Do not write folds to the evaluation database')

    args = parser.parse_args()

    config = Config()
    setup_logging(config.log_level, config.log_file or None)

    try:
        strategy = create_strategy(args.strategy, parse_params(args.param))

        cache = OHLCVCache(config.ohlcv_cache_dir)
        if args.csv:
            total = import_binance_csv(cache, args.csv, args.symbol, args.timeframe)
            print(f"Merged {args.csv} into cache ({total} candles)")

        store = None if args.no_save else EvaluationStore(config.evaluation_db_path)
        engine = BacktestEngine(cache, store=store, config=BacktestConfig.from_config(config))
        validator = WalkForwardValidator(engine, store=store)

        result = validator.run_walk_forward(
            strategy, args.symbol, args.timeframe,
            args.train_days, args.test_days, args.step_days,
            args.start, args.end, initial_capital=args.capital,
        )
        print_report(result)

        if store is not None:
            store.close()
    except (TradevalError, KeyError, ValueError) as e:
        print(f"\nError: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
