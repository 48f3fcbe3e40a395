# -*- coding: utf-8 -*-
"""
Run a single backtest from the local OHLCV cache.

Example:
    python backtest.py --strategy sma_crossover --symbol BTCUSDT --tf 5m \
        --start 2025-01-01 --end 2025-01-31 --capital 10000
"""

import sys
import argparse
import json

from tradeval.config import Config
from tradeval.logging_setup import setup_logging
from tradeval.errors import TradevalError
from tradeval.data import OHLCVCache, import_binance_csv
from tradeval.backtesting import BacktestConfig, BacktestEngine
from tradeval.signals import STRATEGY_REGISTRY, create_strategy
from tradeval.storage import EvaluationStore
from tradeval.attribution import PatternAttributionService


def parse_params(pairs):
    """Parse repeated ``key=value`` arguments into a strategy config dict."""
    params = {}
    for pair in pairs or []:
        if '=' not in pair:
            raise ValueError(f"Invalid --param '{pair}', expected key=value")
        key, value = pair.split('=', 1)
        try:
            params[key] = json.loads(value)
        except json.JSONDecodeError:
            params[key] = value
    return params


def print_report(result):
    """Print backtest performance report."""
    print("\n" + "=" * 80)
    print("BACKTEST REPORT")
    print("=" * 80)
    print(f"  Id: {result.id}")
    print(f"  Strategy: {result.strategy_id}")
    print(f"  Market: {result.symbol} {result.timeframe}")
    print(f"  Period: {result.start_date} -> {result.end_date}")

    print("\n1. CAPITAL")
    print("-" * 80)
    print(f"  Initial Capital: ${result.initial_capital:.2f}")
    print(f"  Final Capital: ${result.final_capital:.2f}")
    print(f"  Net Profit: ${result.net_profit:.2f} ({result.net_profit_pct:.2f}%)")

    print("\n2. TRADES")
    print("-" * 80)
    print(f"  Total Trades: {result.total_trades}")
    print(f"  Winning / Losing: {result.winning_trades} / {result.losing_trades}")
    print(f"  Win Rate: {result.win_rate * 100:.2f}%")
    print(f"  Avg Duration: {result.avg_trade_duration_seconds}s")

    print("\n3. RISK METRICS")
    print("-" * 80)
    print(f"  Max Drawdown: ${result.max_drawdown:.2f} ({result.max_drawdown_pct:.2f}%)")
    sharpe = f"{result.sharpe_ratio:.2f}" if result.sharpe_ratio is not None else "n/a"
    profit_factor = f"{result.profit_factor:.2f}" if result.profit_factor is not None else "n/a"
    print(f"  Sharpe Ratio: {sharpe}")
    print(f"  Profit Factor: {profit_factor}")
    print("\n" + "=" * 80)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description='Backtest a strategy on cached OHLCV data')
    parser.add_argument('--strategy', type=str, required=True,
                        help=f"Strategy id ({', '.join(sorted(STRATEGY_REGISTRY))})")
    parser.add_argument('--symbol', type=str, required=True, help='Symbol, e.g. BTCUSDT')
    parser.add_argument('--tf', '--timeframe', dest='timeframe', type=str, required=True,
                        help='Candle timeframe, e.g. 5m, 1h')
    parser.add_argument('--start', type=str, required=True, help='Start date (inclusive)')
    parser.add_argument('--end', type=str, required=True, help='End date (inclusive)')
    parser.add_argument('--capital', type=float, default=10000, help='Initial capital (default: 10000)')
    parser.add_argument('--csv', type=str, default=None,
                        help='Binance kline CSV to merge into the cache before running')
    parser.add_argument('--param', action='append', default=[],
                        help='Strategy parameter as key=value (repeatable)')
    parser.add_argument('--no-save', action='store_true', help='Do not write results to the evaluation database')

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
        attribution = PatternAttributionService(store) if store is not None else None
        engine = BacktestEngine(cache, store=store, attribution=attribution,
                                config=BacktestConfig.from_config(config))

        result = engine.run_backtest(strategy, args.symbol, args.timeframe,
                                     args.start, args.end, initial_capital=args.capital)
        print_report(result)

        if store is not None:
            store.close()
    except (TradevalError, KeyError, ValueError) as e:
        print(f"\nError: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
