# -*- coding: utf-8 -*-
"""
SQLite store for backtest runs, walk-forward folds, daily risk stats and
pattern performance.

All writes are upserts keyed by deterministic ids, so re-running the same
evaluation overwrites rather than duplicates. One connection is shared
behind a lock so the store can be handed to a BacktestPool.
"""

import json
import logging
import math
import os
import sqlite3
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from tradeval.ids import generate_deterministic_id


logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS backtest_runs (
    id TEXT PRIMARY KEY,
    strategy_id TEXT NOT NULL,
    symbol TEXT NOT NULL,
    timeframe TEXT NOT NULL,
    start_date TEXT NOT NULL,
    end_date TEXT NOT NULL,
    initial_capital REAL NOT NULL,
    final_capital REAL NOT NULL,
    total_trades INTEGER NOT NULL,
    winning_trades INTEGER NOT NULL,
    losing_trades INTEGER NOT NULL,
    win_rate REAL NOT NULL,
    net_profit REAL NOT NULL,
    net_profit_pct REAL NOT NULL,
    max_drawdown REAL NOT NULL,
    max_drawdown_pct REAL NOT NULL,
    sharpe_ratio REAL,
    profit_factor REAL,
    avg_trade_duration_seconds INTEGER,
    config_json TEXT,
    notes TEXT,
    created_at TEXT DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_backtest_runs_strategy ON backtest_runs(strategy_id, symbol, timeframe);

CREATE TABLE IF NOT EXISTS walkforward_runs (
    id TEXT PRIMARY KEY,
    strategy_id TEXT NOT NULL,
    symbol TEXT NOT NULL,
    timeframe TEXT NOT NULL,
    train_start_date TEXT NOT NULL,
    train_end_date TEXT NOT NULL,
    test_start_date TEXT NOT NULL,
    test_end_date TEXT NOT NULL,
    step_days REAL NOT NULL,
    fold_number INTEGER NOT NULL,
    train_performance_json TEXT NOT NULL,
    test_performance_json TEXT NOT NULL,
    degradation_detected INTEGER NOT NULL DEFAULT 0,
    created_at TEXT DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS daily_risk_stats (
    id TEXT PRIMARY KEY,
    date TEXT NOT NULL UNIQUE,
    account_balance REAL,
    daily_pnl REAL NOT NULL DEFAULT 0,
    daily_pnl_pct REAL NOT NULL DEFAULT 0,
    trade_count INTEGER NOT NULL DEFAULT 0,
    open_positions_count INTEGER NOT NULL DEFAULT 0,
    max_drawdown_pct REAL NOT NULL DEFAULT 0,
    risk_limit_breaches INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS trade_pattern_attribution (
    id TEXT PRIMARY KEY,
    trade_id TEXT NOT NULL,
    pattern_id TEXT NOT NULL,
    pattern_confidence REAL,
    trade_pnl REAL,
    trade_pnl_pct REAL,
    created_at TEXT DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_attribution_pattern ON trade_pattern_attribution(pattern_id);

CREATE TABLE IF NOT EXISTS pattern_performance (
    id TEXT PRIMARY KEY,
    pattern_id TEXT NOT NULL UNIQUE,
    pattern_type TEXT,
    symbol TEXT,
    timeframe TEXT,
    total_trades INTEGER NOT NULL DEFAULT 0,
    winning_trades INTEGER NOT NULL DEFAULT 0,
    losing_trades INTEGER NOT NULL DEFAULT 0,
    win_rate REAL NOT NULL DEFAULT 0,
    avg_return_pct REAL NOT NULL DEFAULT 0,
    total_return_pct REAL NOT NULL DEFAULT 0,
    profit_factor REAL,
    sharpe_ratio REAL,
    last_trade_date TEXT,
    first_seen_date TEXT,
    last_updated TEXT DEFAULT (datetime('now'))
);
"""


def _nullable(value: Optional[float]) -> Optional[float]:
    """Map None/NaN/inf to SQL NULL."""
    if value is None:
        return None
    value = float(value)
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class EvaluationStore:
    """SQLite-backed results store."""

    def __init__(self, db_path: str = "data/evaluation.db"):
        """
        Open (and create if needed) the evaluation database.

        Parameters
        ----------
        db_path : str
            Database file path, or ``":memory:"``
        """
        self.db_path = db_path
        if db_path != ":memory:":
            directory = os.path.dirname(db_path)
            if directory:
                os.makedirs(directory, exist_ok=True)

        self._lock = threading.RLock()
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        with self._lock:
            self.conn.executescript(SCHEMA)
            self.conn.commit()

        logger.debug(f"Evaluation database ready at {db_path}")

    def close(self):
        with self._lock:
            if self.conn is not None:
                self.conn.close()
                self.conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _execute(self, query: str, params: Iterable[Any] = ()):
        with self._lock:
            self.conn.execute(query, tuple(params))
            self.conn.commit()

    def _fetch_all(self, query: str, params: Iterable[Any] = ()) -> List[Dict[str, Any]]:
        with self._lock:
            rows = self.conn.execute(query, tuple(params)).fetchall()
        return [dict(row) for row in rows]

    def _fetch_one(self, query: str, params: Iterable[Any] = ()) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self.conn.execute(query, tuple(params)).fetchone()
        return dict(row) if row is not None else None

    # Backtest runs

    def save_backtest_run(self, result) -> None:
        """
        Upsert a backtest result.

        Parameters
        ----------
        result : BacktestResult or dict
            Anything with ``to_dict()``, or the dict itself
        """
        data = result.to_dict() if hasattr(result, 'to_dict') else dict(result)
        config = data.get('config')
        self._execute(
            """
            INSERT OR REPLACE INTO backtest_runs (
                id, strategy_id, symbol, timeframe, start_date, end_date,
                initial_capital, final_capital, total_trades, winning_trades, losing_trades,
                win_rate, net_profit, net_profit_pct, max_drawdown, max_drawdown_pct,
                sharpe_ratio, profit_factor, avg_trade_duration_seconds, config_json, notes
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                data['id'],
                data['strategy_id'],
                data['symbol'],
                data['timeframe'],
                data['start_date'],
                data['end_date'],
                data['initial_capital'],
                data['final_capital'],
                data['total_trades'],
                data['winning_trades'],
                data['losing_trades'],
                data['win_rate'],
                data['net_profit'],
                data['net_profit_pct'],
                data['max_drawdown'],
                data['max_drawdown_pct'],
                _nullable(data.get('sharpe_ratio')),
                _nullable(data.get('profit_factor')),
                data.get('avg_trade_duration_seconds'),
                json.dumps(config) if config is not None else None,
                data.get('notes'),
            ),
        )

    def get_backtest_runs(self, strategy_id: Optional[str] = None, symbol: Optional[str] = None,
                          timeframe: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
        query = "SELECT * FROM backtest_runs WHERE 1=1"
        params: List[Any] = []
        if strategy_id:
            query += " AND strategy_id = ?"
            params.append(strategy_id)
        if symbol:
            query += " AND symbol = ?"
            params.append(symbol)
        if timeframe:
            query += " AND timeframe = ?"
            params.append(timeframe)
        query += " ORDER BY created_at DESC, id LIMIT ?"
        params.append(limit)

        rows = self._fetch_all(query, params)
        for row in rows:
            row['config'] = json.loads(row['config_json']) if row.get('config_json') else None
        return rows

    # Walk-forward folds

    def save_walk_forward_run(self, record: Dict[str, Any]) -> None:
        """Upsert one walk-forward fold record."""
        self._execute(
            """
            INSERT OR REPLACE INTO walkforward_runs (
                id, strategy_id, symbol, timeframe,
                train_start_date, train_end_date, test_start_date, test_end_date,
                step_days, fold_number, train_performance_json, test_performance_json,
                degradation_detected
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record['id'],
                record['strategy_id'],
                record['symbol'],
                record['timeframe'],
                record['train_start_date'],
                record['train_end_date'],
                record['test_start_date'],
                record['test_end_date'],
                record['step_days'],
                record['fold_number'],
                json.dumps(record['train_performance']),
                json.dumps(record['test_performance']),
                1 if record.get('degradation_detected') else 0,
            ),
        )

    def get_walk_forward_runs(self, strategy_id: Optional[str] = None,
                              symbol: Optional[str] = None) -> List[Dict[str, Any]]:
        query = "SELECT * FROM walkforward_runs WHERE 1=1"
        params: List[Any] = []
        if strategy_id:
            query += " AND strategy_id = ?"
            params.append(strategy_id)
        if symbol:
            query += " AND symbol = ?"
            params.append(symbol)
        query += " ORDER BY fold_number ASC"

        rows = self._fetch_all(query, params)
        for row in rows:
            row['train_performance'] = json.loads(row['train_performance_json'])
            row['test_performance'] = json.loads(row['test_performance_json'])
            row['degradation_detected'] = row['degradation_detected'] == 1
        return rows

    # Daily risk stats

    def save_daily_risk_stats(self, stats: Dict[str, Any]) -> None:
        self._execute(
            """
            INSERT OR REPLACE INTO daily_risk_stats (
                id, date, account_balance, daily_pnl, daily_pnl_pct,
                trade_count, open_positions_count, max_drawdown_pct, risk_limit_breaches,
                updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                f"risk_{stats['date']}",
                stats['date'],
                stats.get('account_balance'),
                stats.get('daily_pnl', 0.0),
                stats.get('daily_pnl_pct', 0.0),
                stats.get('trade_count', 0),
                stats.get('open_positions_count', 0),
                stats.get('max_drawdown_pct', 0.0),
                stats.get('risk_limit_breaches', 0),
                _utc_now_iso(),
            ),
        )

    def load_daily_risk_stats(self, date_str: str) -> Optional[Dict[str, Any]]:
        return self._fetch_one("SELECT * FROM daily_risk_stats WHERE date = ?", (date_str,))

    # Pattern attribution

    @staticmethod
    def attribution_id(trade_id: str, pattern_id: str) -> str:
        return generate_deterministic_id('attr', trade_id, pattern_id)

    def trade_pattern_attribution_exists(self, trade_id: str, pattern_id: str) -> bool:
        row = self._fetch_one(
            "SELECT 1 FROM trade_pattern_attribution WHERE id = ?",
            (self.attribution_id(trade_id, pattern_id),),
        )
        return row is not None

    def save_trade_pattern_attribution(self, trade_id: str, pattern_id: str,
                                       pattern_confidence: Optional[float],
                                       trade_pnl: float, trade_pnl_pct: float) -> str:
        attribution_id = self.attribution_id(trade_id, pattern_id)
        self._execute(
            """
            INSERT OR REPLACE INTO trade_pattern_attribution (
                id, trade_id, pattern_id, pattern_confidence, trade_pnl, trade_pnl_pct
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (attribution_id, trade_id, pattern_id, pattern_confidence, trade_pnl, trade_pnl_pct),
        )
        return attribution_id

    def get_trade_pnls_for_pattern(self, pattern_id: str) -> List[float]:
        rows = self._fetch_all(
            "SELECT trade_pnl FROM trade_pattern_attribution WHERE pattern_id = ?",
            (pattern_id,),
        )
        return [row['trade_pnl'] for row in rows if row['trade_pnl'] is not None]

    # Pattern performance

    def update_pattern_performance(self, pattern_id: str, performance: Dict[str, Any]) -> None:
        """Insert or update the aggregate row for a pattern."""
        self._execute(
            """
            INSERT INTO pattern_performance (
                id, pattern_id, pattern_type, symbol, timeframe,
                total_trades, winning_trades, losing_trades, win_rate,
                avg_return_pct, total_return_pct, profit_factor, sharpe_ratio,
                last_trade_date, first_seen_date, last_updated
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(pattern_id) DO UPDATE SET
                total_trades = excluded.total_trades,
                winning_trades = excluded.winning_trades,
                losing_trades = excluded.losing_trades,
                win_rate = excluded.win_rate,
                avg_return_pct = excluded.avg_return_pct,
                total_return_pct = excluded.total_return_pct,
                profit_factor = excluded.profit_factor,
                sharpe_ratio = excluded.sharpe_ratio,
                last_trade_date = excluded.last_trade_date,
                last_updated = excluded.last_updated
            """,
            (
                f"pattern_{pattern_id}",
                pattern_id,
                performance.get('pattern_type'),
                performance.get('symbol'),
                performance.get('timeframe'),
                performance['total_trades'],
                performance['winning_trades'],
                performance['losing_trades'],
                performance['win_rate'],
                performance['avg_return_pct'],
                performance['total_return_pct'],
                _nullable(performance.get('profit_factor')),
                _nullable(performance.get('sharpe_ratio')),
                performance.get('last_trade_date'),
                performance.get('first_seen_date') or _utc_now_iso(),
                _utc_now_iso(),
            ),
        )

    def get_pattern_performance(self, pattern_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        """
        Load performance rows for the given patterns.

        Returns
        -------
        dict
            pattern_id -> row; unknown ids are absent
        """
        pattern_ids = list(pattern_ids)
        if not pattern_ids:
            return {}

        placeholders = ",".join("?" for _ in pattern_ids)
        rows = self._fetch_all(
            f"SELECT * FROM pattern_performance WHERE pattern_id IN ({placeholders})",
            pattern_ids,
        )
        return {row['pattern_id']: row for row in rows}

    def get_validated_patterns(self, min_win_rate: float = 0.50, min_profit_factor: float = 1.0,
                               min_sample_size: int = 10) -> List[str]:
        """
        Pattern ids meeting the sample size, win rate and profit factor thresholds.

        A NULL profit factor (no losing trades) only passes when
        ``min_profit_factor`` is 0.
        """
        rows = self._fetch_all(
            """
            SELECT pattern_id, profit_factor FROM pattern_performance
            WHERE total_trades >= ? AND win_rate >= ?
            ORDER BY pattern_id
            """,
            (min_sample_size, min_win_rate),
        )
        validated = []
        for row in rows:
            profit_factor = row['profit_factor']
            if profit_factor is None:
                if min_profit_factor == 0:
                    validated.append(row['pattern_id'])
            elif profit_factor >= min_profit_factor:
                validated.append(row['pattern_id'])
        return validated
