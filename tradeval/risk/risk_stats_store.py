# -*- coding: utf-8 -*-
"""
Persistence for daily risk stats.

Two implementations of the same ``load(date) / save(stats, balance)`` shape:
one JSON file per day, or rows in the evaluation SQLite database.
"""

import json
import logging
import os
from typing import Optional

from tradeval.risk.risk_engine import DailyRiskStats


logger = logging.getLogger(__name__)


class JsonRiskStatsStore:
    """Stores each day's stats, open-position ledger included, as ``<dir>/<date>.json``."""

    def __init__(self, stats_dir: str):
        self.stats_dir = stats_dir

    def get_path(self, date_str: str) -> str:
        return os.path.join(self.stats_dir, f"{date_str}.json")

    def save(self, stats: DailyRiskStats, account_balance: Optional[float] = None):
        """
        Save stats to a JSON file.

        Parameters
        ----------
        stats : DailyRiskStats
            Stats to save
        account_balance : float or None, optional
            Balance at save time, stored alongside the stats
        """
        os.makedirs(self.stats_dir, exist_ok=True)
        data = stats.to_dict()
        data['account_balance'] = account_balance

        filepath = self.get_path(stats.date)
        tmp_path = f"{filepath}.tmp"
        with open(tmp_path, 'w') as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, filepath)

        logger.debug(f"Saved risk stats for {stats.date} to {filepath}")

    def load(self, date_str: str) -> Optional[DailyRiskStats]:
        """
        Load stats for a day.

        Returns
        -------
        DailyRiskStats or None
            None if no file exists for the day
        """
        filepath = self.get_path(date_str)
        if not os.path.exists(filepath):
            return None

        with open(filepath, 'r') as f:
            data = json.load(f)

        stats = DailyRiskStats.from_dict(data)
        logger.debug(f"Loaded risk stats for {date_str} from {filepath}")
        return stats


class EvaluationDbRiskStatsStore:
    """
    Adapter onto ``EvaluationStore.save_daily_risk_stats``.

    Only aggregate counters are stored; the open-position ledger is not
    restored on load.
    """

    def __init__(self, evaluation_store):
        self.evaluation_store = evaluation_store

    def save(self, stats: DailyRiskStats, account_balance: Optional[float] = None):
        balance = account_balance or 0.0
        daily_pnl_pct = (stats.total_pnl / balance) * 100 if balance > 0 else 0.0
        self.evaluation_store.save_daily_risk_stats({
            'date': stats.date,
            'account_balance': balance + stats.total_pnl,
            'daily_pnl': stats.total_pnl,
            'daily_pnl_pct': daily_pnl_pct,
            'trade_count': stats.trade_count,
            'open_positions_count': len(stats.open_positions),
            'max_drawdown_pct': 0.0,
            'risk_limit_breaches': 0,
        })

    def load(self, date_str: str) -> Optional[DailyRiskStats]:
        row = self.evaluation_store.load_daily_risk_stats(date_str)
        if row is None:
            return None
        return DailyRiskStats(
            date=row['date'],
            total_pnl=float(row['daily_pnl'] or 0.0),
            trade_count=int(row['trade_count'] or 0),
        )
