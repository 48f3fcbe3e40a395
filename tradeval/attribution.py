# -*- coding: utf-8 -*-
"""
Trade-to-pattern attribution and per-pattern performance.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional


logger = logging.getLogger(__name__)


class PatternAttributionService:
    """
    Links closed trades to the patterns that triggered them and keeps a
    running performance summary per pattern.

    Attribution is idempotent per (trade, pattern): a repeated call for the
    same pair rewrites the attribution row but does not count the trade twice.
    """

    def __init__(self, store):
        """
        Parameters
        ----------
        store : EvaluationStore
            Storage for attribution rows and pattern performance
        """
        self.store = store
        self.pattern_cache: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def attribute_trade(self, trade_id: str, patterns: Optional[List[Mapping[str, Any]]],
                        trade_result: Mapping[str, float]):
        """
        Attribute a trade to one or more patterns.

        Parameters
        ----------
        trade_id : str
            Closed trade id
        patterns : list of dict
            Items with ``pattern_id`` and optional ``confidence``,
            ``pattern_type``, ``symbol``, ``timeframe``
        trade_result : dict
            ``pnl`` and ``pnl_pct`` of the trade
        """
        if not patterns:
            return

        with self._lock:
            for pattern in patterns:
                pattern_id = pattern.get('pattern_id')
                if not pattern_id:
                    continue

                is_new = not self.store.trade_pattern_attribution_exists(trade_id, pattern_id)
                self.store.save_trade_pattern_attribution(
                    trade_id,
                    pattern_id,
                    pattern.get('confidence') or 0,
                    trade_result['pnl'],
                    trade_result['pnl_pct'],
                )

                if is_new:
                    self._update_pattern_performance(pattern_id, pattern, trade_result)
                else:
                    logger.debug(f"Trade {trade_id} already attributed to {pattern_id}; stats unchanged")

    def _load_stats(self, pattern_id: str) -> Optional[Dict[str, Any]]:
        stats = self.pattern_cache.get(pattern_id)
        if stats is not None:
            return stats

        row = self.store.get_pattern_performance([pattern_id]).get(pattern_id)
        if row is None:
            return None
        return {
            'pattern_id': row['pattern_id'],
            'pattern_type': row['pattern_type'],
            'symbol': row['symbol'],
            'timeframe': row['timeframe'],
            'total_trades': row['total_trades'],
            'winning_trades': row['winning_trades'],
            'losing_trades': row['losing_trades'],
            'avg_return_pct': row['avg_return_pct'] or 0.0,
            'total_return_pct': row['total_return_pct'] or 0.0,
            'first_seen_date': row['first_seen_date'],
        }

    def _update_pattern_performance(self, pattern_id: str, pattern: Mapping[str, Any],
                                    trade_result: Mapping[str, float]):
        stats = self._load_stats(pattern_id)
        now = datetime.now(timezone.utc).isoformat()

        if stats is None:
            stats = {
                'pattern_id': pattern_id,
                'pattern_type': pattern.get('pattern_type') or 'unknown',
                'symbol': pattern.get('symbol'),
                'timeframe': pattern.get('timeframe'),
                'total_trades': 0,
                'winning_trades': 0,
                'losing_trades': 0,
                'avg_return_pct': 0.0,
                'total_return_pct': 0.0,
                'first_seen_date': now,
            }

        pnl = trade_result['pnl']
        pnl_pct = trade_result['pnl_pct']

        n = stats['total_trades']
        stats['total_trades'] = n + 1
        if pnl > 0:
            stats['winning_trades'] += 1
        elif pnl < 0:
            stats['losing_trades'] += 1

        # Running mean
        stats['avg_return_pct'] = (stats['avg_return_pct'] * n + pnl_pct) / (n + 1)
        stats['total_return_pct'] += pnl_pct
        stats['win_rate'] = stats['winning_trades'] / stats['total_trades']
        stats['last_trade_date'] = now
        stats['profit_factor'] = self._calculate_profit_factor(pattern_id)

        self.pattern_cache[pattern_id] = stats
        self.store.update_pattern_performance(pattern_id, stats)

    def _calculate_profit_factor(self, pattern_id: str) -> Optional[float]:
        """
        Gross profit over gross loss across every attributed trade.

        None when there are profits but no losses; 0.0 when there are neither.
        """
        pnls = self.store.get_trade_pnls_for_pattern(pattern_id)
        gross_profit = sum(p for p in pnls if p > 0)
        gross_loss = abs(sum(p for p in pnls if p < 0))
        if gross_loss == 0:
            return None if gross_profit > 0 else 0.0
        return gross_profit / gross_loss

    def get_pattern_performance(self, pattern_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        """Performance for each known pattern id, from cache first, then the store."""
        if isinstance(pattern_ids, str):
            pattern_ids = [pattern_ids]

        result: Dict[str, Dict[str, Any]] = {}
        missing = []
        for pattern_id in pattern_ids:
            if pattern_id in self.pattern_cache:
                result[pattern_id] = self.pattern_cache[pattern_id]
            else:
                missing.append(pattern_id)

        if missing:
            result.update(self.store.get_pattern_performance(missing))
        return result
