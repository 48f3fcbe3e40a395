# -*- coding: utf-8 -*-
"""
Performance metrics for a completed backtest run.
"""

from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from tradeval.backtesting.capital_accounting import Trade


def calculate_sharpe_ratio(equity_values: Sequence[float], risk_free_rate: float = 0.0,
                           periods_per_year: int = 252) -> Optional[float]:
    """
    Calculate annualized Sharpe ratio from the per-candle equity curve.

    Parameters
    ----------
    equity_values : list or array
        Equity values over time, one per candle (plus the starting capital)
    risk_free_rate : float
        Annual risk-free rate (default 0.0)
    periods_per_year : int
        Number of periods per year for annualization (default 252)

    Returns
    -------
    float or None
        Annualized Sharpe ratio, or None when it is undefined (fewer than two
        points or zero volatility)
    """
    if len(equity_values) < 2:
        return None

    equity_array = np.asarray(equity_values, dtype=float)
    returns = np.diff(equity_array) / equity_array[:-1]

    # Filter out NaN and infinite values
    returns = returns[np.isfinite(returns)]
    if len(returns) == 0:
        return None

    mean_return = np.mean(returns)
    std_return = np.std(returns)
    if std_return == 0:
        return None

    sharpe = (mean_return - risk_free_rate / periods_per_year) / std_return * np.sqrt(periods_per_year)
    return float(sharpe)


def calculate_profit_factor(pnls: Sequence[float]) -> Optional[float]:
    """
    Gross profit over gross loss.

    Returns None (not infinity) when there are no losing trades, so the
    value can be stored as SQL NULL.
    """
    gross_profit = sum(p for p in pnls if p > 0)
    gross_loss = abs(sum(p for p in pnls if p < 0))
    if gross_loss == 0:
        return None
    return gross_profit / gross_loss


def calculate_performance_metrics(trades: List[Trade], initial_balance: float,
                                  final_equity: float, equity_curve: Sequence[float],
                                  max_drawdown: float, max_drawdown_pct: float) -> Dict[str, Any]:
    """Calculate the result metrics of one run."""
    trades_df = pd.DataFrame([t.to_dict() for t in trades], columns=['pnl', 'duration'])

    total_trades = len(trades_df)
    winning_trades = int((trades_df['pnl'] > 0).sum()) if total_trades else 0
    losing_trades = int((trades_df['pnl'] < 0).sum()) if total_trades else 0
    win_rate = winning_trades / total_trades if total_trades > 0 else 0.0

    net_profit = final_equity - initial_balance
    net_profit_pct = (net_profit / initial_balance) * 100 if initial_balance > 0 else 0.0

    # Durations are milliseconds
    avg_duration = trades_df['duration'].mean() / 1000 if total_trades > 0 else 0.0

    return {
        'total_trades': total_trades,
        'winning_trades': winning_trades,
        'losing_trades': losing_trades,
        'win_rate': win_rate,
        'net_profit': net_profit,
        'net_profit_pct': net_profit_pct,
        'max_drawdown': max_drawdown,
        'max_drawdown_pct': max_drawdown_pct,
        'sharpe_ratio': calculate_sharpe_ratio(equity_curve),
        'profit_factor': calculate_profit_factor(trades_df['pnl'].tolist()),
        'avg_trade_duration_seconds': int(round(avg_duration)),
    }
