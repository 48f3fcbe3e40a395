# -*- coding: utf-8 -*-
"""
Backtesting engine module.

Provides components for realistic trade execution, capital accounting,
performance metrics and walk-forward validation.
"""

from tradeval.backtesting.execution_engine import ExecutionEngine
from tradeval.backtesting.capital_accounting import Account, CapitalAccountant, Position, Trade
from tradeval.backtesting.config import BacktestConfig
from tradeval.backtesting.engine import BacktestEngine, BacktestResult
from tradeval.backtesting.walk_forward import Fold, WalkForwardResult, WalkForwardValidator
from tradeval.backtesting.pool import BacktestJob, BacktestPool, PoolOutcome

__all__ = [
    'ExecutionEngine',
    'Account',
    'CapitalAccountant',
    'Position',
    'Trade',
    'BacktestConfig',
    'BacktestEngine',
    'BacktestResult',
    'Fold',
    'WalkForwardResult',
    'WalkForwardValidator',
    'BacktestJob',
    'BacktestPool',
    'PoolOutcome',
]
