# -*- coding: utf-8 -*-
"""
Live order risk gating.
"""

from tradeval.risk.risk_engine import (
    DailyRiskStats,
    OpenPositionEntry,
    OrderIntent,
    RiskDecision,
    RiskEngine,
    RiskLimits,
)
from tradeval.risk.risk_stats_store import EvaluationDbRiskStatsStore, JsonRiskStatsStore
from tradeval.risk.order_intent import check_order, extract_order_intent

__all__ = [
    'DailyRiskStats',
    'OpenPositionEntry',
    'OrderIntent',
    'RiskDecision',
    'RiskEngine',
    'RiskLimits',
    'EvaluationDbRiskStatsStore',
    'JsonRiskStatsStore',
    'check_order',
    'extract_order_intent',
]
