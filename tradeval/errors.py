# -*- coding: utf-8 -*-
"""
Exception types for strategy evaluation.

Risk rejections are not exceptions; see ``tradeval.risk.risk_engine.RiskDecision``.
"""


class TradevalError(Exception):
    """Base class for all tradeval errors."""


class ValidationError(TradevalError, ValueError):
    """Missing or invalid parameters. Fatal, never retried."""


class DataError(TradevalError):
    """No candles, or not enough candles, for the requested range."""
