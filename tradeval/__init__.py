# -*- coding: utf-8 -*-
"""
tradeval: deterministic strategy backtesting, walk-forward validation and
pre-trade risk gating.
"""

__version__ = "0.1.0"
