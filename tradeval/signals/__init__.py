# -*- coding: utf-8 -*-
"""
Strategy interface and strategy implementations.

Strategies are signal generators only: they know nothing about fills,
account balance or risk limits.
"""

from tradeval.signals.base import Signal, SignalAction, Strategy
from tradeval.signals.sma_crossover import SmaCrossoverStrategy

# Strategy registry - maps strategy ids to their factories
STRATEGY_REGISTRY = {
    'sma_crossover': SmaCrossoverStrategy,
}

__all__ = [
    'Signal',
    'SignalAction',
    'Strategy',
    'SmaCrossoverStrategy',
    'STRATEGY_REGISTRY',
    'create_strategy',
]


def create_strategy(strategy_id: str, config: dict = None) -> Strategy:
    """Instantiate a registered strategy by id."""
    if strategy_id not in STRATEGY_REGISTRY:
        raise KeyError(
            f"Unknown strategy '{strategy_id}'. Available: {', '.join(sorted(STRATEGY_REGISTRY))}"
        )
    return STRATEGY_REGISTRY[strategy_id](config)
