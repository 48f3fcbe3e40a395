# -*- coding: utf-8 -*-
"""
Base strategy interface and standardized signal format.

Defines the contract that every strategy must follow so the backtest engine,
the walk-forward validator and the live order path can consume signals
uniformly.
"""

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from tradeval.data.candles import Candle


class SignalAction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    CLOSE = "CLOSE"


@dataclass(frozen=True)
class Signal:
    """
    A trading signal emitted for one candle.

    A strategy returns ``None`` instead of a Signal when it has no action for
    the candle.
    """

    action: SignalAction
    confidence: float
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    reason: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def buy(cls, confidence: float, stop_loss: Optional[float] = None,
            take_profit: Optional[float] = None,
            metadata: Optional[Dict[str, Any]] = None) -> "Signal":
        return cls(SignalAction.BUY, confidence, stop_loss, take_profit,
                   metadata=metadata or {})

    @classmethod
    def sell(cls, confidence: float, stop_loss: Optional[float] = None,
             take_profit: Optional[float] = None,
             metadata: Optional[Dict[str, Any]] = None) -> "Signal":
        return cls(SignalAction.SELL, confidence, stop_loss, take_profit,
                   metadata=metadata or {})

    @classmethod
    def close(cls, reason: Optional[str] = None, confidence: float = 1.0) -> "Signal":
        return cls(SignalAction.CLOSE, confidence, reason=reason)


class Strategy(ABC):
    """
    Abstract base class for all strategies.

    Strategies consume one candle at a time and never see future candles.
    Per-run state lives in the ``state`` dict handed to ``generate_signal``;
    ``reset()`` restores the initial state before a run.

    Subclasses must accept their configuration dict as the first constructor
    argument so that ``clone()`` can rebuild them.
    """

    def __init__(self, strategy_id: str, name: str,
                 config: Optional[Dict[str, Any]] = None):
        """
        Initialize strategy.

        Parameters
        ----------
        strategy_id : str
            Stable identifier (e.g., 'sma_crossover'). Part of result ids.
        name : str
            Human-readable name
        config : dict or None, optional
            Strategy parameters
        """
        self.id = strategy_id
        self.name = name
        self.config = dict(config or {})
        self.state: Dict[str, Any] = {}

    @abstractmethod
    def generate_signal(self, candle: Candle, state: Dict[str, Any]) -> Optional[Signal]:
        """
        Generate a signal from the current candle.

        Parameters
        ----------
        candle : Candle
            Current candle. Only this and earlier candles are ever observed.
        state : dict
            Run state, mutable by the strategy between calls.

        Returns
        -------
        Signal or None
            None means no action this candle.
        """

    def reset(self):
        """Reset strategy to its initial state."""
        self.state = {}

    def get_state(self) -> Dict[str, Any]:
        return dict(self.state)

    def get_config(self) -> Dict[str, Any]:
        return dict(self.config)

    def validate_signal(self, signal: Optional[Signal]) -> bool:
        """Check that a signal has a known action and a confidence in [0, 1]."""
        if signal is None:
            return False
        if not isinstance(signal.action, SignalAction):
            return False
        if signal.confidence is None:
            return False
        if signal.confidence < 0.0 or signal.confidence > 1.0:
            return False
        return True

    def clone(self) -> "Strategy":
        """Fresh instance of the same type and config, sharing no mutable state."""
        return type(self)(copy.deepcopy(self.get_config()))
