# -*- coding: utf-8 -*-
"""
Backtesting configuration schema.

Defines the execution-model parameters of a backtest run. All percentages
are fractions (0.001 = 0.1%).
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

from tradeval.config import Config


CRYPTO_MARKERS = ('USDT', 'BTC', 'ETH')


def get_asset_class(symbol: str) -> str:
    """Classify a symbol as 'crypto' or 'stocks'."""
    upper = symbol.upper()
    if any(marker in upper for marker in CRYPTO_MARKERS):
        return 'crypto'
    return 'stocks'


@dataclass
class BacktestConfig:
    """Configuration for the backtest engine."""

    # Spread per asset class
    spread_pct_by_asset_class: Dict[str, float] = field(default_factory=lambda: {
        'crypto': 0.001,  # 0.1%
        'stocks': 0.0005,  # 0.05%
        'default': 0.001,
    })
    spread_pct: Optional[float] = None  # Overrides the asset-class spread when set
    slippage_pct: float = 0.0005  # 0.05%, always adverse
    commission_pct: float = 0.001  # 0.1% on entry and exit notional

    # Position sizing
    position_size_pct: float = 0.10  # Fraction of current equity per entry

    # Data checks
    gap_warning_multiple: float = 3.0  # Warn when a gap exceeds N x timeframe

    def get_spread_pct(self, symbol: str) -> float:
        if self.spread_pct is not None:
            return self.spread_pct
        asset_class = get_asset_class(symbol)
        return self.spread_pct_by_asset_class.get(
            asset_class, self.spread_pct_by_asset_class.get('default', 0.0)
        )

    def with_overrides(self, overrides: Optional[dict] = None) -> "BacktestConfig":
        """Copy of this config with per-run overrides applied (None values ignored)."""
        values = self.to_dict()
        for key, value in (overrides or {}).items():
            if key not in values:
                raise KeyError(f"Unknown backtest config key: {key}")
            if value is not None:
                values[key] = value
        values['spread_pct_by_asset_class'] = dict(values['spread_pct_by_asset_class'])
        return BacktestConfig(**values)

    @classmethod
    def from_config(cls, config: Config) -> "BacktestConfig":
        return cls(
            spread_pct_by_asset_class={
                'crypto': config.spread_pct_crypto,
                'stocks': config.spread_pct_stocks,
                'default': config.spread_pct_crypto,
            },
            slippage_pct=config.slippage_pct,
            commission_pct=config.commission_pct,
        )

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        return {
            'spread_pct_by_asset_class': dict(self.spread_pct_by_asset_class),
            'spread_pct': self.spread_pct,
            'slippage_pct': self.slippage_pct,
            'commission_pct': self.commission_pct,
            'position_size_pct': self.position_size_pct,
            'gap_warning_multiple': self.gap_warning_multiple,
        }
