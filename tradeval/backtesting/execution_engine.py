# -*- coding: utf-8 -*-
"""
Execution engine for trade entry and exit.

Handles the fill price model: spread widened against the trader, then
slippage, always adverse. Commission is charged on notional at entry and
exit.
"""


class ExecutionEngine:
    """Handles fill prices with spread, slippage and commission."""

    def __init__(self, spread_pct: float = 0.0, slippage_pct: float = 0.0,
                 commission_pct: float = 0.0):
        """
        Initialize execution engine.

        Parameters
        ----------
        spread_pct : float, default 0.0
            Spread as a fraction of price (e.g., 0.001 for 0.1%)
        slippage_pct : float, default 0.0
            Slippage as a fraction of price
        commission_pct : float, default 0.0
            Commission as a fraction of notional
        """
        self.spread_pct = spread_pct
        self.slippage_pct = slippage_pct
        self.commission_pct = commission_pct

    def execute_entry(self, price: float) -> float:
        """
        Effective price of a BUY entry.

        Parameters
        ----------
        price : float
            Quoted price (next candle open)

        Returns
        -------
        float
            ``price * (1 + spread) * (1 + slippage)``
        """
        # Buy: spread and slippage both raise the price paid
        price_with_spread = price * (1 + self.spread_pct)
        return price_with_spread * (1 + self.slippage_pct)

    def execute_exit(self, price: float) -> float:
        """
        Effective price of a sell or position exit.

        Parameters
        ----------
        price : float
            Quoted exit price (open, close, or a stop/target level)

        Returns
        -------
        float
            ``price * (1 - spread) * (1 - slippage)``
        """
        # Sell: spread and slippage both lower the price received
        price_with_spread = price * (1 - self.spread_pct)
        return price_with_spread * (1 - self.slippage_pct)

    def calculate_commission(self, notional: float) -> float:
        """Commission on a notional amount."""
        if self.commission_pct == 0.0:
            return 0.0
        return abs(notional) * self.commission_pct
