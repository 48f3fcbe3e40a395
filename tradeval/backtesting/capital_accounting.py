# -*- coding: utf-8 -*-
"""
Capital accounting module.

Account, position and trade records for one backtest run, plus equity and
drawdown tracking. An Account is created fresh per run and discarded at run
end.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional


@dataclass
class Position:
    """An open position. At most one per symbol per Account."""

    action: str
    quantity: float
    entry_price: float  # Effective price incl. spread and slippage
    entry_time: int
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    entry_commission: float = 0.0
    pattern_id: Optional[str] = None
    pattern_type: Optional[str] = None
    pattern_confidence: Optional[float] = None

    @property
    def cost_basis(self) -> float:
        """Cash paid to open the position, commission included."""
        return self.quantity * self.entry_price + self.entry_commission


@dataclass
class Trade:
    """A closed position. Append-only."""

    id: str
    symbol: str
    action: str
    entry_price: float
    exit_price: float
    quantity: float
    entry_time: int
    exit_time: int
    pnl: float
    pnl_pct: float
    duration: int  # milliseconds
    reason: str
    pattern_id: Optional[str] = None
    pattern_type: Optional[str] = None
    pattern_confidence: Optional[float] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Account:
    """Backtest-scoped cash account."""

    balance: float
    initial_balance: float
    equity: float
    positions: Dict[str, Position] = field(default_factory=dict)
    trades: List[Trade] = field(default_factory=list)
    trade_counter: int = 0

    @classmethod
    def open(cls, initial_capital: float) -> "Account":
        return cls(balance=initial_capital, initial_balance=initial_capital,
                   equity=initial_capital)

    def next_trade_id(self, symbol: str, exit_time: int) -> str:
        trade_id = f"trade_{symbol}_{exit_time}_{self.trade_counter}"
        self.trade_counter += 1
        return trade_id

    def open_cost_basis(self) -> float:
        return sum(p.cost_basis for p in self.positions.values())

    def realized_pnl(self) -> float:
        return sum(t.pnl for t in self.trades)


class CapitalAccountant:
    """Tracks equity, the equity curve and drawdown for one run."""

    def __init__(self, initial_capital: float):
        """
        Initialize capital accountant.

        Parameters
        ----------
        initial_capital : float
            Starting equity; also the first point of the equity curve
        """
        self.initial_capital = initial_capital
        self.equity_curve: List[float] = [initial_capital]
        self.peak_equity = initial_capital
        self.max_drawdown = 0.0
        self.max_drawdown_pct = 0.0

    @staticmethod
    def calculate_equity(account: Account, current_price: float) -> float:
        """
        Mark-to-market equity.

        Parameters
        ----------
        account : Account
            Run account
        current_price : float
            Price used to value every open position

        Returns
        -------
        float
            Balance plus the market value of open positions
        """
        equity = account.balance
        for position in account.positions.values():
            equity += position.quantity * current_price
        return equity

    def update(self, equity: float):
        """Append an equity point and update peak/drawdown."""
        self.equity_curve.append(equity)

        if equity > self.peak_equity:
            self.peak_equity = equity

        drawdown = self.peak_equity - equity
        drawdown_pct = (drawdown / self.peak_equity) * 100 if self.peak_equity > 0 else 0.0
        if drawdown_pct > self.max_drawdown_pct:
            self.max_drawdown = drawdown
            self.max_drawdown_pct = drawdown_pct
