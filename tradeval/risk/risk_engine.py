# -*- coding: utf-8 -*-
"""
Pre-trade risk gate for live order intents.

The engine owns one ``DailyRiskStats`` context object guarded by a re-entrant
lock. Every public method takes the lock and rolls the day over (persisting
the previous day's stats) before it reads or writes anything. Alerts are queued
under the lock and sent after it is released.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from tradeval.config import Config
from tradeval.errors import ValidationError


logger = logging.getLogger(__name__)

# Persist daily stats every N recorded trades
STATS_SAVE_INTERVAL = 10


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


@dataclass
class RiskLimits:
    max_daily_loss_percent: float = 2.0
    max_position_size_percent: float = 25.0
    max_open_positions: int = 5
    require_stop_loss: bool = True
    require_take_profit: bool = False
    trading_enabled: bool = True  # Kill switch
    enabled: bool = True  # Feature flag; False allows every order
    max_stop_loss_percent: float = 10.0

    @classmethod
    def from_config(cls, config: Optional[Config] = None) -> "RiskLimits":
        config = config or Config()
        return cls(
            max_daily_loss_percent=config.max_daily_loss_percent,
            max_position_size_percent=config.max_position_size_percent,
            max_open_positions=config.max_open_positions,
            require_stop_loss=config.require_stop_loss,
            require_take_profit=config.require_take_profit,
            trading_enabled=config.trading_enabled,
            enabled=config.enable_risk_engine,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'max_daily_loss_percent': self.max_daily_loss_percent,
            'max_position_size_percent': self.max_position_size_percent,
            'max_open_positions': self.max_open_positions,
            'require_stop_loss': self.require_stop_loss,
            'require_take_profit': self.require_take_profit,
        }


@dataclass
class OpenPositionEntry:
    quantity: float
    avg_price: float


@dataclass
class DailyRiskStats:
    """Realized P&L, trade count and the open-position ledger for one UTC day."""

    date: str
    total_pnl: float = 0.0
    trade_count: int = 0
    open_positions: Dict[str, OpenPositionEntry] = field(default_factory=dict)

    @classmethod
    def for_day(cls, day: date) -> "DailyRiskStats":
        return cls(date=day.isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'date': self.date,
            'total_pnl': self.total_pnl,
            'trade_count': self.trade_count,
            'open_positions': {
                symbol: {'quantity': entry.quantity, 'avg_price': entry.avg_price}
                for symbol, entry in self.open_positions.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DailyRiskStats":
        positions = {
            symbol: OpenPositionEntry(quantity=float(entry['quantity']), avg_price=float(entry['avg_price']))
            for symbol, entry in (data.get('open_positions') or {}).items()
        }
        return cls(
            date=data['date'],
            total_pnl=float(data.get('total_pnl', 0.0)),
            trade_count=int(data.get('trade_count', 0)),
            open_positions=positions,
        )


@dataclass
class OrderIntent:
    symbol: str
    action: str
    quantity: float
    price: float
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    confidence: Optional[float] = None


@dataclass(frozen=True)
class RiskDecision:
    allowed: bool
    reason: Optional[str] = None

    @classmethod
    def allow(cls) -> "RiskDecision":
        return cls(allowed=True)

    @classmethod
    def reject(cls, reason: str) -> "RiskDecision":
        return cls(allowed=False, reason=reason)


def _field(trade: Any, name: str, default=None):
    if isinstance(trade, Mapping):
        return trade.get(name, default)
    return getattr(trade, name, default)


def _fmt(value: float) -> str:
    return f"{value:g}"


class RiskEngine:
    """Validates order intents against daily and per-order risk limits."""

    def __init__(self, limits: Optional[RiskLimits] = None, stats_store=None,
                 notifier=None, clock: Optional[Callable[[], date]] = None,
                 account_balance: float = 100000.0):
        """
        Initialize risk engine.

        Parameters
        ----------
        limits : RiskLimits or None, optional
            Risk limits; defaults to ``RiskLimits.from_config()``
        stats_store : object or None, optional
            Daily stats persistence with ``load(date_str)`` and
            ``save(stats, account_balance)``
        notifier : object or None, optional
            Alert sink with ``notify_rejection``, ``notify_daily_reset`` and
            ``notify_kill_switch``
        clock : callable or None, optional
            Returns today's date; defaults to the current UTC date
        account_balance : float, default 100000.0
            Balance reported when stats are persisted; updated by every
            ``validate_order`` call
        """
        self.limits = limits or RiskLimits.from_config()
        self.stats_store = stats_store
        self.notifier = notifier
        self.clock = clock or utc_today
        self.account_balance = account_balance

        self._lock = threading.RLock()
        self.daily_stats = DailyRiskStats.for_day(self.clock())
        self._load_daily_stats()

        logger.info(
            f"Initialized RiskEngine (enabled={self.limits.enabled}, "
            f"trading_enabled={self.limits.trading_enabled})"
        )

    def _load_daily_stats(self):
        if self.stats_store is None:
            return
        try:
            stored = self.stats_store.load(self.daily_stats.date)
        except Exception as e:
            logger.warning(f"Could not load daily risk stats for {self.daily_stats.date}: {e}")
            return
        if stored is not None:
            self.daily_stats = stored
            logger.info(
                f"Loaded daily risk stats for {stored.date}: pnl={stored.total_pnl:.2f}, trades={stored.trade_count}"
            )

    def _save_daily_stats(self):
        if self.stats_store is None:
            return
        try:
            self.stats_store.save(self.daily_stats, self.account_balance)
        except Exception as e:
            logger.warning(f"Could not save daily risk stats for {self.daily_stats.date}: {e}")

    def _send_alerts(self, alerts: List[Tuple[str, tuple]]):
        """Deliver queued alerts. Must be called without holding the lock."""
        if self.notifier is None:
            return
        for method, args in alerts:
            try:
                getattr(self.notifier, method)(*args)
            except Exception as e:
                logger.warning(f"Risk notifier {method} failed: {e}")

    def _roll_over(self) -> List[Tuple[str, tuple]]:
        """
        Roll the stats over if the date changed. Caller holds the lock.

        Returns
        -------
        list
            Alerts to send once the lock is released
        """
        today = self.clock().isoformat()
        if self.daily_stats.date == today:
            return []

        previous = self.daily_stats
        self._save_daily_stats()
        logger.info(f"New trading day: {today}. Resetting daily stats.")
        self.daily_stats = DailyRiskStats(date=today)
        return [('notify_daily_reset', (previous, self.account_balance))]

    def check_daily_reset(self) -> bool:
        """
        Roll the stats over when the date has changed.

        Returns
        -------
        bool
            True if a rollover happened
        """
        with self._lock:
            alerts = self._roll_over()
        self._send_alerts(alerts)
        return bool(alerts)

    def set_trading_enabled(self, enabled: bool):
        """Toggle the kill switch."""
        with self._lock:
            alerts = self._roll_over()
            if self.limits.trading_enabled != enabled:
                self.limits.trading_enabled = enabled
                if enabled:
                    logger.info("Kill switch released: trading enabled")
                else:
                    logger.warning("Kill switch activated: trading disabled")
                alerts.append(('notify_kill_switch', (enabled,)))
        self._send_alerts(alerts)

    def is_trading_enabled(self) -> bool:
        with self._lock:
            return self.limits.trading_enabled

    def validate_order(self, intent: OrderIntent, account_balance: float = 100000) -> RiskDecision:
        """
        Check an order intent against the risk limits.

        The first failing check wins. A rejection is a value, never an
        exception.

        Parameters
        ----------
        intent : OrderIntent
            Order to check
        account_balance : float, default 100000
            Current account balance

        Returns
        -------
        RiskDecision

        Raises
        ------
        ValidationError
            If ``account_balance`` is not positive
        """
        if account_balance is None or account_balance <= 0:
            raise ValidationError(f"account_balance must be positive, got {account_balance}")

        with self._lock:
            alerts = self._roll_over()
            self.account_balance = account_balance

            decision = self._evaluate(intent, account_balance)
            if not decision.allowed:
                logger.warning(f"Risk check failed for {intent.action} {intent.symbol}: {decision.reason}")
                alerts.append(('notify_rejection', (intent, decision.reason)))

        # Alerts may hit the network; other orders must not wait on them
        self._send_alerts(alerts)
        return decision

    def _evaluate(self, intent: OrderIntent, account_balance: float) -> RiskDecision:
        limits = self.limits
        stats = self.daily_stats

        if not limits.enabled:
            return RiskDecision.allow()

        if not limits.trading_enabled:
            return RiskDecision.reject(
                'Trading is disabled (kill switch active). Set TRADING_ENABLED=true to enable.'
            )

        daily_loss_pct = abs(stats.total_pnl) / account_balance * 100
        if stats.total_pnl < 0 and daily_loss_pct >= limits.max_daily_loss_percent:
            return RiskDecision.reject(
                f"Daily loss limit exceeded: {daily_loss_pct:.2f}% >= {_fmt(limits.max_daily_loss_percent)}%"
            )

        notional = abs(intent.quantity) * intent.price
        position_size_pct = notional / account_balance * 100
        if position_size_pct > limits.max_position_size_percent:
            return RiskDecision.reject(
                f"Position size too large: {position_size_pct:.2f}% > {_fmt(limits.max_position_size_percent)}%"
            )

        open_count = len(stats.open_positions)
        if (intent.action == 'BUY' and open_count >= limits.max_open_positions
                and intent.symbol not in stats.open_positions):
            return RiskDecision.reject(
                f"Max open positions reached: {open_count} >= {limits.max_open_positions}"
            )

        if limits.require_stop_loss and not intent.stop_loss:
            return RiskDecision.reject('Stop loss is required but not provided')

        if limits.require_take_profit and not intent.take_profit:
            return RiskDecision.reject('Take profit is required but not provided')

        if intent.stop_loss and intent.price:
            stop_loss_pct = abs(intent.stop_loss - intent.price) / intent.price * 100
            if stop_loss_pct > limits.max_stop_loss_percent:
                return RiskDecision.reject(
                    f"Stop loss too wide: {stop_loss_pct:.2f}% > {_fmt(limits.max_stop_loss_percent)}%"
                )

        return RiskDecision.allow()

    def record_trade(self, trade: Any):
        """
        Record an executed trade in today's stats.

        Parameters
        ----------
        trade : mapping or object
            Needs ``symbol``, ``action``, ``quantity`` and ``price``; ``pnl``
            is optional
        """
        with self._lock:
            alerts = self._roll_over()
            stats = self.daily_stats

            symbol = _field(trade, 'symbol')
            action = str(_field(trade, 'action', '')).upper()
            quantity = float(_field(trade, 'quantity', 0) or 0)
            price = float(_field(trade, 'price', 0) or 0)
            pnl = _field(trade, 'pnl')

            stats.trade_count += 1
            if pnl is not None:
                stats.total_pnl += float(pnl)

            if action == 'BUY':
                existing = stats.open_positions.get(symbol)
                if existing is not None and existing.quantity > 0:
                    new_quantity = existing.quantity + quantity
                    avg_price = (existing.quantity * existing.avg_price + quantity * price) / new_quantity
                else:
                    new_quantity = quantity
                    avg_price = price
                stats.open_positions[symbol] = OpenPositionEntry(quantity=new_quantity, avg_price=avg_price)
            elif action in ('SELL', 'CLOSE'):
                existing = stats.open_positions.get(symbol)
                if existing is not None:
                    remaining = existing.quantity - quantity
                    if remaining <= 0:
                        del stats.open_positions[symbol]
                    else:
                        stats.open_positions[symbol] = OpenPositionEntry(
                            quantity=remaining, avg_price=existing.avg_price
                        )

            logger.debug(
                f"Recorded {action} {symbol} qty={quantity} pnl={pnl}; "
                f"daily pnl={stats.total_pnl:.2f}, trades={stats.trade_count}"
            )

            if stats.trade_count % STATS_SAVE_INTERVAL == 0:
                self._save_daily_stats()

        self._send_alerts(alerts)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            alerts = self._roll_over()
            stats = {
                'enabled': self.limits.enabled,
                'trading_enabled': self.limits.trading_enabled,
                'daily_stats': {
                    'date': self.daily_stats.date,
                    'total_pnl': self.daily_stats.total_pnl,
                    'trade_count': self.daily_stats.trade_count,
                    'open_positions': len(self.daily_stats.open_positions),
                },
                'limits': self.limits.to_dict(),
            }
        self._send_alerts(alerts)
        return stats
