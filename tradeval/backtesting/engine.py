# -*- coding: utf-8 -*-
"""
Deterministic historical-replay backtester.

Fill model and assumptions:
- A signal computed on the close of candle i fills at the open of candle i+1
- Spread is widened against the trader, then slippage is applied (adverse)
- Commission is charged on entry and exit notional
- Stop-loss / take-profit are checked against the full bar range; when both
  trigger within one bar the stop-loss wins
- Open positions are force-closed at the final close of the run
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from tradeval.backtesting.capital_accounting import Account, CapitalAccountant, Position, Trade
from tradeval.backtesting.config import BacktestConfig
from tradeval.backtesting.execution_engine import ExecutionEngine
from tradeval.backtesting.metrics import calculate_performance_metrics
from tradeval.data.candles import Candle, ms_to_iso, prepare_candles, timeframe_to_ms, to_timestamp_ms
from tradeval.errors import DataError, ValidationError
from tradeval.ids import generate_deterministic_id
from tradeval.signals.base import Signal, SignalAction, Strategy


logger = logging.getLogger(__name__)


def format_capital(value: float) -> str:
    """Canonical text of a capital amount for id hashing (10000.0 -> '10000')."""
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return repr(value)


@dataclass
class BacktestResult:
    """Read-only outcome of one backtest run."""

    id: str
    strategy_id: str
    symbol: str
    timeframe: str
    start_date: str
    end_date: str
    initial_capital: float
    final_capital: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float
    net_profit: float
    net_profit_pct: float
    max_drawdown: float
    max_drawdown_pct: float
    sharpe_ratio: Optional[float]
    profit_factor: Optional[float]
    avg_trade_duration_seconds: int
    trades: List[Trade] = field(default_factory=list)
    equity_curve: List[float] = field(default_factory=list)
    config: Dict[str, Any] = field(default_factory=dict)

    def performance_summary(self) -> Dict[str, Any]:
        return {
            'net_profit_pct': self.net_profit_pct,
            'sharpe_ratio': self.sharpe_ratio,
            'win_rate': self.win_rate,
            'max_drawdown_pct': self.max_drawdown_pct,
        }

    def to_dict(self, include_trades: bool = False) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'strategy_id': self.strategy_id,
            'symbol': self.symbol,
            'timeframe': self.timeframe,
            'start_date': self.start_date,
            'end_date': self.end_date,
            'initial_capital': self.initial_capital,
            'final_capital': self.final_capital,
            'total_trades': self.total_trades,
            'winning_trades': self.winning_trades,
            'losing_trades': self.losing_trades,
            'win_rate': self.win_rate,
            'net_profit': self.net_profit,
            'net_profit_pct': self.net_profit_pct,
            'max_drawdown': self.max_drawdown,
            'max_drawdown_pct': self.max_drawdown_pct,
            'sharpe_ratio': self.sharpe_ratio,
            'profit_factor': self.profit_factor,
            'avg_trade_duration_seconds': self.avg_trade_duration_seconds,
            'config': dict(self.config),
        }
        if include_trades:
            data['trades'] = [t.to_dict() for t in self.trades]
            data['equity_curve'] = list(self.equity_curve)
        return data


class BacktestEngine:
    """Replays candles through a strategy and simulates fills, positions and equity."""

    def __init__(self, candle_source, store=None, attribution=None,
                 config: Optional[BacktestConfig] = None):
        """
        Initialize backtest engine.

        Parameters
        ----------
        candle_source : object
            Anything with ``read_candles(symbol, timeframe) -> list[Candle]``
        store : object or None, optional
            Results store with ``save_backtest_run(result)``
        attribution : object or None, optional
            Pattern attribution service with
            ``attribute_trade(trade_id, patterns, trade_result)``
        config : BacktestConfig or None, optional
            Default execution parameters
        """
        self.candle_source = candle_source
        self.store = store
        self.attribution = attribution
        self.config = config or BacktestConfig()

    def run_backtest(self, strategy: Strategy, symbol: str, timeframe: str,
                     start_date, end_date, initial_capital: float = 10000,
                     config: Optional[Union[BacktestConfig, dict]] = None) -> BacktestResult:
        """
        Run one backtest.

        Parameters
        ----------
        strategy : Strategy
            Strategy instance. It is reset before the first candle.
        symbol : str
            Symbol to replay
        timeframe : str
            Candle timeframe (e.g., '5m', '1h')
        start_date, end_date : date-like
            Inclusive range; datetimes, ISO strings or epoch milliseconds
        initial_capital : float, default 10000
            Starting cash
        config : BacktestConfig or dict or None, optional
            Per-run overrides of the engine's execution parameters

        Returns
        -------
        BacktestResult

        Raises
        ------
        ValidationError
            On missing or invalid parameters
        DataError
            When no candles exist for the symbol or the range
        """
        if not strategy or not symbol or not timeframe or start_date is None or end_date is None:
            raise ValidationError(
                'Missing required parameters: strategy, symbol, timeframe, start_date, end_date'
            )
        if initial_capital is None or initial_capital <= 0:
            raise ValidationError(f"initial_capital must be positive, got {initial_capital}")

        start_ts = to_timestamp_ms(start_date)
        end_ts = to_timestamp_ms(end_date)
        if start_ts > end_ts:
            raise ValidationError(f"start_date {start_date} is after end_date {end_date}")

        run_config = self._resolve_config(config)

        all_candles = self.candle_source.read_candles(symbol, timeframe)
        if not all_candles:
            raise DataError(f"No candles found for {symbol}/{timeframe}")

        candles = prepare_candles(c for c in all_candles if start_ts <= c.ts <= end_ts)
        if not candles:
            raise DataError(
                f"No candles in date range {ms_to_iso(start_ts)} to {ms_to_iso(end_ts)} for {symbol}/{timeframe}"
            )

        self._warn_about_gaps(candles, timeframe, run_config.gap_warning_multiple)

        spread_pct = run_config.get_spread_pct(symbol)
        execution = ExecutionEngine(
            spread_pct=spread_pct,
            slippage_pct=run_config.slippage_pct,
            commission_pct=run_config.commission_pct,
        )

        strategy.reset()
        strategy_state = strategy.get_state()

        account = Account.open(initial_capital)
        accountant = CapitalAccountant(initial_capital)

        logger.debug(
            f"Replaying {len(candles)} candles for {strategy.id} on {symbol}/{timeframe} "
            f"(spread={spread_pct}, slippage={run_config.slippage_pct}, commission={run_config.commission_pct})"
        )

        pending: Optional[Signal] = None
        last_index = len(candles) - 1

        for i, candle in enumerate(candles):
            # Fill the previous candle's signal at this candle's open
            if pending is not None:
                self._execute_signal(pending, candle, account, execution, symbol, run_config)
                pending = None

            self._check_exits(candle, account, execution, symbol)

            account.equity = accountant.calculate_equity(account, candle.close)
            accountant.update(account.equity)

            # The strategy only ever sees candles 0..i
            signal = strategy.generate_signal(candle, strategy_state)
            if signal is not None and strategy.validate_signal(signal) and i < last_index:
                pending = signal

        last_candle = candles[-1]
        for sym, position in list(account.positions.items()):
            self._close_position(sym, position, last_candle.close, last_candle.ts,
                                 account, execution, 'Backtest end')
        account.equity = account.balance

        metrics = calculate_performance_metrics(
            account.trades,
            initial_capital,
            account.equity,
            accountant.equity_curve,
            accountant.max_drawdown,
            accountant.max_drawdown_pct,
        )

        backtest_id = generate_deterministic_id(
            'bt',
            strategy.id,
            symbol,
            timeframe,
            start_ts,
            end_ts,
            format_capital(initial_capital),
        )

        config_json = {
            'spread_pct': spread_pct,
            'slippage_pct': run_config.slippage_pct,
            'commission_pct': run_config.commission_pct,
            'position_size_pct': run_config.position_size_pct,
        }
        config_json.update(strategy.get_config())

        result = BacktestResult(
            id=backtest_id,
            strategy_id=strategy.id,
            symbol=symbol,
            timeframe=timeframe,
            start_date=ms_to_iso(start_ts),
            end_date=ms_to_iso(end_ts),
            initial_capital=initial_capital,
            final_capital=account.equity,
            trades=list(account.trades),
            equity_curve=list(accountant.equity_curve),
            config=config_json,
            **metrics,
        )

        logger.info(
            f"Backtest {backtest_id} {strategy.id} {symbol}/{timeframe}: "
            f"{result.total_trades} trades, net {result.net_profit_pct:.2f}%, "
            f"max DD {result.max_drawdown_pct:.2f}%"
        )

        if self.store is not None:
            try:
                self.store.save_backtest_run(result)
            except Exception as e:
                logger.warning(f"Could not save backtest run {backtest_id}: {e}")

        return result

    def _resolve_config(self, config) -> BacktestConfig:
        if config is None:
            return self.config
        if isinstance(config, BacktestConfig):
            return config
        return self.config.with_overrides(config)

    def _execute_signal(self, signal: Signal, fill_candle: Candle, account: Account,
                        execution: ExecutionEngine, symbol: str, run_config: BacktestConfig):
        """Fill a pending signal at ``fill_candle.open``."""
        fill_price = fill_candle.open
        existing = account.positions.get(symbol)

        if signal.action == SignalAction.CLOSE:
            if existing is not None:
                self._close_position(symbol, existing, fill_price, fill_candle.ts,
                                     account, execution, signal.reason or 'Signal close')
            return

        if signal.action == SignalAction.SELL:
            logger.warning(f"Short selling not supported; ignoring SELL signal for {symbol}")
            return

        # Reversal is two events: close at the fill price, then open
        if existing is not None:
            self._close_position(symbol, existing, fill_price, fill_candle.ts,
                                 account, execution, 'Reversing position')

        self._open_long(signal, fill_candle, account, execution, symbol, run_config)

    def _open_long(self, signal: Signal, fill_candle: Candle, account: Account,
                   execution: ExecutionEngine, symbol: str, run_config: BacktestConfig):
        entry_price = execution.execute_entry(fill_candle.open)

        # Size on current equity, not cash balance
        account.equity = CapitalAccountant.calculate_equity(account, fill_candle.open)
        notional = account.equity * run_config.position_size_pct
        quantity = notional / entry_price
        commission = execution.calculate_commission(notional)
        total_cost = notional + commission

        if total_cost > account.balance:
            logger.info(
                f"Skipping BUY {symbol} at {fill_candle.ts}: cost {total_cost:.2f} exceeds balance {account.balance:.2f}"
            )
            return

        account.balance -= total_cost
        metadata = signal.metadata or {}
        account.positions[symbol] = Position(
            action=SignalAction.BUY.value,
            quantity=quantity,
            entry_price=entry_price,
            entry_time=fill_candle.ts,
            stop_loss=signal.stop_loss,
            take_profit=signal.take_profit,
            entry_commission=commission,
            pattern_id=metadata.get('pattern_id'),
            pattern_type=metadata.get('pattern_type'),
            pattern_confidence=metadata.get('pattern_confidence'),
        )

    def _check_exits(self, candle: Candle, account: Account, execution: ExecutionEngine, symbol: str):
        """
        Check stop loss / take profit against the candle's full range.

        If both levels are inside the bar, assume the worst case: stop loss.
        """
        position = account.positions.get(symbol)
        if position is None:
            return

        stop_loss_hit = position.stop_loss is not None and candle.low <= position.stop_loss
        take_profit_hit = position.take_profit is not None and candle.high >= position.take_profit

        if stop_loss_hit and take_profit_hit:
            self._close_position(symbol, position, position.stop_loss, candle.ts,
                                 account, execution, 'Stop loss (both hit)')
        elif stop_loss_hit:
            self._close_position(symbol, position, position.stop_loss, candle.ts,
                                 account, execution, 'Stop loss')
        elif take_profit_hit:
            self._close_position(symbol, position, position.take_profit, candle.ts,
                                 account, execution, 'Take profit')

    def _close_position(self, symbol: str, position: Position, base_exit_price: float,
                        exit_time: int, account: Account, execution: ExecutionEngine,
                        reason: str) -> Trade:
        exit_price = execution.execute_exit(base_exit_price)

        gross_proceeds = position.quantity * exit_price
        commission = execution.calculate_commission(gross_proceeds)
        net_proceeds = gross_proceeds - commission
        pnl = net_proceeds - position.cost_basis
        entry_notional = position.quantity * position.entry_price
        pnl_pct = (pnl / entry_notional) * 100 if entry_notional > 0 else 0.0

        account.balance += net_proceeds
        del account.positions[symbol]

        trade = Trade(
            id=account.next_trade_id(symbol, exit_time),
            symbol=symbol,
            action=position.action,
            entry_price=position.entry_price,
            exit_price=exit_price,
            quantity=position.quantity,
            entry_time=position.entry_time,
            exit_time=exit_time,
            pnl=pnl,
            pnl_pct=pnl_pct,
            duration=exit_time - position.entry_time,
            reason=reason,
            pattern_id=position.pattern_id,
            pattern_type=position.pattern_type,
            pattern_confidence=position.pattern_confidence,
        )
        account.trades.append(trade)

        if position.pattern_id and self.attribution is not None:
            patterns = [{
                'pattern_id': position.pattern_id,
                'confidence': position.pattern_confidence or 0,
                'pattern_type': position.pattern_type or 'unknown',
            }]
            try:
                self.attribution.attribute_trade(trade.id, patterns, {'pnl': pnl, 'pnl_pct': pnl_pct})
            except Exception as e:
                logger.warning(f"Could not attribute trade {trade.id} to pattern {position.pattern_id}: {e}")

        return trade

    @staticmethod
    def _warn_about_gaps(candles: List[Candle], timeframe: str, multiple: float = 3.0) -> int:
        """Log a warning for each gap above ``multiple`` x timeframe. Returns the gap count."""
        timeframe_ms = timeframe_to_ms(timeframe)
        max_gap = timeframe_ms * multiple
        gaps = 0

        for prev, curr in zip(candles, candles[1:]):
            gap = curr.ts - prev.ts
            if gap > max_gap:
                gaps += 1
                logger.warning(
                    f"Large gap detected: {gap / 60000:.1f} minutes between candles at "
                    f"{ms_to_iso(prev.ts)} and {ms_to_iso(curr.ts)} (expected ~{timeframe_ms / 60000:.1f} minutes)"
                )
        return gaps
