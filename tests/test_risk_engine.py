"""
Tests for the pre-trade risk engine.

Tests cover:
- Each limit check and its boundary
- Kill switch and feature flag
- Daily stats ledger and rollover persistence
- Notifier and stats-store integration
"""

import logging
import threading
import time
from datetime import date, timedelta

import pytest

from tradeval.config import Config
from tradeval.errors import ValidationError
from tradeval.risk import DailyRiskStats, OrderIntent, RiskEngine, RiskLimits

from conftest import FakeNotifier, FakeStatsStore, MutableClock


TODAY = date(2025, 3, 14)


def make_engine(**limit_overrides):
    limits = RiskLimits(**limit_overrides)
    return RiskEngine(limits=limits, clock=MutableClock(TODAY))


def buy(symbol='BTCUSDT', quantity=1.0, price=100.0, stop_loss=98.0, take_profit=102.0):
    return OrderIntent(symbol=symbol, action='BUY', quantity=quantity, price=price,
                       stop_loss=stop_loss, take_profit=take_profit)


# =============================================================
# TEST: Limit checks
# =============================================================

class TestDailyLossLimit:

    def test_scenario_b_rejects_at_limit(self):
        engine = make_engine(max_daily_loss_percent=2.0)
        engine.record_trade({'symbol': 'BTCUSDT', 'action': 'CLOSE', 'quantity': 1, 'price': 100,
                             'pnl': -2000})

        decision = engine.validate_order(buy(), 100000)

        assert decision.allowed is False
        assert decision.reason.startswith("Daily loss limit exceeded")
        assert "2.00% >= 2%" in decision.reason

    def test_loss_below_limit_allowed(self):
        engine = make_engine(max_daily_loss_percent=2.0)
        engine.record_trade({'symbol': 'BTCUSDT', 'action': 'CLOSE', 'quantity': 1, 'price': 100,
                             'pnl': -1999})

        assert engine.validate_order(buy(), 100000).allowed is True

    def test_profit_never_trips_loss_limit(self):
        engine = make_engine()
        engine.record_trade({'symbol': 'BTCUSDT', 'action': 'CLOSE', 'quantity': 1, 'price': 100,
                             'pnl': 50000})

        assert engine.validate_order(buy(), 100000).allowed is True


class TestPositionSize:

    def test_exactly_at_limit_allowed(self):
        engine = make_engine(max_position_size_percent=25.0)
        decision = engine.validate_order(buy(quantity=250, price=100, stop_loss=98), 100000)
        assert decision.allowed is True

    def test_one_unit_over_rejected(self):
        engine = make_engine(max_position_size_percent=25.0)
        decision = engine.validate_order(buy(quantity=251, price=100, stop_loss=98), 100000)

        assert decision.allowed is False
        assert decision.reason == "Position size too large: 25.10% > 25%"

    def test_negative_quantity_uses_absolute_notional(self):
        engine = make_engine(max_position_size_percent=25.0)
        decision = engine.validate_order(buy(quantity=-300, price=100, stop_loss=98), 100000)
        assert decision.allowed is False


class TestMaxOpenPositions:

    def _engine_with_five_positions(self):
        engine = make_engine(max_open_positions=5)
        for symbol in ['AAA', 'BBB', 'CCC', 'DDD', 'EEE']:
            engine.record_trade({'symbol': symbol, 'action': 'BUY', 'quantity': 1, 'price': 100})
        return engine

    def test_scenario_c_new_symbol_rejected(self):
        engine = self._engine_with_five_positions()
        decision = engine.validate_order(buy(symbol='FFF'), 100000)

        assert decision.allowed is False
        assert decision.reason == "Max open positions reached: 5 >= 5"

    def test_scenario_c_held_symbol_allowed(self):
        engine = self._engine_with_five_positions()
        assert engine.validate_order(buy(symbol='AAA'), 100000).allowed is True

    def test_sell_not_limited_by_open_positions(self):
        engine = self._engine_with_five_positions()
        intent = OrderIntent(symbol='FFF', action='SELL', quantity=1, price=100, stop_loss=102)
        assert engine.validate_order(intent, 100000).allowed is True


class TestProtectiveLevels:

    def test_missing_stop_loss_rejected(self):
        engine = make_engine(require_stop_loss=True)
        decision = engine.validate_order(buy(stop_loss=None), 100000)
        assert decision.reason == 'Stop loss is required but not provided'

    def test_stop_loss_optional(self):
        engine = make_engine(require_stop_loss=False)
        assert engine.validate_order(buy(stop_loss=None), 100000).allowed is True

    def test_missing_take_profit_rejected_when_required(self):
        engine = make_engine(require_take_profit=True)
        decision = engine.validate_order(buy(take_profit=None), 100000)
        assert decision.reason == 'Take profit is required but not provided'

    def test_take_profit_optional_by_default(self):
        engine = make_engine()
        assert engine.validate_order(buy(take_profit=None), 100000).allowed is True

    def test_stop_loss_too_wide(self):
        engine = make_engine()
        decision = engine.validate_order(buy(price=100, stop_loss=89), 100000)

        assert decision.allowed is False
        assert decision.reason == "Stop loss too wide: 11.00% > 10%"

    def test_stop_loss_within_ten_percent(self):
        engine = make_engine()
        assert engine.validate_order(buy(price=100, stop_loss=95), 100000).allowed is True


class TestCheckOrder:

    def test_first_failure_wins(self):
        engine = make_engine(max_position_size_percent=25.0)
        decision = engine.validate_order(buy(quantity=1000, price=100, stop_loss=None), 100000)
        assert decision.reason.startswith("Position size too large")

    def test_non_positive_balance_is_validation_error(self):
        engine = make_engine()
        with pytest.raises(ValidationError):
            engine.validate_order(buy(), 0)


# =============================================================
# TEST: Kill switch and feature flag
# =============================================================

class TestKillSwitch:

    def test_kill_switch_rejects_everything(self):
        engine = make_engine(trading_enabled=False)
        decision = engine.validate_order(buy(), 100000)

        assert decision.allowed is False
        assert decision.reason == ('Trading is disabled (kill switch active). '
                                   'Set TRADING_ENABLED=true to enable.')

    def test_toggle_kill_switch(self):
        notifier = FakeNotifier()
        engine = RiskEngine(limits=RiskLimits(), notifier=notifier, clock=MutableClock(TODAY))

        engine.set_trading_enabled(False)
        assert engine.validate_order(buy(), 100000).allowed is False
        engine.set_trading_enabled(True)
        assert engine.validate_order(buy(), 100000).allowed is True

        assert notifier.kill_switch == [False, True]

    def test_disabled_engine_allows_anything(self):
        engine = make_engine(enabled=False, trading_enabled=False)
        decision = engine.validate_order(buy(quantity=10 ** 6, stop_loss=None), 100000)
        assert decision.allowed is True
        assert decision.reason is None


# =============================================================
# TEST: Ledger
# =============================================================

class TestRecordTrade:

    def test_running_average_price(self):
        engine = make_engine()
        engine.record_trade({'symbol': 'BTCUSDT', 'action': 'BUY', 'quantity': 1, 'price': 100})
        engine.record_trade({'symbol': 'BTCUSDT', 'action': 'BUY', 'quantity': 1, 'price': 200})

        entry = engine.daily_stats.open_positions['BTCUSDT']
        assert entry.quantity == 2
        assert entry.avg_price == pytest.approx(150.0)

    def test_reduce_then_remove(self):
        engine = make_engine()
        engine.record_trade({'symbol': 'BTCUSDT', 'action': 'BUY', 'quantity': 2, 'price': 100})
        engine.record_trade({'symbol': 'BTCUSDT', 'action': 'SELL', 'quantity': 1, 'price': 110})

        entry = engine.daily_stats.open_positions['BTCUSDT']
        assert entry.quantity == 1
        assert entry.avg_price == pytest.approx(100.0)

        engine.record_trade({'symbol': 'BTCUSDT', 'action': 'CLOSE', 'quantity': 1, 'price': 120})
        assert 'BTCUSDT' not in engine.daily_stats.open_positions

    def test_counts_and_pnl(self):
        engine = make_engine()
        engine.record_trade({'symbol': 'A', 'action': 'BUY', 'quantity': 1, 'price': 10})
        engine.record_trade({'symbol': 'A', 'action': 'CLOSE', 'quantity': 1, 'price': 12, 'pnl': 2.5})

        stats = engine.get_stats()
        assert stats['daily_stats']['trade_count'] == 2
        assert stats['daily_stats']['total_pnl'] == pytest.approx(2.5)
        assert stats['daily_stats']['open_positions'] == 0
        assert stats['daily_stats']['date'] == '2025-03-14'
        assert stats['limits']['max_open_positions'] == 5

    def test_accepts_objects(self):
        class Fill:
            symbol = 'ETHUSDT'
            action = 'BUY'
            quantity = 3
            price = 10.0

        engine = make_engine()
        engine.record_trade(Fill())
        assert engine.daily_stats.open_positions['ETHUSDT'].quantity == 3

    def test_stats_saved_every_ten_trades(self):
        store = FakeStatsStore()
        engine = RiskEngine(limits=RiskLimits(), stats_store=store, clock=MutableClock(TODAY))
        for _ in range(9):
            engine.record_trade({'symbol': 'A', 'action': 'BUY', 'quantity': 1, 'price': 1})
        assert store.saved == []

        engine.record_trade({'symbol': 'A', 'action': 'BUY', 'quantity': 1, 'price': 1})
        assert len(store.saved) == 1
        assert store.saved[0][0]['trade_count'] == 10

    def test_concurrent_recording(self):
        engine = make_engine()

        def worker():
            for _ in range(100):
                engine.record_trade({'symbol': 'A', 'action': 'CLOSE', 'quantity': 0, 'price': 1,
                                     'pnl': 1.0})

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert engine.daily_stats.trade_count == 800
        assert engine.daily_stats.total_pnl == pytest.approx(800.0)


# =============================================================
# TEST: Day rollover
# =============================================================

class TestDailyRollover:

    def test_rollover_persists_and_resets(self):
        clock = MutableClock(TODAY)
        store = FakeStatsStore()
        notifier = FakeNotifier()
        engine = RiskEngine(limits=RiskLimits(), stats_store=store, notifier=notifier, clock=clock)
        engine.record_trade({'symbol': 'A', 'action': 'BUY', 'quantity': 1, 'price': 10, 'pnl': -3000})
        assert engine.validate_order(buy(), 100000).allowed is False

        clock.today = TODAY + timedelta(days=1)
        decision = engine.validate_order(buy(), 100000)

        assert decision.allowed is True
        assert store.saved[-1][0]['date'] == '2025-03-14'
        assert store.saved[-1][0]['total_pnl'] == pytest.approx(-3000)
        assert engine.daily_stats.date == '2025-03-15'
        assert engine.daily_stats.trade_count == 0
        assert engine.daily_stats.open_positions == {}
        assert [s.date for s in notifier.resets] == ['2025-03-14']

    def test_get_stats_rolls_over(self):
        clock = MutableClock(TODAY)
        engine = RiskEngine(limits=RiskLimits(), clock=clock)
        engine.record_trade({'symbol': 'A', 'action': 'BUY', 'quantity': 1, 'price': 10})

        clock.today = TODAY + timedelta(days=1)
        stats = engine.get_stats()

        assert stats['daily_stats']['date'] == '2025-03-15'
        assert stats['daily_stats']['trade_count'] == 0

    def test_check_daily_reset_is_noop_same_day(self):
        engine = make_engine()
        assert engine.check_daily_reset() is False


# =============================================================
# TEST: Persistence and alerts
# =============================================================

class TestIntegration:

    def test_loads_today_from_store(self):
        stored = DailyRiskStats(date='2025-03-14', total_pnl=-5000.0, trade_count=4)
        store = FakeStatsStore(stored={'2025-03-14': stored})
        engine = RiskEngine(limits=RiskLimits(), stats_store=store, clock=MutableClock(TODAY))

        assert engine.daily_stats.trade_count == 4
        assert engine.validate_order(buy(), 100000).allowed is False

    def test_store_load_failure_is_not_fatal(self, caplog):
        caplog.set_level(logging.WARNING, logger='tradeval.risk.risk_engine')
        store = FakeStatsStore(fail_load=True)
        engine = RiskEngine(limits=RiskLimits(), stats_store=store, clock=MutableClock(TODAY))

        assert engine.daily_stats.trade_count == 0
        assert "Could not load daily risk stats" in caplog.text

    def test_rejection_is_logged_and_notified(self, caplog):
        caplog.set_level(logging.WARNING, logger='tradeval.risk.risk_engine')
        notifier = FakeNotifier()
        engine = RiskEngine(limits=RiskLimits(), notifier=notifier, clock=MutableClock(TODAY))

        decision = engine.validate_order(buy(stop_loss=None), 100000)

        assert notifier.rejections[0][1] == decision.reason
        assert notifier.rejections[0][0].symbol == 'BTCUSDT'
        assert "Risk check failed" in caplog.text

    def test_limits_from_config(self, monkeypatch):
        monkeypatch.setenv('MAX_DAILY_LOSS_PERCENT', '3.5')
        monkeypatch.setenv('MAX_OPEN_POSITIONS', '2')
        monkeypatch.setenv('TRADING_ENABLED', 'false')
        monkeypatch.setenv('REQUIRE_TAKE_PROFIT', 'true')

        limits = RiskLimits.from_config(Config())

        assert limits.max_daily_loss_percent == 3.5
        assert limits.max_open_positions == 2
        assert limits.trading_enabled is False
        assert limits.require_take_profit is True


# =============================================================
# TEST: Alerts never hold the lock
# =============================================================

class BlockingNotifier(FakeNotifier):
    """Holds the calling thread inside one alert until released."""

    def __init__(self, blocking_method):
        super().__init__()
        self.blocking_method = blocking_method
        self.entered = threading.Event()
        self.release = threading.Event()

    def _block(self, method):
        if method == self.blocking_method:
            self.entered.set()
            self.release.wait(timeout=5)

    def notify_rejection(self, intent, reason):
        super().notify_rejection(intent, reason)
        self._block('notify_rejection')

    def notify_daily_reset(self, previous_stats, account_balance=None):
        super().notify_daily_reset(previous_stats, account_balance)
        self._block('notify_daily_reset')


class TestSlowAlerts:

    def _run_while_alert_blocks(self, notifier, blocked_call, other_calls):
        """Start ``blocked_call`` in a thread, then time ``other_calls`` while its alert is stuck."""
        thread = threading.Thread(target=blocked_call)
        thread.start()
        try:
            assert notifier.entered.wait(timeout=5)
            started = time.monotonic()
            results = other_calls()
            elapsed = time.monotonic() - started
        finally:
            notifier.release.set()
            thread.join(timeout=5)
        return results, elapsed

    def test_rejection_alert_does_not_block_other_orders(self):
        notifier = BlockingNotifier('notify_rejection')
        engine = RiskEngine(limits=RiskLimits(), notifier=notifier, clock=MutableClock(TODAY))

        def other_calls():
            decision = engine.validate_order(buy(symbol='ETHUSDT'), 100000)
            engine.record_trade({'symbol': 'ETHUSDT', 'action': 'BUY', 'quantity': 1, 'price': 100})
            return decision

        decision, elapsed = self._run_while_alert_blocks(
            notifier,
            lambda: engine.validate_order(buy(stop_loss=None), 100000),
            other_calls,
        )

        assert decision.allowed is True
        assert elapsed < 1.0
        assert engine.daily_stats.trade_count == 1
        assert len(notifier.rejections) == 1

    def test_rollover_alert_does_not_block_and_stats_are_saved_first(self):
        clock = MutableClock(TODAY)
        store = FakeStatsStore()
        notifier = BlockingNotifier('notify_daily_reset')
        engine = RiskEngine(limits=RiskLimits(), stats_store=store, notifier=notifier, clock=clock)
        engine.record_trade({'symbol': 'A', 'action': 'BUY', 'quantity': 1, 'price': 10, 'pnl': -50})
        clock.today = TODAY + timedelta(days=1)

        def other_calls():
            # The rollover is already complete while its alert is in flight
            saved_dates = [s[0]['date'] for s in store.saved]
            engine.record_trade({'symbol': 'B', 'action': 'BUY', 'quantity': 1, 'price': 10})
            return saved_dates

        saved_dates, elapsed = self._run_while_alert_blocks(notifier, engine.check_daily_reset, other_calls)

        assert elapsed < 1.0
        assert saved_dates == ['2025-03-14']
        assert engine.daily_stats.date == '2025-03-15'
        assert engine.daily_stats.trade_count == 1
        assert [s.date for s in notifier.resets] == ['2025-03-14']

    def test_failing_notifier_is_logged(self, caplog):
        caplog.set_level(logging.WARNING, logger='tradeval.risk.risk_engine')

        class BrokenNotifier(FakeNotifier):
            def notify_kill_switch(self, enabled):
                raise RuntimeError("bot offline")

        engine = RiskEngine(limits=RiskLimits(), notifier=BrokenNotifier(), clock=MutableClock(TODAY))
        engine.set_trading_enabled(False)

        assert engine.is_trading_enabled() is False
        assert "Risk notifier notify_kill_switch failed" in caplog.text
