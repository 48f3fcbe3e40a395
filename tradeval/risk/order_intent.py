# -*- coding: utf-8 -*-
"""
Turn a raw order request into an OrderIntent and gate it through the engine.

Missing protective levels get server-side defaults: a 2% stop and a 2%
target on the correct side of the price.
"""

import logging
import math
from typing import Any, Mapping, Optional, Tuple

from tradeval.risk.risk_engine import OrderIntent, RiskDecision, RiskEngine


logger = logging.getLogger(__name__)

DEFAULT_STOP_LOSS_PCT = 0.02
DEFAULT_TAKE_PROFIT_PCT = 0.02
DEFAULT_QUANTITY_BALANCE_PCT = 0.01


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == '':
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return number


def _first(body: Mapping[str, Any], *keys: str) -> Optional[float]:
    for key in keys:
        value = _to_float(body.get(key))
        if value:
            return value
    return None


def extract_order_intent(body: Mapping[str, Any], account_balance: float = 100000.0) -> OrderIntent:
    """
    Build an OrderIntent from a request body.

    Accepts both ``stop_loss``/``take_profit`` and ``stopLoss``/``takeProfit``
    keys.

    Parameters
    ----------
    body : mapping
        Raw order fields (symbol, action, price, quantity, ...)
    account_balance : float, default 100000.0
        Used for the default quantity: ``floor(balance * 1% / price)``

    Returns
    -------
    OrderIntent
    """
    price = _to_float(body.get('price')) or 0.0
    action = (body.get('action') or '').upper()

    quantity = _to_float(body.get('quantity'))
    if not quantity:
        quantity = float(math.floor(account_balance * DEFAULT_QUANTITY_BALANCE_PCT / price)) if price > 0 else 0.0

    stop_loss = _first(body, 'stop_loss', 'stopLoss')
    take_profit = _first(body, 'take_profit', 'takeProfit')

    if stop_loss is None:
        if action == 'BUY':
            stop_loss = price * (1 - DEFAULT_STOP_LOSS_PCT)
        elif action == 'SELL':
            stop_loss = price * (1 + DEFAULT_STOP_LOSS_PCT)

    if take_profit is None:
        if action == 'BUY':
            take_profit = price * (1 + DEFAULT_TAKE_PROFIT_PCT)
        elif action == 'SELL':
            take_profit = price * (1 - DEFAULT_TAKE_PROFIT_PCT)

    return OrderIntent(
        symbol=body.get('symbol'),
        action=action,
        quantity=quantity,
        price=price,
        stop_loss=stop_loss,
        take_profit=take_profit,
        confidence=_to_float(body.get('confidence')),
    )


def check_order(engine: RiskEngine, body: Mapping[str, Any],
                account_balance: float = 100000.0) -> Tuple[OrderIntent, RiskDecision]:
    """Extract the intent from ``body`` and validate it."""
    intent = extract_order_intent(body, account_balance)
    decision = engine.validate_order(intent, account_balance)
    if decision.allowed:
        logger.debug(f"Risk check passed for {intent.action} {intent.symbol}")
    return intent, decision
