# -*- coding: utf-8 -*-
"""
Telegram alerts for risk events.

Sending never raises: a failed or unconfigured send is logged and reported
as False, so alerting can never block the order path.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

import requests

from tradeval.config import Config


logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org/bot{token}/sendMessage"


def send_telegram_message(message: str, bot_token: Optional[str] = None,
                          chat_id: Optional[str] = None, timeout: float = 10) -> bool:
    """
    Send a message to Telegram.

    Parameters
    ----------
    message : str
        Message to send (HTML parse mode)
    bot_token : str, optional
        Telegram bot token. If not provided, will use Config.
    chat_id : str, optional
        Telegram chat ID. If not provided, will use Config.
    timeout : float, default 10
        Request timeout in seconds

    Returns
    -------
    bool
        True if message was sent successfully, False otherwise
    """
    if bot_token is None or chat_id is None:
        config = Config()
        bot_token = bot_token or config.telegram_bot_token
        chat_id = chat_id or config.telegram_chat_id

    if not bot_token or not chat_id:
        logger.debug("Telegram bot token or chat ID not configured. Skipping notification.")
        return False

    bot_token = bot_token.strip()
    chat_id = str(chat_id).strip()

    # Token looks like "123456789:ABCdef..."
    if ':' not in bot_token:
        logger.error("Invalid Telegram bot token format. Token should be in format 'number:alphanumeric'")
        return False

    try:
        response = requests.post(
            TELEGRAM_API_URL.format(token=bot_token),
            json={
                "chat_id": chat_id,
                "text": message,
                "parse_mode": "HTML",
            },
            timeout=timeout,
        )

        if response.status_code in (400, 404):
            error_data = response.json() if response.content else {}
            logger.error(
                f"Telegram API {response.status_code}: {error_data.get('description', 'Unknown error')}"
            )
            return False
        if response.status_code == 401:
            logger.error("Telegram API 401 Unauthorized: invalid bot token")
            return False

        response.raise_for_status()
        logger.debug("Telegram message sent")
        return True
    except requests.exceptions.RequestException as e:
        logger.error(f"Telegram network error: {e}")
        return False
    except ValueError as e:
        logger.error(f"Telegram response could not be parsed: {e}")
        return False


def _now() -> str:
    return datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')


def format_risk_alert(symbol: str, action: str, reason: str,
                      quantity: Optional[float] = None, price: Optional[float] = None) -> str:
    """Format an order rejection alert."""
    message = "<b>🚫 Order Rejected</b>\n\n"
    message += f"<b>Symbol:</b> {symbol}\n"
    message += f"<b>Action:</b> {action}\n"
    if quantity is not None:
        message += f"<b>Quantity:</b> {quantity}\n"
    if price is not None:
        message += f"<b>Price:</b> {price:.2f}\n"
    message += f"<b>Reason:</b> {reason}\n"
    message += f"<b>Time:</b> {_now()}"
    return message


def format_daily_summary(date: str, total_pnl: float, trade_count: int,
                         open_positions: int, account_balance: Optional[float] = None) -> str:
    """
    Format the end-of-day risk summary.

    Parameters
    ----------
    date : str
        Trading day (YYYY-MM-DD)
    total_pnl : float
        Realized P&L for the day
    trade_count : int
        Trades recorded that day
    open_positions : int
        Symbols still held at rollover
    account_balance : float or None, optional
        Balance used for the P&L percentage

    Returns
    -------
    str
        Formatted message
    """
    pnl_emoji = "📈" if total_pnl >= 0 else "📉"

    message = f"<b>📅 Daily Risk Summary {date}</b>\n\n"
    if account_balance:
        pnl_pct = total_pnl / account_balance * 100
        message += f"<b>PnL:</b> {pnl_emoji} {total_pnl:+.2f} ({pnl_pct:+.2f}%)\n"
    else:
        message += f"<b>PnL:</b> {pnl_emoji} {total_pnl:+.2f}\n"
    message += f"<b>Trades:</b> {trade_count}\n"
    message += f"<b>Open Positions:</b> {open_positions}\n"
    message += f"<b>Time:</b> {_now()}"
    return message


class TelegramNotifier:
    """Risk engine alert sink backed by the Telegram Bot API."""

    def __init__(self, bot_token: Optional[str] = None, chat_id: Optional[str] = None):
        if bot_token is None or chat_id is None:
            config = Config()
            bot_token = bot_token if bot_token is not None else config.telegram_bot_token
            chat_id = chat_id if chat_id is not None else config.telegram_chat_id
        self.bot_token = bot_token
        self.chat_id = chat_id

    @property
    def configured(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    def send(self, message: str) -> bool:
        if not self.configured:
            logger.debug("Telegram notifier not configured. Skipping notification.")
            return False
        return send_telegram_message(message, self.bot_token, self.chat_id)

    def notify_rejection(self, intent, reason: str) -> bool:
        return self.send(format_risk_alert(
            intent.symbol, intent.action, reason, quantity=intent.quantity, price=intent.price
        ))

    def notify_daily_reset(self, previous_stats, account_balance: Optional[float] = None) -> bool:
        return self.send(format_daily_summary(
            previous_stats.date,
            previous_stats.total_pnl,
            previous_stats.trade_count,
            len(previous_stats.open_positions),
            account_balance,
        ))

    def notify_kill_switch(self, enabled: bool) -> bool:
        if enabled:
            message = "<b>✅ Trading Enabled</b>\n\nKill switch released."
        else:
            message = "<b>🛑 Trading Disabled</b>\n\nKill switch activated. All new orders will be rejected."
        return self.send(f"{message}\n<b>Time:</b> {_now()}")
