# -*- coding: utf-8 -*-
"""
Alert delivery.
"""

from tradeval.notifications.telegram_notifier import (
    TelegramNotifier,
    format_daily_summary,
    format_risk_alert,
    send_telegram_message,
)

__all__ = [
    'TelegramNotifier',
    'format_daily_summary',
    'format_risk_alert',
    'send_telegram_message',
]
