"""Telegram notifications. Never log token or chat_id."""

from __future__ import annotations
import logging

import requests

logger = logging.getLogger("ladder_engine.utils.telegram")


def send_telegram(text: str, bot_token: str = "", chat_id: str = "") -> bool:
    """Send message to Telegram. Returns True on success. Skips when not configured."""
    if not bot_token or not chat_id:
        logger.debug("Telegram not configured, skipping message (len=%d)", len(text))
        return False
    try:
        url = f"https://api.telegram.org/bot{bot_token}/sendMessage"
        payload = {"chat_id": chat_id, "text": text}
        r = requests.post(url, json=payload, timeout=10)
        if r.status_code != 200:
            logger.warning("Telegram send failed: %s %s", r.status_code, r.text[:200])
            return False
        return True
    except requests.RequestException as e:
        logger.warning("Telegram error: %s", e)
        return False


def bill_due_message(amount: float, due: str) -> str:
    """Payment reminder for a newly created bill."""
    return f"New bill: commission due {amount:.2f} USDT, please pay before {due}."
