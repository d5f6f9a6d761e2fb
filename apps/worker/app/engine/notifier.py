import logging

import requests

from apps.api.app.core.config import settings

logger = logging.getLogger("riskdesk.chat")


def _notify_telegram(text: str) -> bool:
    if not settings.TELEGRAM_BOT_TOKEN or not settings.TELEGRAM_CHAT_ID:
        return False
    url = f"https://api.telegram.org/bot{settings.TELEGRAM_BOT_TOKEN}/sendMessage"
    payload = {
        "chat_id": settings.TELEGRAM_CHAT_ID,
        "text": text,
        "parse_mode": "HTML",
        "disable_web_page_preview": True
    }
    try:
        resp = requests.post(url, json=payload, timeout=settings.HTTP_TIMEOUT_SECONDS)
        resp.raise_for_status()
        return True
    except requests.RequestException as exc:
        logger.warning("Telegram notification failed: %s", exc)
        return False


def _notify_discord(text: str) -> bool:
    if not settings.DISCORD_WEBHOOK_URL:
        return False
    try:
        resp = requests.post(
            settings.DISCORD_WEBHOOK_URL,
            json={"content": text},
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
        resp.raise_for_status()
        return True
    except requests.RequestException as exc:
        logger.warning("Discord notification failed: %s", exc)
        return False


def notify(text: str) -> int:
    """Fan a plain-text alert out to every configured chat channel."""
    sent = 0
    for channel in (_notify_telegram, _notify_discord):
        if channel(text):
            sent += 1
    return sent
