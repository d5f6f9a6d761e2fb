import logging

import requests

from apps.api.app.core.config import settings

logger = logging.getLogger("riskdesk.email")

RESEND_API_URL = "https://api.resend.com/emails"


def send_email(to: str, subject: str, html: str) -> bool:
    if not settings.RESEND_API_KEY:
        logger.info("RESEND_API_KEY not configured, skipping email to %s: %s", to, subject)
        return False
    try:
        resp = requests.post(
            RESEND_API_URL,
            headers={"Authorization": f"Bearer {settings.RESEND_API_KEY}"},
            json={
                "from": settings.EMAIL_FROM,
                "to": [to],
                "subject": subject,
                "html": html,
            },
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
    except requests.RequestException as exc:
        logger.warning("Email to %s failed: %s", to, exc)
        return False
    if not resp.ok:
        logger.warning("Email provider rejected message to %s: %s %s", to, resp.status_code, resp.text)
        return False
    return True
