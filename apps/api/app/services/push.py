import json
import logging
from typing import Any, Optional

import requests
from pywebpush import WebPushException, webpush
from sqlalchemy import select
from sqlalchemy.orm import Session

from apps.api.app.core.config import settings
from apps.api.app.models.push_subscription import PushSubscription
from apps.api.app.services.crypto import decrypt_secret, encrypt_secret

logger = logging.getLogger("riskdesk.push")

# Provider answers meaning the browser subscription no longer exists.
DEAD_SUBSCRIPTION_STATUSES = {404, 410}
DEFAULT_TTL_SECONDS = 24 * 60 * 60


def upsert_subscription(
    db: Session,
    *,
    user_id: str,
    endpoint: str,
    p256dh: str,
    auth: str,
) -> PushSubscription:
    row = db.execute(
        select(PushSubscription).where(
            PushSubscription.user_id == user_id,
            PushSubscription.endpoint == endpoint,
        )
    ).scalar_one_or_none()
    if row is None:
        row = PushSubscription(user_id=user_id, endpoint=endpoint)
        db.add(row)
    row.p256dh = p256dh
    row.auth_encrypted = encrypt_secret(auth)
    db.commit()
    db.refresh(row)
    return row


def delete_subscription(db: Session, *, user_id: str, endpoint: str) -> bool:
    row = db.execute(
        select(PushSubscription).where(
            PushSubscription.user_id == user_id,
            PushSubscription.endpoint == endpoint,
        )
    ).scalar_one_or_none()
    if row is None:
        return False
    db.delete(row)
    db.commit()
    return True


def _drop_dead_subscription(db: Session, row: PushSubscription, status_code: int) -> None:
    logger.info(
        "Push subscription %s for user %s expired (%s); removing",
        row.id,
        row.user_id,
        status_code,
    )
    try:
        db.delete(row)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Failed to remove expired push subscription %s", row.id)


def _send_web_push(row: PushSubscription, auth: str, payload: dict, urgency: str):
    return webpush(
        subscription_info={
            "endpoint": row.endpoint,
            "keys": {"p256dh": row.p256dh, "auth": auth},
        },
        data=json.dumps(payload),
        vapid_private_key=settings.VAPID_PRIVATE_KEY,
        # webpush fills in aud and exp on the dict it is given
        vapid_claims={"sub": settings.VAPID_CLAIMS_SUB},
        ttl=DEFAULT_TTL_SECONDS,
        headers={"Urgency": urgency},
        timeout=settings.HTTP_TIMEOUT_SECONDS,
    )


def send_push_to_user(
    db: Session,
    user_id: str,
    *,
    title: str,
    body: str,
    tag: Optional[str] = None,
    url: Optional[str] = None,
    data: Optional[dict[str, Any]] = None,
    urgency: str = "normal",
) -> int:
    """
    Deliver one notification to every subscription of the user through the
    push service. Returns how many deliveries were accepted; never raises.
    """
    if not settings.VAPID_PRIVATE_KEY:
        logger.debug("VAPID_PRIVATE_KEY not configured, skipping push for user %s", user_id)
        return 0

    subscriptions = (
        db.execute(select(PushSubscription).where(PushSubscription.user_id == user_id))
        .scalars()
        .all()
    )
    payload = {
        "title": title,
        "body": body,
        "icon": "/favicon.png",
        "tag": tag or "traderedge-notification",
        "data": {**(data or {}), "url": url or (data or {}).get("url") or "/dashboard"},
    }

    delivered = 0
    for row in subscriptions:
        auth = decrypt_secret(row.auth_encrypted)
        if auth is None:
            logger.warning("Push subscription %s has an unreadable auth secret; skipping", row.id)
            continue
        try:
            _send_web_push(row, auth, payload, urgency)
        except WebPushException as exc:
            status_code = getattr(exc.response, "status_code", None)
            if status_code in DEAD_SUBSCRIPTION_STATUSES:
                _drop_dead_subscription(db, row, status_code)
            else:
                logger.warning("Push provider error %s for subscription %s: %s", status_code, row.id, exc)
            continue
        except requests.RequestException as exc:
            logger.warning("Push delivery failed for subscription %s: %s", row.id, exc)
            continue
        delivered += 1
    return delivered
