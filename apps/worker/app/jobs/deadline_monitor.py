import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from apps.api.app.core.time import as_utc, utc_now
from apps.api.app.models.psychology_log import PsychologyLog
from apps.api.app.models.trading_account import (
    ACCOUNT_STATUS_ACTIVE,
    CHALLENGE_ACCOUNT_TYPES,
    TradingAccount,
)
from apps.api.app.services.audit import log_psychology_event
from apps.api.app.services.events import DeadlineWarningRaised
from apps.api.app.services.notifications import NotificationDispatcher
from apps.api.app.services.risk_evaluator import evaluate_challenge_deadline

logger = logging.getLogger("riskdesk.jobs.deadline_monitor")

DEADLINE_WARNING_EVENT = "deadline_warning"


def _trigger_reason(days_remaining: int) -> str:
    return f"{days_remaining} days remaining"


def _already_warned_today(db: Session, account_id: str, days_remaining: int, now: datetime) -> bool:
    day_start = as_utc(now).replace(hour=0, minute=0, second=0, microsecond=0)
    count = db.execute(
        select(func.count(PsychologyLog.id)).where(
            PsychologyLog.account_id == account_id,
            PsychologyLog.event_type == DEADLINE_WARNING_EVENT,
            PsychologyLog.trigger_reason == _trigger_reason(days_remaining),
            PsychologyLog.created_at >= day_start,
            PsychologyLog.created_at < day_start + timedelta(days=1),
        )
    ).scalar_one()
    return count > 0


def run_deadline_monitor(
    db: Session,
    now: Optional[datetime] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> dict:
    now = now or utc_now()
    dispatcher = dispatcher or NotificationDispatcher(db)

    accounts = (
        db.execute(
            select(TradingAccount).where(
                TradingAccount.status == ACCOUNT_STATUS_ACTIVE,
                TradingAccount.challenge_deadline.is_not(None),
                TradingAccount.account_type.in_(CHALLENGE_ACCOUNT_TYPES),
            )
        )
        .scalars()
        .all()
    )
    logger.info("Checking %d challenge accounts for deadline warnings", len(accounts))

    alerts_sent = 0
    notifications_sent = 0
    push_notifications_sent = 0
    for account in accounts:
        account_id = account.id
        try:
            warning = evaluate_challenge_deadline(account, now)
            if warning is None:
                continue
            if _already_warned_today(db, account_id, warning.days_remaining, now):
                logger.debug("Deadline warning already sent today for account %s", account_id)
                continue

            delivery = dispatcher.publish(
                DeadlineWarningRaised(
                    user_id=account.user_id,
                    account_id=account_id,
                    account_name=account.account_name,
                    prop_firm=account.prop_firm,
                    days_remaining=warning.days_remaining,
                    required_daily=warning.required_daily,
                    profit_progress_pct=warning.profit_progress_pct,
                )
            )
            alerts_sent += 1
            notifications_sent += int(delivery.in_app)
            push_notifications_sent += int(delivery.push > 0)

            log_psychology_event(
                db,
                user_id=account.user_id,
                account_id=account_id,
                event_type=DEADLINE_WARNING_EVENT,
                trigger_reason=_trigger_reason(warning.days_remaining),
                metadata={
                    "days_remaining": warning.days_remaining,
                    "required_daily": warning.required_daily,
                    "profit_progress": warning.profit_progress_pct,
                },
                now=now,
            )
        except Exception:
            db.rollback()
            logger.exception("Deadline check failed for account %s", account_id)

    result = {
        "success": True,
        "accountsChecked": len(accounts),
        "alertsSent": alerts_sent,
        "notificationsSent": notifications_sent,
        "pushNotificationsSent": push_notifications_sent,
    }
    logger.info("Deadline monitor complete: %s", result)
    return result
