import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from apps.api.app.core.time import as_utc, utc_now
from apps.api.app.models.trading_account import (
    ACCOUNT_STATUS_ACTIVE,
    ACCOUNT_STATUS_FAILED,
    TradingAccount,
)
from apps.api.app.services.audit import log_drawdown_alert, log_psychology_event
from apps.api.app.services.events import AccountFailed, InactivityWarningRaised
from apps.api.app.services.notifications import NotificationDispatcher
from apps.api.app.services.risk_evaluator import evaluate_inactivity

logger = logging.getLogger("riskdesk.jobs.inactivity_monitor")

INACTIVITY_FAILURE_REASON = "Inactivity breach - no trades within required period"
INACTIVITY_BREACH_ALERT = "inactivity_breach"
INACTIVITY_WARNING_EVENT = "inactivity_warning"


def _warn(
    db: Session,
    dispatcher: NotificationDispatcher,
    account: TradingAccount,
    days_remaining: int,
    now: datetime,
) -> dict:
    dispatcher.publish(
        InactivityWarningRaised(
            user_id=account.user_id,
            account_id=account.id,
            account_name=account.account_name,
            prop_firm=account.prop_firm,
            days_remaining=days_remaining,
            deadline=as_utc(account.inactivity_deadline_at),
        )
    )
    account.last_inactivity_warning_at = now
    db.commit()

    log_psychology_event(
        db,
        user_id=account.user_id,
        account_id=account.id,
        event_type=INACTIVITY_WARNING_EVENT,
        trigger_reason=f"{days_remaining} days until inactivity breach",
        metadata={"days_remaining": days_remaining},
        now=now,
    )
    return {
        "accountId": account.id,
        "accountName": account.account_name,
        "propFirm": account.prop_firm,
        "daysUntilDeadline": days_remaining,
        "userId": account.user_id,
    }


def _fail(
    db: Session,
    dispatcher: NotificationDispatcher,
    account: TradingAccount,
    now: datetime,
) -> None:
    account.status = ACCOUNT_STATUS_FAILED
    account.failure_reason = INACTIVITY_FAILURE_REASON
    db.commit()
    logger.warning("Account %s failed due to inactivity breach", account.id)

    log_drawdown_alert(
        db,
        user_id=account.user_id,
        account_id=account.id,
        alert_type=INACTIVITY_BREACH_ALERT,
        threshold_pct=100.0,
        current_dd_pct=100.0,
        equity_at_alert=account.current_equity,
        signals_paused=True,
        now=now,
    )
    dispatcher.publish(
        AccountFailed(
            user_id=account.user_id,
            account_id=account.id,
            account_name=account.account_name,
            prop_firm=account.prop_firm,
            failure_reason=INACTIVITY_FAILURE_REASON,
            metadata={"deadline": as_utc(account.inactivity_deadline_at).isoformat()},
        )
    )


def run_inactivity_monitor(
    db: Session,
    now: Optional[datetime] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> dict:
    now = now or utc_now()
    dispatcher = dispatcher or NotificationDispatcher(db)

    # failed accounts drop out here, so a breach is only ever recorded once
    accounts = (
        db.execute(
            select(TradingAccount).where(
                TradingAccount.status == ACCOUNT_STATUS_ACTIVE,
                TradingAccount.inactivity_deadline_at.is_not(None),
            )
        )
        .scalars()
        .all()
    )
    logger.info("Checking %d accounts for inactivity", len(accounts))

    warnings = []
    for account in accounts:
        account_id = account.id
        try:
            outcome = evaluate_inactivity(account, now)
            if outcome is None:
                continue
            if outcome.action == "fail":
                _fail(db, dispatcher, account, now)
            else:
                warnings.append(_warn(db, dispatcher, account, outcome.days_remaining, now))
        except Exception:
            db.rollback()
            logger.exception("Inactivity check failed for account %s", account_id)

    result = {
        "success": True,
        "accountsChecked": len(accounts),
        "warningsSent": len(warnings),
        "warnings": warnings,
    }
    logger.info("Inactivity monitor complete: %d warnings sent", len(warnings))
    return result
