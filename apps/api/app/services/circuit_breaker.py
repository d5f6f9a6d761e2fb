import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from apps.api.app.core.config import settings
from apps.api.app.core.time import trading_day_start, utc_now
from apps.api.app.models.drawdown_alert import DrawdownAlert
from apps.api.app.models.risk_validation_log import RiskValidationLog
from apps.api.app.models.trading_account import TradingAccount
from apps.api.app.services import lock_controller
from apps.api.app.services.audit import log_drawdown_alert
from apps.api.app.services.events import DailyLossWarning
from apps.api.app.services.notifications import NotificationDispatcher
from apps.api.app.services.risk_evaluator import (
    Lock,
    Warn,
    daily_loss_pct,
    daily_profit_pct,
    evaluate_account,
    evaluate_session_hours,
    is_locked,
    resolve_personal_limit_pct,
)

logger = logging.getLogger("riskdesk.circuit_breaker")

DAILY_LOSS_WARNING_ALERT = "daily_loss_warning"


def _already_alerted_today(db: Session, account_id: str, alert_type: str, now: datetime) -> bool:
    day_start = trading_day_start(now, settings.TRADING_DAY_ROLLOVER_HOUR_UTC)
    count = db.execute(
        select(func.count(DrawdownAlert.id)).where(
            DrawdownAlert.account_id == account_id,
            DrawdownAlert.alert_type == alert_type,
            DrawdownAlert.created_at >= day_start,
            DrawdownAlert.created_at < day_start + timedelta(days=1),
        )
    ).scalar_one()
    return count > 0


def _record_validation(db: Session, account: TradingAccount, result: dict, now: datetime) -> None:
    try:
        db.add(
            RiskValidationLog(
                user_id=account.user_id,
                account_id=account.id,
                is_locked=result["is_locked"],
                breaker_type=result["breaker_type"],
                daily_loss_pct=result["daily_loss_pct"],
                personal_limit_pct=result["personal_limit_pct"],
                daily_profit_pct=result["daily_profit_pct"],
                created_at=now,
            )
        )
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Failed to record risk validation for account %s", account.id)


def check_circuit_breaker(
    db: Session,
    account: TradingAccount,
    *,
    check_only: bool = False,
    now: Optional[datetime] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> dict:
    """
    Evaluate the daily breakers for one account. With check_only the verdict
    is reported but nothing is written.
    """
    now = now or utc_now()
    dispatcher = dispatcher or NotificationDispatcher(db)

    result = {
        "is_locked": False,
        "lock_reason": None,
        "locked_until": None,
        "breaker_type": None,
        "daily_loss_pct": daily_loss_pct(account),
        "personal_limit_pct": resolve_personal_limit_pct(account),
        "daily_profit_pct": daily_profit_pct(account),
        "profit_target": account.daily_profit_target,
    }

    if is_locked(account.trading_locked_until, now):
        state = lock_controller.lock_state(account, now)
        result.update(
            is_locked=True,
            lock_reason=state["lock_reason"],
            locked_until=state["locked_until"],
            breaker_type=state["breaker_type"],
        )
        return result

    decision = evaluate_account(account, now)
    if isinstance(decision, Lock):
        result.update(
            is_locked=True,
            lock_reason=decision.reason,
            locked_until=decision.until,
            breaker_type=decision.breaker_type,
        )
        if not check_only:
            event = lock_controller.lock(
                db,
                account,
                until=decision.until,
                reason=decision.reason,
                breaker_type=decision.breaker_type,
                trigger_value=decision.trigger_value,
                threshold_value=decision.threshold_value,
                now=now,
            )
            result["locked_until"] = event.locked_until
            dispatcher.publish(event)
    elif isinstance(decision, Warn) and not check_only:
        if not _already_alerted_today(db, account.id, DAILY_LOSS_WARNING_ALERT, now):
            log_drawdown_alert(
                db,
                user_id=account.user_id,
                account_id=account.id,
                alert_type=DAILY_LOSS_WARNING_ALERT,
                threshold_pct=result["personal_limit_pct"],
                current_dd_pct=result["daily_loss_pct"],
                equity_at_alert=account.current_equity,
                now=now,
            )
            dispatcher.publish(
                DailyLossWarning(
                    user_id=account.user_id,
                    account_id=account.id,
                    account_name=account.account_name,
                    usage_pct=decision.usage_pct,
                    message=decision.message,
                )
            )

    if not result["is_locked"]:
        session = evaluate_session_hours(account, now)
        if isinstance(session, Lock):
            result.update(
                is_locked=True,
                lock_reason=session.reason,
                breaker_type=session.breaker_type,
            )

    if not check_only:
        _record_validation(db, account, result, now)
    return result
