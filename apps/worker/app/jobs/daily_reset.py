import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from apps.api.app.core.config import settings
from apps.api.app.core.time import trading_day, utc_now
from apps.api.app.models.drawdown_alert import DrawdownAlert
from apps.api.app.models.risk_validation_log import RiskValidationLog
from apps.api.app.models.trading_account import ACCOUNT_STATUS_ACTIVE, TradingAccount
from apps.api.app.services.daily_stats import get_daily_stats, roll_daily_fields, upsert_daily_stats_seed

logger = logging.getLogger("riskdesk.jobs.daily_reset")

MONDAY = 0


def next_risk_multiplier(week: int, current: float) -> float:
    """Scaling plan: 0.5 in week 1, 0.75 in week 2, full risk from week 3."""
    multiplier = current
    if week == 2:
        multiplier = 0.75
    elif week >= 3:
        multiplier = 1.0
    return min(multiplier, 1.0)


def _finalize_day(account: TradingAccount, stats, now: datetime) -> None:
    total_profit = float(account.current_profit or 0.0)
    stats.ending_equity = account.current_equity
    stats.is_profitable = stats.daily_pnl > 0
    stats.contributed_pct_of_total = (
        stats.daily_pnl / total_profit * 100.0 if total_profit > 0 else 0.0
    )
    stats.is_trading_day = stats.trades_taken > 0
    stats.finalized_at = now
    if stats.trades_taken > 0:
        account.days_traded = int(account.days_traded or 0) + 1


def _reset_account(db: Session, account: TradingAccount, now: datetime) -> tuple[bool, bool]:
    """Returns (stats row created, scaling advanced)."""
    today = trading_day(now, settings.TRADING_DAY_ROLLOVER_HOUR_UTC)
    yesterday = today - timedelta(days=1)

    yesterday_stats = get_daily_stats(db, account, yesterday)
    # finalized_at guards days_traded against a second run on the same day
    if yesterday_stats is not None and yesterday_stats.finalized_at is None:
        _finalize_day(account, yesterday_stats, now)

    created = get_daily_stats(db, account, today) is None
    upsert_daily_stats_seed(db, account, today)

    if account.last_daily_reset_on is None or account.last_daily_reset_on < today:
        roll_daily_fields(account, today)

    scaled = False
    # settlement may roll the day first, so scaling keeps its own marker
    if today.weekday() == MONDAY and account.last_scaled_on != today:
        account.scaling_week = int(account.scaling_week or 1) + 1
        account.current_risk_multiplier = next_risk_multiplier(
            account.scaling_week,
            float(account.current_risk_multiplier or 0.5),
        )
        account.last_scaled_on = today
        scaled = True

    db.commit()
    return created, scaled


def prune_audit_logs(db: Session, now: datetime) -> dict:
    validation_cutoff = now - timedelta(days=max(1, int(settings.RISK_VALIDATION_LOG_RETENTION_DAYS)))
    alert_cutoff = now - timedelta(days=max(1, int(settings.DRAWDOWN_ALERT_RETENTION_DAYS)))

    validations = db.execute(
        delete(RiskValidationLog).where(RiskValidationLog.created_at < validation_cutoff)
        .execution_options(synchronize_session=False)
    )
    alerts = db.execute(
        delete(DrawdownAlert).where(DrawdownAlert.created_at < alert_cutoff)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return {
        "risk_validation_logs": int(validations.rowcount or 0),
        "drawdown_alerts": int(alerts.rowcount or 0),
    }


def run_daily_reset(db: Session, now: Optional[datetime] = None) -> dict:
    now = now or utc_now()
    today = trading_day(now, settings.TRADING_DAY_ROLLOVER_HOUR_UTC)
    logger.info("Starting daily equity reset for trading day %s", today.isoformat())

    accounts = (
        db.execute(
            select(TradingAccount).where(TradingAccount.status == ACCOUNT_STATUS_ACTIVE)
        )
        .scalars()
        .all()
    )

    processed = 0
    daily_stats_created = 0
    scaling_updates = 0
    for account in accounts:
        account_id = account.id
        try:
            created, scaled = _reset_account(db, account, now)
        except Exception:
            db.rollback()
            logger.exception("Daily reset failed for account %s", account_id)
            continue
        processed += 1
        daily_stats_created += int(created)
        scaling_updates += int(scaled)

    try:
        pruned = prune_audit_logs(db, now)
        logger.info("Pruned audit logs: %s", pruned)
    except Exception:
        db.rollback()
        logger.exception("Audit log pruning failed")

    result = {
        "processed": processed,
        "dailyStatsCreated": daily_stats_created,
        "scalingUpdates": scaling_updates,
        "date": today.isoformat(),
    }
    logger.info("Daily reset complete: %s", result)
    return result
