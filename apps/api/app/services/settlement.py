import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from apps.api.app.core.config import settings
from apps.api.app.core.time import as_utc, trading_day, utc_now
from apps.api.app.models.trading_account import ACCOUNT_STATUS_ACTIVE, TradingAccount
from apps.api.app.services.daily_stats import daily_fields_stale, roll_daily_fields, upsert_daily_stats_seed
from apps.api.app.services.risk_evaluator import daily_drawdown_used_pct

logger = logging.getLogger("riskdesk.settlement")


def assert_account_active(account: TradingAccount):
    # a lock stops new trades, not the settlement of ones already open
    if account.status != ACCOUNT_STATUS_ACTIVE:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Account is {account.status}",
        )


def apply_trade_settlement(
    db: Session,
    account: TradingAccount,
    *,
    pnl: float,
    equity: Optional[float] = None,
    closed_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> TradingAccount:
    """Fold one closed trade into the account and today's stats row."""
    now = now or utc_now()
    assert_account_active(account)
    closed_at = as_utc(closed_at) or as_utc(now)
    pnl = float(pnl)
    day = trading_day(closed_at, settings.TRADING_DAY_ROLLOVER_HOUR_UTC)
    if daily_fields_stale(account, day):
        roll_daily_fields(account, day)
    stats = upsert_daily_stats_seed(db, account, day)

    new_equity = float(equity) if equity is not None else float(account.current_equity or 0.0) + pnl
    account.current_equity = new_equity
    account.highest_equity = max(float(account.highest_equity or 0.0), new_equity)
    account.current_profit = new_equity - float(account.starting_balance or 0.0)
    account.daily_pnl = float(account.daily_pnl or 0.0) + pnl
    account.daily_drawdown_used_pct = daily_drawdown_used_pct(account.daily_starting_equity, new_equity)
    account.last_trade_at = closed_at
    if account.inactivity_rule_days:
        account.inactivity_deadline_at = closed_at + timedelta(days=int(account.inactivity_rule_days))

    stats.trades_taken += 1
    if pnl > 0:
        stats.trades_won += 1
    elif pnl < 0:
        stats.trades_lost += 1
    else:
        stats.trades_breakeven += 1
    stats.daily_pnl += pnl
    if stats.starting_equity > 0:
        stats.daily_pnl_pct = stats.daily_pnl / stats.starting_equity * 100.0
    stats.highest_equity = max(stats.highest_equity, new_equity)
    stats.lowest_equity = min(stats.lowest_equity, new_equity)
    stats.max_daily_dd_reached_pct = max(
        stats.max_daily_dd_reached_pct,
        daily_drawdown_used_pct(stats.starting_equity, new_equity),
    )

    db.commit()
    db.refresh(account)
    logger.info("Settled trade on account %s: pnl=%.2f equity=%.2f", account.id, pnl, new_equity)
    return account
