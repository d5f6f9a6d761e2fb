import datetime as dt

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from apps.api.app.models.daily_stats import DailyStatsRecord
from apps.api.app.models.trading_account import TradingAccount


def get_daily_stats(db: Session, account: TradingAccount, day: dt.date):
    return (
        db.execute(
            select(DailyStatsRecord).where(
                DailyStatsRecord.user_id == account.user_id,
                DailyStatsRecord.account_id == account.id,
                DailyStatsRecord.date == day,
            )
        )
        .scalar_one_or_none()
    )


def _seed_values(account: TradingAccount) -> dict:
    equity = float(account.current_equity or 0.0)
    return {
        "starting_equity": equity,
        "highest_equity": equity,
        "lowest_equity": equity,
        "daily_pnl": 0.0,
        "daily_pnl_pct": 0.0,
        "trades_taken": 0,
        "trades_won": 0,
        "trades_lost": 0,
        "trades_breakeven": 0,
        "max_daily_dd_reached_pct": 0.0,
    }


def upsert_daily_stats_seed(db: Session, account: TradingAccount, day: dt.date) -> DailyStatsRecord:
    """
    Make sure the (user, account, day) row exists, seeded from current equity.
    An existing row keeps the trades already recorded against it.
    """
    row = get_daily_stats(db, account, day)
    if row is not None:
        return row

    row = DailyStatsRecord(
        user_id=account.user_id,
        account_id=account.id,
        date=day,
        **_seed_values(account),
    )
    # a lost insert race rolls back the savepoint only
    try:
        with db.begin_nested():
            db.add(row)
    except IntegrityError:
        existing = get_daily_stats(db, account, day)
        if existing is None:
            raise
        return existing
    return row


def roll_daily_fields(account: TradingAccount, day: dt.date) -> None:
    """Start a new trading day on the account from its current equity."""
    account.daily_starting_equity = account.current_equity
    account.daily_pnl = 0.0
    account.daily_drawdown_used_pct = 0.0
    account.last_daily_reset_on = day


def daily_fields_stale(account: TradingAccount, day: dt.date) -> bool:
    return account.last_daily_reset_on is not None and account.last_daily_reset_on < day
