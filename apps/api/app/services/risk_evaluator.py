"""Pure risk rules for prop accounts.

Nothing here touches the database or the network: every function takes an
account snapshot (any object with the TradingAccount attributes) plus the
current time, and returns a decision the lock controller or a scheduled job
can apply.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Union

from apps.api.app.core.config import settings
from apps.api.app.core.time import (
    as_utc,
    days_remaining,
    next_trading_day_rollover,
    parse_hhmm,
    same_utc_day,
    trading_day,
)

BREAKER_DAILY_LOSS = "daily_loss"
BREAKER_PROFIT_LOCK = "profit_lock"
BREAKER_INACTIVITY = "inactivity"
BREAKER_MANUAL = "manual"
BREAKER_SESSION_TIME = "session_time"

BREAKER_TYPES = {
    BREAKER_DAILY_LOSS,
    BREAKER_PROFIT_LOCK,
    BREAKER_INACTIVITY,
    BREAKER_MANUAL,
}

WARN_NEAR_LIMIT = "near_limit"

KILL_SWITCH_DURATIONS: dict[str, Optional[timedelta]] = {
    "30m": timedelta(minutes=30),
    "1h": timedelta(hours=1),
    "2h": timedelta(hours=2),
    "eod": None,  # rest of the trading day
}


@dataclass(frozen=True)
class NoAction:
    pass


@dataclass(frozen=True)
class Warn:
    level: str
    usage_pct: float
    message: str


@dataclass(frozen=True)
class Lock:
    breaker_type: str
    until: Optional[datetime]
    reason: str
    trigger_value: float = 0.0
    threshold_value: float = 0.0


Decision = Union[NoAction, Warn, Lock]

NO_ACTION = NoAction()


@dataclass(frozen=True)
class DeadlineWarning:
    days_remaining: int
    required_daily: float
    profit_progress_pct: float

    @property
    def alert_type(self) -> str:
        return f"{self.days_remaining}_day_warning"


@dataclass(frozen=True)
class InactivityOutcome:
    action: str  # warn / fail
    days_remaining: int


def is_locked(locked_until: Optional[datetime], now: datetime) -> bool:
    """The single definition of "trading is locked"; expiry is implicit."""
    if locked_until is None:
        return False
    return as_utc(locked_until) > as_utc(now)


def _rollover_hour(rollover_hour: Optional[int]) -> int:
    return int(settings.TRADING_DAY_ROLLOVER_HOUR_UTC if rollover_hour is None else rollover_hour)


def _rollover(now: datetime, rollover_hour: Optional[int]) -> datetime:
    return next_trading_day_rollover(now, _rollover_hour(rollover_hour))


def current_trading_day(now: datetime, rollover_hour: Optional[int] = None):
    return trading_day(now, _rollover_hour(rollover_hour))


def daily_fields_current(account, now: datetime, rollover_hour: Optional[int] = None) -> bool:
    """
    False once the trading day has rolled over but the daily reset has not run
    yet: the loss and pnl figures then still describe the previous day.
    """
    reset_on = account.last_daily_reset_on
    return reset_on is None or reset_on >= current_trading_day(now, rollover_hour)


def daily_drawdown_used_pct(daily_starting_equity: float, current_equity: float) -> float:
    start = float(daily_starting_equity or 0.0)
    if start <= 0:
        return 0.0
    return max(0.0, (start - float(current_equity or 0.0)) / start * 100.0)


def daily_loss_pct(account) -> float:
    start = float(account.daily_starting_equity or 0.0)
    if start <= 0:
        return 0.0
    pnl_loss = abs(min(0.0, float(account.daily_pnl or 0.0)))
    equity_loss = start - float(account.current_equity or 0.0)
    return max(0.0, pnl_loss, equity_loss) / start * 100.0


def daily_profit_pct(account) -> float:
    start = float(account.daily_starting_equity or 0.0)
    if start <= 0:
        return 0.0
    return max(0.0, float(account.daily_pnl or 0.0)) / start * 100.0


def resolve_personal_limit_pct(account) -> float:
    # Unset means the platform default; an explicit zero or negative value
    # means no personal limit at all.
    value = account.personal_daily_loss_limit_pct
    if value is None:
        return float(settings.DEFAULT_PERSONAL_DAILY_LOSS_LIMIT_PCT)
    return float(value)


def limit_usage_pct(loss_pct: float, limit_pct: float) -> float:
    if limit_pct <= 0:
        return 0.0
    return min(100.0, max(0.0, loss_pct / limit_pct * 100.0))


def evaluate_daily_loss(
    account,
    now: datetime,
    *,
    rollover_hour: Optional[int] = None,
) -> Decision:
    if not daily_fields_current(account, now, rollover_hour):
        return NO_ACTION
    limit_pct = resolve_personal_limit_pct(account)
    if limit_pct <= 0 or float(account.daily_starting_equity or 0.0) <= 0:
        return NO_ACTION

    loss_pct = daily_loss_pct(account)
    usage = loss_pct / limit_pct * 100.0
    if usage >= 100.0:
        return Lock(
            breaker_type=BREAKER_DAILY_LOSS,
            until=_rollover(now, rollover_hour),
            reason=f"Daily loss limit hit: {loss_pct:.2f}% loss (limit: {limit_pct:g}%)",
            trigger_value=loss_pct,
            threshold_value=limit_pct,
        )
    if usage >= float(settings.DAILY_LOSS_WARNING_USAGE_PCT):
        return Warn(
            level=WARN_NEAR_LIMIT,
            usage_pct=limit_usage_pct(loss_pct, limit_pct),
            message=f"Daily loss at {loss_pct:.2f}% of a {limit_pct:g}% limit",
        )
    return NO_ACTION


def evaluate_profit_lock(
    account,
    now: datetime,
    *,
    rollover_hour: Optional[int] = None,
) -> Decision:
    target = float(account.daily_profit_target or 0.0)
    if not account.lock_after_target or target <= 0:
        return NO_ACTION
    if not daily_fields_current(account, now, rollover_hour):
        return NO_ACTION

    profit = max(0.0, float(account.daily_pnl or 0.0))
    if profit < target:
        return NO_ACTION
    return Lock(
        breaker_type=BREAKER_PROFIT_LOCK,
        until=_rollover(now, rollover_hour),
        reason=f"Daily profit target reached: ${profit:.2f} (target: ${target:g})",
        trigger_value=profit,
        threshold_value=target,
    )


def evaluate_session_hours(account, now: datetime) -> Decision:
    """Outside the allowed window reports a lock with no expiry; never persisted."""
    start = parse_hhmm(account.allowed_trading_hours_start)
    end = parse_hhmm(account.allowed_trading_hours_end)
    if start is None or end is None:
        return NO_ACTION

    now = as_utc(now)
    current = now.hour * 60 + now.minute
    if start <= end:
        inside = start <= current <= end
    else:
        # overnight session
        inside = current >= start or current <= end
    if inside:
        return NO_ACTION
    return Lock(
        breaker_type=BREAKER_SESSION_TIME,
        until=None,
        reason=(
            "Outside trading hours. Allowed: "
            f"{account.allowed_trading_hours_start} - {account.allowed_trading_hours_end} UTC"
        ),
    )


def evaluate_account(
    account,
    now: datetime,
    *,
    rollover_hour: Optional[int] = None,
) -> Decision:
    loss = evaluate_daily_loss(account, now, rollover_hour=rollover_hour)
    if isinstance(loss, Lock):
        return loss
    profit = evaluate_profit_lock(account, now, rollover_hour=rollover_hour)
    if isinstance(profit, Lock):
        return profit
    return loss


def evaluate_challenge_deadline(
    account,
    now: datetime,
    warning_days: Optional[set[int]] = None,
) -> Optional[DeadlineWarning]:
    if account.challenge_deadline is None:
        return None
    boundaries = settings.deadline_warning_days if warning_days is None else warning_days

    remaining = days_remaining(account.challenge_deadline, now)
    if remaining <= 0 or remaining not in boundaries:
        return None

    target = float(account.profit_target or 0.0)
    profit = float(account.current_equity or 0.0) - float(account.starting_balance or 0.0)
    progress = profit / target * 100.0 if target > 0 else 0.0
    return DeadlineWarning(
        days_remaining=remaining,
        required_daily=max(0.0, target - profit) / remaining,
        profit_progress_pct=round(progress, 1),
    )


def evaluate_inactivity(
    account,
    now: datetime,
    warning_days: Optional[set[int]] = None,
) -> Optional[InactivityOutcome]:
    deadline = account.inactivity_deadline_at
    if deadline is None:
        return None
    boundaries = settings.deadline_warning_days if warning_days is None else warning_days

    remaining = days_remaining(deadline, now)
    if as_utc(now) > as_utc(deadline):
        return InactivityOutcome(action="fail", days_remaining=remaining)
    if remaining in boundaries and not same_utc_day(account.last_inactivity_warning_at, now):
        return InactivityOutcome(action="warn", days_remaining=remaining)
    return None


def manual_lock_until(
    duration: str,
    now: datetime,
    *,
    rollover_hour: Optional[int] = None,
) -> datetime:
    if duration not in KILL_SWITCH_DURATIONS:
        raise ValueError(f"Unknown kill switch duration: {duration}")
    delta = KILL_SWITCH_DURATIONS[duration]
    if delta is None:
        return _rollover(now, rollover_hour)
    return as_utc(now) + delta
