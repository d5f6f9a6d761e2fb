import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from apps.api.app.core.time import as_utc, utc_now
from apps.api.app.models.trading_account import TradingAccount
from apps.api.app.services.audit import log_breaker_event
from apps.api.app.services.events import LockApplied, LockReleased
from apps.api.app.services.risk_evaluator import BREAKER_TYPES, is_locked

logger = logging.getLogger("riskdesk.locks")


class LockConflictError(Exception):
    """The account row changed between read and write."""

    def __init__(self, account_id: str, expected_version: int):
        super().__init__(
            f"Account {account_id} was modified concurrently (expected version {expected_version})"
        )
        self.account_id = account_id
        self.expected_version = expected_version


def _conditional_update(db: Session, account: TradingAccount, expected_version: int, values: dict):
    result = db.execute(
        update(TradingAccount)
        .where(
            TradingAccount.id == account.id,
            TradingAccount.version == expected_version,
        )
        .values(version=expected_version + 1, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise LockConflictError(account.id, expected_version)
    db.commit()
    db.refresh(account)


def lock(
    db: Session,
    account: TradingAccount,
    *,
    until: datetime,
    reason: str,
    breaker_type: str,
    trigger_value: Optional[float] = None,
    threshold_value: Optional[float] = None,
    expected_version: Optional[int] = None,
    now: Optional[datetime] = None,
) -> LockApplied:
    if breaker_type not in BREAKER_TYPES:
        raise ValueError(f"Unknown breaker type: {breaker_type}")
    now = now or utc_now()
    expected = account.version if expected_version is None else expected_version

    # Re-locking never shortens an active lock and never adds durations up.
    effective_until = as_utc(until)
    current_until = as_utc(account.trading_locked_until)
    if is_locked(current_until, now) and current_until > effective_until:
        effective_until = current_until

    _conditional_update(
        db,
        account,
        expected,
        {
            "trading_locked_until": effective_until,
            "lock_reason": reason,
            "breaker_type": breaker_type,
        },
    )
    logger.info(
        "Locked account %s (%s) until %s: %s",
        account.id,
        breaker_type,
        effective_until.isoformat(),
        reason,
    )

    log_breaker_event(
        db,
        user_id=account.user_id,
        account_id=account.id,
        action="lock",
        breaker_type=breaker_type,
        reason=reason,
        locked_until=effective_until,
        trigger_value=trigger_value,
        threshold_value=threshold_value,
        now=now,
    )
    return LockApplied(
        user_id=account.user_id,
        account_id=account.id,
        account_name=account.account_name,
        breaker_type=breaker_type,
        reason=reason,
        locked_until=effective_until,
    )


def unlock(
    db: Session,
    account: TradingAccount,
    *,
    released_by: str = "owner",
    expected_version: Optional[int] = None,
    now: Optional[datetime] = None,
) -> LockReleased:
    expected = account.version if expected_version is None else expected_version
    previous_type = account.breaker_type

    _conditional_update(
        db,
        account,
        expected,
        {
            "trading_locked_until": None,
            "lock_reason": None,
            "breaker_type": None,
        },
    )
    logger.info("Unlocked account %s (%s)", account.id, released_by)

    log_breaker_event(
        db,
        user_id=account.user_id,
        account_id=account.id,
        action="unlock",
        breaker_type=previous_type,
        reason=f"Released by {released_by}",
        now=now,
    )
    return LockReleased(
        user_id=account.user_id,
        account_id=account.id,
        account_name=account.account_name,
        released_by=released_by,
    )


def lock_state(account: TradingAccount, now: Optional[datetime] = None) -> dict:
    """Read-time view of the lock; an expired lock reads as unlocked without a write."""
    now = now or utc_now()
    locked = is_locked(account.trading_locked_until, now)
    return {
        "account_id": account.id,
        "is_locked": locked,
        "locked_until": as_utc(account.trading_locked_until) if locked else None,
        "lock_reason": account.lock_reason if locked else None,
        "breaker_type": (account.breaker_type or "manual") if locked else None,
        "version": account.version,
    }
