from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from apps.api.app.api.deps import get_current_user, get_owned_account
from apps.api.app.core.time import utc_now
from apps.api.app.db.session import get_db
from apps.api.app.models.trading_account import TradingAccount
from apps.api.app.models.user import User
from apps.api.app.schemas.account import (
    AccountOut,
    KillSwitchRequest,
    LockStateOut,
    PersonalLimitUpdate,
    SettlementRequest,
    UnlockRequest,
)
from apps.api.app.services import lock_controller
from apps.api.app.services.lock_controller import LockConflictError
from apps.api.app.services.notifications import NotificationDispatcher
from apps.api.app.services.risk_evaluator import BREAKER_MANUAL, manual_lock_until
from apps.api.app.services.settlement import apply_trade_settlement

router = APIRouter(prefix="/accounts", tags=["accounts"])

KILL_SWITCH_REASON = "Manual kill switch activated - Taking a trading break"


def _conflict(exc: LockConflictError):
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@router.get("", response_model=list[AccountOut])
def list_accounts(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return (
        db.execute(
            select(TradingAccount)
            .where(TradingAccount.user_id == current_user.id)
            .order_by(TradingAccount.created_at.asc())
        )
        .scalars()
        .all()
    )


@router.get("/{account_id}/lock-state", response_model=LockStateOut)
def get_lock_state(
    account: TradingAccount = Depends(get_owned_account),
):
    return lock_controller.lock_state(account)


@router.post("/{account_id}/kill-switch", response_model=LockStateOut)
def activate_kill_switch(
    payload: KillSwitchRequest,
    db: Session = Depends(get_db),
    account: TradingAccount = Depends(get_owned_account),
):
    now = utc_now()
    try:
        until = manual_lock_until(payload.duration, now)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    try:
        event = lock_controller.lock(
            db,
            account,
            until=until,
            reason=payload.reason or KILL_SWITCH_REASON,
            breaker_type=BREAKER_MANUAL,
            expected_version=payload.expected_version,
            now=now,
        )
    except LockConflictError as exc:
        _conflict(exc)

    NotificationDispatcher(db).publish(event)
    return lock_controller.lock_state(account, now)


@router.delete("/{account_id}/kill-switch", response_model=LockStateOut)
def release_kill_switch(
    payload: Optional[UnlockRequest] = None,
    db: Session = Depends(get_db),
    account: TradingAccount = Depends(get_owned_account),
):
    now = utc_now()
    expected_version = payload.expected_version if payload else None
    try:
        event = lock_controller.unlock(
            db,
            account,
            released_by="owner",
            expected_version=expected_version,
            now=now,
        )
    except LockConflictError as exc:
        _conflict(exc)

    NotificationDispatcher(db).publish(event)
    return lock_controller.lock_state(account, now)


@router.patch("/{account_id}/personal-limit", response_model=AccountOut)
def update_personal_limit(
    payload: PersonalLimitUpdate,
    db: Session = Depends(get_db),
    account: TradingAccount = Depends(get_owned_account),
):
    firm_limit = account.daily_drawdown_limit_pct
    if firm_limit is not None and payload.personal_daily_loss_limit_pct > float(firm_limit):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Personal limit cannot exceed the firm daily limit of {float(firm_limit):g}%",
        )
    account.personal_daily_loss_limit_pct = payload.personal_daily_loss_limit_pct
    db.commit()
    db.refresh(account)
    return account


@router.post("/{account_id}/settlements", response_model=AccountOut)
def settle_trade(
    payload: SettlementRequest,
    db: Session = Depends(get_db),
    account: TradingAccount = Depends(get_owned_account),
):
    return apply_trade_settlement(
        db,
        account,
        pnl=payload.pnl,
        equity=payload.equity,
        closed_at=payload.closed_at,
    )
