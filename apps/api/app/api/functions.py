from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from apps.api.app.api.deps import get_current_user, require_cron_secret
from apps.api.app.db.session import get_db
from apps.api.app.models.trading_account import TradingAccount
from apps.api.app.models.user import User
from apps.api.app.schemas.account import CircuitBreakerCheckRequest, CircuitBreakerStatusOut
from apps.api.app.schemas.jobs import DailyResetOut, DeadlineMonitorOut, InactivityMonitorOut
from apps.api.app.services.circuit_breaker import check_circuit_breaker
from apps.api.app.services.lock_controller import LockConflictError
from apps.worker.app.jobs.daily_reset import run_daily_reset
from apps.worker.app.jobs.deadline_monitor import run_deadline_monitor
from apps.worker.app.jobs.inactivity_monitor import run_inactivity_monitor

router = APIRouter(prefix="/functions", tags=["functions"])


@router.post(
    "/daily-equity-reset",
    response_model=DailyResetOut,
    dependencies=[Depends(require_cron_secret)],
)
def daily_equity_reset(db: Session = Depends(get_db)):
    return run_daily_reset(db)


@router.post(
    "/challenge-deadline-monitor",
    response_model=DeadlineMonitorOut,
    dependencies=[Depends(require_cron_secret)],
)
def challenge_deadline_monitor(db: Session = Depends(get_db)):
    return run_deadline_monitor(db)


@router.post(
    "/inactivity-monitor",
    response_model=InactivityMonitorOut,
    dependencies=[Depends(require_cron_secret)],
)
def inactivity_monitor(db: Session = Depends(get_db)):
    return run_inactivity_monitor(db)


@router.post("/daily-circuit-breaker", response_model=CircuitBreakerStatusOut)
def daily_circuit_breaker(
    payload: CircuitBreakerCheckRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not payload.account_id or not payload.user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="account_id and user_id required",
        )
    if payload.user_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot check another user's account",
        )

    account = (
        db.query(TradingAccount)
        .filter(
            TradingAccount.id == payload.account_id,
            TradingAccount.user_id == payload.user_id,
        )
        .first()
    )
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Account not found",
        )

    try:
        return check_circuit_breaker(db, account, check_only=payload.check_only)
    except LockConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
