from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class AccountOut(BaseModel):
    id: str
    user_id: str
    account_name: str
    prop_firm: str
    account_type: str
    status: str
    failure_reason: Optional[str] = None
    starting_balance: float
    current_equity: float
    highest_equity: float
    daily_starting_equity: float
    daily_pnl: float
    daily_drawdown_used_pct: float
    daily_drawdown_limit_pct: Optional[float] = None
    max_drawdown_limit_pct: Optional[float] = None
    personal_daily_loss_limit_pct: Optional[float] = None
    profit_target: Optional[float] = None
    daily_profit_target: Optional[float] = None
    lock_after_target: bool
    days_traded: int
    min_trading_days: int
    scaling_week: int
    current_risk_multiplier: float
    challenge_deadline: Optional[datetime] = None
    inactivity_deadline_at: Optional[datetime] = None
    version: int

    class Config:
        from_attributes = True


class LockStateOut(BaseModel):
    account_id: str
    is_locked: bool
    locked_until: Optional[datetime] = None
    lock_reason: Optional[str] = None
    breaker_type: Optional[str] = None
    version: int


class KillSwitchRequest(BaseModel):
    duration: Literal["30m", "1h", "2h", "eod"]
    reason: Optional[str] = None
    expected_version: Optional[int] = None


class UnlockRequest(BaseModel):
    expected_version: Optional[int] = None


class PersonalLimitUpdate(BaseModel):
    personal_daily_loss_limit_pct: float = Field(ge=0)


class SettlementRequest(BaseModel):
    pnl: float
    equity: Optional[float] = None
    closed_at: Optional[datetime] = None


class CircuitBreakerCheckRequest(BaseModel):
    account_id: Optional[str] = None
    user_id: Optional[str] = None
    check_only: bool = False


class CircuitBreakerStatusOut(BaseModel):
    is_locked: bool
    lock_reason: Optional[str] = None
    locked_until: Optional[datetime] = None
    breaker_type: Optional[str] = None
    daily_loss_pct: float
    personal_limit_pct: float
    daily_profit_pct: float
    profit_target: Optional[float] = None
