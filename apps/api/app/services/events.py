from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


@dataclass(frozen=True)
class LockApplied:
    user_id: str
    account_id: str
    account_name: str
    breaker_type: str
    reason: str
    locked_until: Optional[datetime]


@dataclass(frozen=True)
class LockReleased:
    user_id: str
    account_id: str
    account_name: str
    released_by: str  # owner / expiry


@dataclass(frozen=True)
class DailyLossWarning:
    user_id: str
    account_id: str
    account_name: str
    usage_pct: float
    message: str


@dataclass(frozen=True)
class DeadlineWarningRaised:
    user_id: str
    account_id: str
    account_name: str
    prop_firm: str
    days_remaining: int
    required_daily: float
    profit_progress_pct: float


@dataclass(frozen=True)
class InactivityWarningRaised:
    user_id: str
    account_id: str
    account_name: str
    prop_firm: str
    days_remaining: int
    deadline: datetime


@dataclass(frozen=True)
class AccountFailed:
    user_id: str
    account_id: str
    account_name: str
    prop_firm: str
    failure_reason: str
    metadata: dict[str, Any] = field(default_factory=dict)
