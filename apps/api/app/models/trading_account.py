import uuid

from sqlalchemy import Boolean, Column, Date, DateTime, Float, Integer, String
from sqlalchemy.sql import func

from apps.api.app.db.session import Base

ACCOUNT_STATUS_ACTIVE = "active"
ACCOUNT_STATUS_FAILED = "failed"
ACCOUNT_STATUS_CLOSED = "closed"

CHALLENGE_ACCOUNT_TYPES = (
    "Challenge Phase 1",
    "Challenge Phase 2",
    "Evaluation",
    "1-Step",
    "2-Step Phase 1",
    "2-Step Phase 2",
)


class TradingAccount(Base):
    __tablename__ = "trading_accounts"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, index=True, nullable=False)

    account_name = Column(String, nullable=False, default="")
    prop_firm = Column(String, nullable=False, default="")
    account_type = Column(String, nullable=False, default="Evaluation")
    status = Column(String, index=True, nullable=False, default=ACCOUNT_STATUS_ACTIVE)  # active / failed / closed
    failure_reason = Column(String, nullable=True)

    starting_balance = Column(Float, nullable=False, default=0.0)
    current_equity = Column(Float, nullable=False, default=0.0)
    highest_equity = Column(Float, nullable=False, default=0.0)
    current_profit = Column(Float, nullable=False, default=0.0)

    # firm limits, percentages of equity
    daily_drawdown_limit_pct = Column(Float, nullable=True)
    max_drawdown_limit_pct = Column(Float, nullable=True)
    # user-settable, never above the firm daily limit
    personal_daily_loss_limit_pct = Column(Float, nullable=True)
    profit_target = Column(Float, nullable=True)
    daily_profit_target = Column(Float, nullable=True)
    lock_after_target = Column(Boolean, nullable=False, default=False)
    min_trading_days = Column(Integer, nullable=False, default=0)
    # "HH:MM" UTC
    allowed_trading_hours_start = Column(String, nullable=True)
    allowed_trading_hours_end = Column(String, nullable=True)

    daily_starting_equity = Column(Float, nullable=False, default=0.0)
    daily_pnl = Column(Float, nullable=False, default=0.0)
    daily_drawdown_used_pct = Column(Float, nullable=False, default=0.0)
    last_daily_reset_on = Column(Date, nullable=True)

    scaling_week = Column(Integer, nullable=False, default=1)
    current_risk_multiplier = Column(Float, nullable=False, default=0.5)
    last_scaled_on = Column(Date, nullable=True)

    challenge_deadline = Column(DateTime(timezone=True), nullable=True)
    days_traded = Column(Integer, nullable=False, default=0)

    inactivity_rule_days = Column(Integer, nullable=True)
    last_trade_at = Column(DateTime(timezone=True), nullable=True)
    inactivity_deadline_at = Column(DateTime(timezone=True), nullable=True)
    last_inactivity_warning_at = Column(DateTime(timezone=True), nullable=True)

    trading_locked_until = Column(DateTime(timezone=True), nullable=True)
    lock_reason = Column(String, nullable=True)
    breaker_type = Column(String, nullable=True)  # daily_loss / profit_lock / inactivity / manual
    version = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
