import uuid
from sqlalchemy import Boolean, Column, Date, DateTime, Float, Integer, String, UniqueConstraint

from apps.api.app.db.session import Base


class DailyStatsRecord(Base):
    __tablename__ = "daily_stats"

    __table_args__ = (
        UniqueConstraint("user_id", "account_id", "date", name="uq_daily_stats_user_account_date"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)
    account_id = Column(String, nullable=False, index=True)

    # UTC calendar day
    date = Column(Date, nullable=False, index=True)

    starting_equity = Column(Float, nullable=False, default=0.0)
    ending_equity = Column(Float, nullable=True)
    highest_equity = Column(Float, nullable=False, default=0.0)
    lowest_equity = Column(Float, nullable=False, default=0.0)

    daily_pnl = Column(Float, nullable=False, default=0.0)
    daily_pnl_pct = Column(Float, nullable=False, default=0.0)
    trades_taken = Column(Integer, nullable=False, default=0)
    trades_won = Column(Integer, nullable=False, default=0)
    trades_lost = Column(Integer, nullable=False, default=0)
    trades_breakeven = Column(Integer, nullable=False, default=0)
    max_daily_dd_reached_pct = Column(Float, nullable=False, default=0.0)

    is_profitable = Column(Boolean, nullable=True)
    is_trading_day = Column(Boolean, nullable=True)
    contributed_pct_of_total = Column(Float, nullable=True)
    finalized_at = Column(DateTime(timezone=True), nullable=True)
