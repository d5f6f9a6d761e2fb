import uuid

from sqlalchemy import Boolean, Column, DateTime, Float, String
from sqlalchemy.sql import func

from apps.api.app.db.session import Base


class RiskValidationLog(Base):
    __tablename__ = "risk_validation_logs"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, index=True, nullable=False)
    account_id = Column(String, index=True, nullable=False)
    is_locked = Column(Boolean, nullable=False, default=False)
    breaker_type = Column(String, nullable=True)
    daily_loss_pct = Column(Float, nullable=False, default=0.0)
    personal_limit_pct = Column(Float, nullable=True)
    daily_profit_pct = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
