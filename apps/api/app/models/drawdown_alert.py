import uuid

from sqlalchemy import Boolean, Column, DateTime, Float, String
from sqlalchemy.sql import func

from apps.api.app.db.session import Base


class DrawdownAlert(Base):
    __tablename__ = "drawdown_alerts"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, index=True, nullable=False)
    account_id = Column(String, index=True, nullable=False)
    alert_type = Column(String, index=True, nullable=False)
    threshold_pct = Column(Float, nullable=True)
    current_dd_pct = Column(Float, nullable=True)
    equity_at_alert = Column(Float, nullable=True)
    signals_paused = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
