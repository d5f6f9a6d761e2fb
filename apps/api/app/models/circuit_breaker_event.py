import uuid

from sqlalchemy import Column, DateTime, Float, String
from sqlalchemy.sql import func

from apps.api.app.db.session import Base


class CircuitBreakerEvent(Base):
    __tablename__ = "circuit_breaker_events"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, index=True, nullable=False)
    account_id = Column(String, index=True, nullable=False)
    action = Column(String, nullable=False)  # lock / unlock
    breaker_type = Column(String, nullable=True)
    trigger_value = Column(Float, nullable=True)
    threshold_value = Column(Float, nullable=True)
    reason = Column(String, nullable=True)
    locked_until = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
