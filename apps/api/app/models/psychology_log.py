import uuid

from sqlalchemy import Column, DateTime, JSON, String
from sqlalchemy.sql import func

from apps.api.app.db.session import Base


class PsychologyLog(Base):
    __tablename__ = "psychology_logs"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, index=True, nullable=False)
    account_id = Column(String, index=True, nullable=False)
    event_type = Column(String, index=True, nullable=False)
    trigger_reason = Column(String, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
