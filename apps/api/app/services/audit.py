import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from apps.api.app.core.time import utc_now
from apps.api.app.models.circuit_breaker_event import CircuitBreakerEvent
from apps.api.app.models.drawdown_alert import DrawdownAlert
from apps.api.app.models.psychology_log import PsychologyLog

logger = logging.getLogger("riskdesk.audit")


def _append_best_effort(db: Session, row, label: str) -> bool:
    # Audit rows never undo the state change they describe: callers commit
    # their own work before getting here.
    try:
        db.add(row)
        db.commit()
        return True
    except Exception:
        db.rollback()
        logger.exception("Failed to append %s audit row for account %s", label, row.account_id)
        return False


def log_breaker_event(
    db: Session,
    *,
    user_id: str,
    account_id: str,
    action: str,
    breaker_type: Optional[str] = None,
    reason: Optional[str] = None,
    locked_until: Optional[datetime] = None,
    trigger_value: Optional[float] = None,
    threshold_value: Optional[float] = None,
    now: Optional[datetime] = None,
) -> bool:
    event = CircuitBreakerEvent(
        user_id=user_id,
        account_id=account_id,
        action=action,
        breaker_type=breaker_type,
        reason=reason,
        locked_until=locked_until,
        trigger_value=trigger_value,
        threshold_value=threshold_value,
        created_at=now or utc_now(),
    )
    return _append_best_effort(db, event, "circuit breaker")


def log_drawdown_alert(
    db: Session,
    *,
    user_id: str,
    account_id: str,
    alert_type: str,
    threshold_pct: Optional[float] = None,
    current_dd_pct: Optional[float] = None,
    equity_at_alert: Optional[float] = None,
    signals_paused: bool = False,
    now: Optional[datetime] = None,
) -> bool:
    alert = DrawdownAlert(
        user_id=user_id,
        account_id=account_id,
        alert_type=alert_type,
        threshold_pct=threshold_pct,
        current_dd_pct=current_dd_pct,
        equity_at_alert=equity_at_alert,
        signals_paused=signals_paused,
        created_at=now or utc_now(),
    )
    return _append_best_effort(db, alert, "drawdown alert")


def log_psychology_event(
    db: Session,
    *,
    user_id: str,
    account_id: str,
    event_type: str,
    trigger_reason: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> bool:
    entry = PsychologyLog(
        user_id=user_id,
        account_id=account_id,
        event_type=event_type,
        trigger_reason=trigger_reason,
        metadata_json=metadata,
        created_at=now or utc_now(),
    )
    return _append_best_effort(db, entry, "psychology")
