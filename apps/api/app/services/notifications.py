"""
Best-effort delivery of domain events to users.

Callers publish an event only after the state change it describes has been
committed; nothing in here may raise back into a job or request.
"""
import logging
from dataclasses import dataclass
from functools import singledispatchmethod
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from apps.api.app.core.time import utc_now
from apps.api.app.models.notification import UserNotification
from apps.api.app.models.user import User
from apps.api.app.services.email import send_email
from apps.api.app.services.events import (
    AccountFailed,
    DailyLossWarning,
    DeadlineWarningRaised,
    InactivityWarningRaised,
    LockApplied,
    LockReleased,
)
from apps.api.app.services.push import send_push_to_user
from apps.api.app.services.risk_evaluator import BREAKER_DAILY_LOSS, BREAKER_PROFIT_LOCK
from apps.worker.app.engine.notifier import notify as notify_chat

logger = logging.getLogger("riskdesk.notifications")


@dataclass
class Delivery:
    in_app: bool = False
    push: int = 0
    email: bool = False
    chat: int = 0


class NotificationDispatcher:
    def __init__(self, db: Session):
        self.db = db

    def publish(self, event) -> Delivery:
        try:
            return self._handle(event)
        except Exception:
            logger.exception("Notification dispatch failed for %s", type(event).__name__)
            return Delivery()

    @singledispatchmethod
    def _handle(self, event) -> Delivery:
        logger.debug("No notification route for %s", type(event).__name__)
        return Delivery()

    @_handle.register
    def _(self, event: LockApplied) -> Delivery:
        if event.breaker_type == BREAKER_DAILY_LOSS:
            title = "🔴 Trading Paused - Daily Loss Limit"
            message = f"{event.reason} Trading will resume at the next trading day rollover."
            push_title = "🔴 Trading Locked"
        elif event.breaker_type == BREAKER_PROFIT_LOCK:
            title = "🎯 Trading Paused - Target Reached!"
            message = f"{event.reason} Great discipline! Resume tomorrow."
            push_title = "🎯 Target Reached!"
        else:
            # Manual locks are the user's own action.
            return Delivery()

        delivery = Delivery()
        delivery.in_app = self._in_app(
            event.user_id,
            type=event.breaker_type,
            title=title,
            message=message,
            priority="high",
            metadata={"account_id": event.account_id},
        )
        delivery.push = self._push(
            event.user_id,
            title=push_title,
            body=event.reason,
            tag=f"circuit-breaker-{event.account_id}",
            data={"type": event.breaker_type, "account_id": event.account_id},
            urgency="high",
        )
        delivery.chat = self._chat(f"[{event.breaker_type}] {event.account_name}: {event.reason}")
        return delivery

    @_handle.register
    def _(self, event: LockReleased) -> Delivery:
        logger.debug("Account %s unlocked by %s", event.account_id, event.released_by)
        return Delivery()

    @_handle.register
    def _(self, event: DailyLossWarning) -> Delivery:
        delivery = Delivery()
        delivery.in_app = self._in_app(
            event.user_id,
            type="daily_loss_warning",
            title="⚠️ Approaching Daily Loss Limit",
            message=f"{event.account_name}: {event.message}.",
            priority="high",
            metadata={"account_id": event.account_id, "usage_pct": event.usage_pct},
        )
        delivery.push = self._push(
            event.user_id,
            title="⚠️ Daily loss warning",
            body=event.message,
            tag=f"daily-loss-{event.account_id}",
            data={"type": "daily_loss_warning", "account_id": event.account_id},
        )
        return delivery

    @_handle.register
    def _(self, event: DeadlineWarningRaised) -> Delivery:
        days = event.days_remaining
        if days == 1:
            emoji, urgency_text, priority = "🚨", "FINAL DAY", "urgent"
        elif days == 3:
            emoji, urgency_text, priority = "⚠️", "Only 3 Days Left", "high"
        else:
            emoji, urgency_text, priority = "📅", f"{days} Days Remaining", "high"

        needed = f"${event.required_daily:.0f}/day"
        progress = f"{event.profit_progress_pct:.1f}%"
        delivery = Delivery()
        delivery.in_app = self._in_app(
            event.user_id,
            type="challenge_deadline",
            title=f"{emoji} Challenge Deadline: {urgency_text}",
            message=f"{event.prop_firm} {event.account_name}: {progress} to target. Need {needed} to pass.",
            priority=priority,
            action_url="/dashboard?tab=rules",
            metadata={
                "account_id": event.account_id,
                "days_remaining": days,
                "required_daily": event.required_daily,
                "profit_progress": event.profit_progress_pct,
            },
        )
        delivery.push = self._push(
            event.user_id,
            title=f"{emoji} {urgency_text}!",
            body=f"{event.prop_firm}: Need {needed} to pass. Currently {progress} to target.",
            tag=f"challenge-deadline-{event.account_id}",
            url="/dashboard?tab=rules",
        )
        return delivery

    @_handle.register
    def _(self, event: InactivityWarningRaised) -> Delivery:
        text = (
            f"Your {event.prop_firm} account will be flagged for inactivity in "
            f"{event.days_remaining} day(s). Place a trade to reset the timer."
        )
        delivery = Delivery()
        delivery.in_app = self._in_app(
            event.user_id,
            type="warning",
            title=f"Inactivity Warning: {event.account_name}",
            message=text,
            priority="high",
            metadata={
                "account_id": event.account_id,
                "days_remaining": event.days_remaining,
                "deadline": event.deadline.isoformat(),
            },
        )
        delivery.push = self._push(
            event.user_id,
            title=f"⚠️ Inactivity Warning: {event.account_name}",
            body=text,
            tag=f"inactivity-{event.account_id}",
            data={
                "type": "inactivity_warning",
                "accountId": event.account_id,
                "daysRemaining": event.days_remaining,
            },
        )
        delivery.email = self._email(
            event.user_id,
            subject=f"Inactivity warning: {event.account_name}",
            text=text,
        )
        return delivery

    @_handle.register
    def _(self, event: AccountFailed) -> Delivery:
        text = f"Your {event.prop_firm} account {event.account_name} has failed: {event.failure_reason}."
        delivery = Delivery()
        delivery.in_app = self._in_app(
            event.user_id,
            type="error",
            title=f"Account failed: {event.account_name}",
            message=text,
            priority="urgent",
            metadata={"account_id": event.account_id, **event.metadata},
        )
        delivery.push = self._push(
            event.user_id,
            title=f"❌ {event.account_name} failed",
            body=text,
            tag=f"account-failed-{event.account_id}",
            urgency="high",
        )
        delivery.email = self._email(event.user_id, subject=f"Account failed: {event.account_name}", text=text)
        delivery.chat = self._chat(f"[account_failed] {event.account_name}: {event.failure_reason}")
        return delivery

    def _in_app(
        self,
        user_id: str,
        *,
        type: str,
        title: str,
        message: str,
        priority: str = "normal",
        action_url: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> bool:
        try:
            self.db.add(
                UserNotification(
                    user_id=user_id,
                    type=type,
                    title=title,
                    message=message,
                    priority=priority,
                    action_url=action_url,
                    metadata_json=metadata,
                    created_at=utc_now(),
                )
            )
            self.db.commit()
            return True
        except Exception:
            self.db.rollback()
            logger.exception("Failed to store in-app notification for user %s", user_id)
            return False

    def _push(self, user_id: str, **kwargs) -> int:
        try:
            return send_push_to_user(self.db, user_id, **kwargs)
        except Exception:
            logger.exception("Push dispatch failed for user %s", user_id)
            return 0

    def _email(self, user_id: str, *, subject: str, text: str) -> bool:
        try:
            user = self.db.execute(select(User).where(User.id == user_id)).scalar_one_or_none()
            if user is None or not user.email:
                return False
            return send_email(user.email, subject, f"<p>{text}</p>")
        except Exception:
            logger.exception("Email dispatch failed for user %s", user_id)
            return False

    def _chat(self, text: str) -> int:
        try:
            return notify_chat(text)
        except Exception:
            logger.exception("Chat dispatch failed")
            return 0
