import json
from datetime import datetime, timezone

import pytest
import requests
from pywebpush import WebPushException

from apps.api.app.models.circuit_breaker_event import CircuitBreakerEvent
from apps.api.app.models.drawdown_alert import DrawdownAlert
from apps.api.app.models.notification import UserNotification
from apps.api.app.models.push_subscription import PushSubscription
from apps.api.app.models.risk_validation_log import RiskValidationLog
from apps.api.app.models.trading_account import TradingAccount
from apps.api.app.services.circuit_breaker import check_circuit_breaker
from apps.api.app.services import push
from apps.api.app.services.push import send_push_to_user
from conftest import auth_headers, make_account

NOW = datetime(2026, 3, 10, 14, 0, tzinfo=timezone.utc)


class _FakeResponse:
    def __init__(self, status_code: int):
        self.status_code = status_code
        self.text = ""

    @property
    def ok(self):
        return 200 <= self.status_code < 300


def test_breaker_locks_on_daily_loss_and_notifies(db, trader):
    account = make_account(db, trader, current_equity=94000.0, personal_daily_loss_limit_pct=3.0)

    result = check_circuit_breaker(db, account, now=NOW)

    assert result["is_locked"] is True
    assert result["breaker_type"] == "daily_loss"
    assert result["daily_loss_pct"] == pytest.approx(6.0)
    assert result["personal_limit_pct"] == 3.0
    assert result["locked_until"] == datetime(2026, 3, 10, 21, 0, tzinfo=timezone.utc)

    db.expire_all()
    stored = db.get(TradingAccount, account.id)
    assert stored.breaker_type == "daily_loss"
    assert db.query(CircuitBreakerEvent).count() == 1
    assert db.query(RiskValidationLog).count() == 1
    notes = db.query(UserNotification).filter(UserNotification.user_id == trader.id).all()
    assert [n.type for n in notes] == ["daily_loss"]


def test_breaker_check_only_writes_nothing(db, trader):
    account = make_account(db, trader, current_equity=94000.0)

    result = check_circuit_breaker(db, account, check_only=True, now=NOW)

    assert result["is_locked"] is True
    db.expire_all()
    assert db.get(TradingAccount, account.id).trading_locked_until is None
    assert db.query(CircuitBreakerEvent).count() == 0
    assert db.query(RiskValidationLog).count() == 0


def test_breaker_warns_once_per_day_near_limit(db, trader):
    account = make_account(db, trader, current_equity=97800.0)

    first = check_circuit_breaker(db, account, now=NOW)
    check_circuit_breaker(db, account, now=NOW.replace(hour=16))

    assert first["is_locked"] is False
    alerts = db.query(DrawdownAlert).filter(DrawdownAlert.alert_type == "daily_loss_warning").all()
    assert len(alerts) == 1
    assert db.query(UserNotification).filter(UserNotification.type == "daily_loss_warning").count() == 1


def test_breaker_reports_existing_lock_without_re_evaluating(db, trader):
    account = make_account(
        db,
        trader,
        trading_locked_until=datetime(2026, 3, 10, 21, 0, tzinfo=timezone.utc),
        lock_reason="Manual kill switch activated - Taking a trading break",
        breaker_type="manual",
    )

    result = check_circuit_breaker(db, account, now=NOW)

    assert result["is_locked"] is True
    assert result["breaker_type"] == "manual"
    assert db.query(CircuitBreakerEvent).count() == 0


def test_circuit_breaker_endpoint_validation(client, db, trader, other_trader):
    account = make_account(db, trader)
    headers = auth_headers(trader)

    missing = client.post("/functions/daily-circuit-breaker", headers=headers, json={"account_id": account.id})
    assert missing.status_code == 400
    assert missing.json()["detail"] == "account_id and user_id required"

    unknown = client.post(
        "/functions/daily-circuit-breaker",
        headers=headers,
        json={"account_id": "nope", "user_id": trader.id},
    )
    assert unknown.status_code == 404

    foreign = client.post(
        "/functions/daily-circuit-breaker",
        headers=auth_headers(other_trader),
        json={"account_id": account.id, "user_id": trader.id},
    )
    assert foreign.status_code == 403

    ok = client.post(
        "/functions/daily-circuit-breaker",
        headers=headers,
        json={"account_id": account.id, "user_id": trader.id, "check_only": True},
    )
    assert ok.status_code == 200, ok.text
    assert set(ok.json()) == {
        "is_locked",
        "lock_reason",
        "locked_until",
        "breaker_type",
        "daily_loss_pct",
        "personal_limit_pct",
        "daily_profit_pct",
        "profit_target",
    }


def test_push_subscription_round_trip(client, db, trader):
    headers = auth_headers(trader)
    body = {"endpoint": "https://push.example/sub/1", "keys": {"p256dh": "p-key", "auth": "a-key"}}

    first = client.post("/users/push-subscriptions", headers=headers, json=body)
    again = client.post("/users/push-subscriptions", headers=headers, json=body)
    assert first.status_code == 200, first.text
    assert first.json()["id"] == again.json()["id"]

    row = db.query(PushSubscription).one()
    assert row.auth_encrypted != "a-key"

    removed = client.request(
        "DELETE",
        "/users/push-subscriptions",
        headers=headers,
        json={"endpoint": body["endpoint"]},
    )
    assert removed.status_code == 200
    assert db.query(PushSubscription).count() == 0


def test_gone_push_subscription_is_deleted_and_not_retried(client, db, trader, monkeypatch):
    client.post(
        "/users/push-subscriptions",
        headers=auth_headers(trader),
        json={"endpoint": "https://push.example/gone", "keys": {"p256dh": "p", "auth": "a"}},
    )
    calls = []

    def fake_webpush(subscription_info, **kwargs):
        calls.append(subscription_info["endpoint"])
        assert kwargs["vapid_claims"]["sub"].startswith("mailto:")
        raise WebPushException("Push failed: 410 Gone", response=_FakeResponse(410))

    monkeypatch.setattr(push, "webpush", fake_webpush)

    assert send_push_to_user(db, trader.id, title="t", body="b") == 0
    assert db.query(PushSubscription).count() == 0

    assert send_push_to_user(db, trader.id, title="t", body="b") == 0
    assert calls == ["https://push.example/gone"]


def test_push_provider_failures_are_swallowed(client, db, trader, monkeypatch):
    client.post(
        "/users/push-subscriptions",
        headers=auth_headers(trader),
        json={"endpoint": "https://push.example/flaky", "keys": {"p256dh": "p", "auth": "a"}},
    )

    def rate_limited(subscription_info, **kwargs):
        raise WebPushException("Push failed: 429", response=_FakeResponse(429))

    def unreachable(subscription_info, **kwargs):
        raise requests.ConnectionError("push service down")

    for fake in (rate_limited, unreachable):
        monkeypatch.setattr(push, "webpush", fake)
        assert send_push_to_user(db, trader.id, title="t", body="b") == 0
    assert db.query(PushSubscription).count() == 1


def test_push_sends_payload_with_vapid_key(client, db, trader, monkeypatch):
    client.post(
        "/users/push-subscriptions",
        headers=auth_headers(trader),
        json={"endpoint": "https://push.example/ok", "keys": {"p256dh": "p", "auth": "a"}},
    )
    sent = []

    def fake_webpush(subscription_info, data=None, **kwargs):
        sent.append((subscription_info, json.loads(data), kwargs))
        return _FakeResponse(201)

    monkeypatch.setattr(push, "webpush", fake_webpush)

    assert send_push_to_user(db, trader.id, title="Locked", body="Daily loss hit", urgency="high") == 1
    subscription_info, payload, kwargs = sent[0]
    assert subscription_info == {"endpoint": "https://push.example/ok", "keys": {"p256dh": "p", "auth": "a"}}
    assert payload["title"] == "Locked"
    assert payload["data"]["url"] == "/dashboard"
    assert kwargs["vapid_private_key"] == "test-vapid-key"
    assert kwargs["headers"] == {"Urgency": "high"}
