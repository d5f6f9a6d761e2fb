from datetime import date, datetime, timedelta, timezone

from apps.api.app.models.circuit_breaker_event import CircuitBreakerEvent
from apps.api.app.models.daily_stats import DailyStatsRecord
from apps.api.app.models.drawdown_alert import DrawdownAlert
from apps.api.app.models.notification import UserNotification
from apps.api.app.models.psychology_log import PsychologyLog
from apps.api.app.models.risk_validation_log import RiskValidationLog
from apps.api.app.models.trading_account import TradingAccount
from apps.api.app.services import daily_stats
from apps.api.app.services.circuit_breaker import check_circuit_breaker
from apps.worker.app.jobs import daily_reset, inactivity_monitor
from apps.worker.app.jobs.daily_reset import next_risk_multiplier, run_daily_reset
from apps.worker.app.jobs.deadline_monitor import run_deadline_monitor
from apps.worker.app.jobs.inactivity_monitor import (
    INACTIVITY_BREACH_ALERT,
    INACTIVITY_FAILURE_REASON,
    run_inactivity_monitor,
)
from conftest import make_account

# a Tuesday
NOW = datetime(2026, 3, 10, 0, 5, tzinfo=timezone.utc)


def _stats_rows(db, account_id):
    return db.query(DailyStatsRecord).filter(DailyStatsRecord.account_id == account_id).all()


def test_daily_reset_twice_matches_running_once(db, trader):
    account = make_account(db, trader, current_equity=101500.0, daily_pnl=1500.0, current_profit=1500.0)
    db.add(
        DailyStatsRecord(
            user_id=trader.id,
            account_id=account.id,
            date=date(2026, 3, 9),
            starting_equity=100000.0,
            highest_equity=101500.0,
            lowest_equity=99800.0,
            daily_pnl=1500.0,
            trades_taken=3,
        )
    )
    db.commit()

    first = run_daily_reset(db, now=NOW)
    second = run_daily_reset(db, now=NOW + timedelta(minutes=30))

    assert first == {"processed": 1, "dailyStatsCreated": 1, "scalingUpdates": 0, "date": "2026-03-10"}
    assert second["dailyStatsCreated"] == 0

    db.expire_all()
    stored = db.get(TradingAccount, account.id)
    assert stored.days_traded == 1
    assert stored.daily_starting_equity == 101500.0
    assert stored.daily_pnl == 0.0
    assert stored.last_daily_reset_on == date(2026, 3, 10)

    rows = {row.date: row for row in _stats_rows(db, account.id)}
    assert set(rows) == {date(2026, 3, 9), date(2026, 3, 10)}
    assert rows[date(2026, 3, 9)].ending_equity == 101500.0
    assert rows[date(2026, 3, 9)].is_profitable is True
    assert rows[date(2026, 3, 10)].starting_equity == 101500.0


def test_daily_reset_keeps_trades_recorded_after_the_reset(db, trader):
    account = make_account(db, trader)
    run_daily_reset(db, now=NOW)

    row = _stats_rows(db, account.id)[0]
    row.trades_taken = 2
    row.daily_pnl = -300.0
    db.commit()

    run_daily_reset(db, now=NOW + timedelta(hours=1))
    db.expire_all()
    row = _stats_rows(db, account.id)[0]
    assert row.trades_taken == 2
    assert row.daily_pnl == -300.0


def test_monday_reset_advances_scaling(db, trader):
    account = make_account(db, trader, scaling_week=1, current_risk_multiplier=0.5)
    monday = datetime(2026, 3, 9, 0, 5, tzinfo=timezone.utc)

    result = run_daily_reset(db, now=monday)
    run_daily_reset(db, now=monday + timedelta(hours=2))

    assert result["scalingUpdates"] == 1
    db.expire_all()
    stored = db.get(TradingAccount, account.id)
    assert stored.scaling_week == 2
    assert stored.current_risk_multiplier == 0.75


def test_risk_multiplier_schedule():
    assert next_risk_multiplier(1, 0.5) == 0.5
    assert next_risk_multiplier(2, 0.5) == 0.75
    assert next_risk_multiplier(5, 0.75) == 1.0


def test_daily_reset_prunes_old_audit_rows(db, trader):
    account = make_account(db, trader)
    db.add(RiskValidationLog(user_id=trader.id, account_id=account.id, is_locked=False, created_at=NOW - timedelta(days=45)))
    db.add(RiskValidationLog(user_id=trader.id, account_id=account.id, is_locked=False, created_at=NOW - timedelta(days=2)))
    db.commit()

    run_daily_reset(db, now=NOW)

    assert db.query(RiskValidationLog).count() == 1


def test_daily_reset_skips_failed_accounts(db, trader):
    make_account(db, trader, status="failed")
    assert run_daily_reset(db, now=NOW)["processed"] == 0


def test_deadline_monitor_fires_on_boundaries_once_per_day(db, trader):
    for days in (7, 6, 5, 4, 3, 2, 1, 0):
        make_account(
            db,
            trader,
            account_name=f"{days}d",
            challenge_deadline=NOW + timedelta(days=days),
            profit_target=10000.0,
        )
    make_account(db, trader, account_type="Funded", challenge_deadline=NOW + timedelta(days=3))

    result = run_deadline_monitor(db, now=NOW)
    assert result["accountsChecked"] == 8
    assert result["alertsSent"] == 3
    assert result["notificationsSent"] == 3
    assert result["pushNotificationsSent"] == 0

    titles = sorted(n.title for n in db.query(UserNotification).all())
    assert any("FINAL DAY" in t for t in titles)
    assert any("Only 3 Days Left" in t for t in titles)
    assert any("7 Days Remaining" in t for t in titles)

    again = run_deadline_monitor(db, now=NOW + timedelta(hours=3))
    assert again["alertsSent"] == 0
    assert db.query(PsychologyLog).filter(PsychologyLog.event_type == "deadline_warning").count() == 3


def test_inactivity_breach_fails_account_once(db, trader):
    account = make_account(db, trader, inactivity_rule_days=30, inactivity_deadline_at=NOW - timedelta(hours=1))

    first = run_inactivity_monitor(db, now=NOW)
    assert first["accountsChecked"] == 1
    assert first["warningsSent"] == 0

    db.expire_all()
    stored = db.get(TradingAccount, account.id)
    assert stored.status == "failed"
    assert stored.failure_reason == INACTIVITY_FAILURE_REASON

    second = run_inactivity_monitor(db, now=NOW + timedelta(hours=1))
    assert second["accountsChecked"] == 0
    breaches = db.query(DrawdownAlert).filter(DrawdownAlert.alert_type == INACTIVITY_BREACH_ALERT).all()
    assert len(breaches) == 1


def test_inactivity_warning_sent_once_per_day(db, trader):
    account = make_account(db, trader, inactivity_rule_days=30, inactivity_deadline_at=NOW + timedelta(days=3))

    first = run_inactivity_monitor(db, now=NOW)
    assert first["warningsSent"] == 1
    assert first["warnings"][0] == {
        "accountId": account.id,
        "accountName": "FTMO 100k",
        "propFirm": "FTMO",
        "daysUntilDeadline": 3,
        "userId": trader.id,
    }

    again = run_inactivity_monitor(db, now=NOW + timedelta(hours=2))
    assert again["warningsSent"] == 0


def test_job_endpoints_report_summaries(client, db, trader):
    make_account(db, trader)

    reset = client.post("/functions/daily-equity-reset")
    assert reset.status_code == 200, reset.text
    assert reset.json()["processed"] == 1

    deadline = client.post("/functions/challenge-deadline-monitor")
    assert deadline.status_code == 200
    assert deadline.json()["success"] is True

    inactivity = client.post("/functions/inactivity-monitor")
    assert inactivity.status_code == 200
    assert inactivity.json()["warnings"] == []


def test_job_endpoints_require_cron_secret_when_configured(client, monkeypatch):
    from apps.api.app.core.config import settings

    monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")
    assert client.post("/functions/daily-equity-reset").status_code == 401
    ok = client.post("/functions/daily-equity-reset", headers={"X-Cron-Secret": "s3cret"})
    assert ok.status_code == 200


def test_loss_lock_is_not_renewed_after_rollover(db, trader):
    account = make_account(
        db,
        trader,
        current_equity=94000.0,
        personal_daily_loss_limit_pct=3.0,
        last_daily_reset_on=date(2026, 3, 10),
    )
    rollover = datetime(2026, 3, 10, 21, 0, tzinfo=timezone.utc)

    afternoon = check_circuit_breaker(db, account, now=datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc))
    assert afternoon["locked_until"] == rollover

    # yesterday's loss is still on the account until the reset runs
    evening = check_circuit_breaker(db, account, now=datetime(2026, 3, 10, 21, 30, tzinfo=timezone.utc))
    assert evening["is_locked"] is False

    run_daily_reset(db, now=datetime(2026, 3, 11, 0, 5, tzinfo=timezone.utc))

    db.expire_all()
    stored = db.get(TradingAccount, account.id)
    assert stored.trading_locked_until.replace(tzinfo=timezone.utc) == rollover
    assert stored.last_daily_reset_on == date(2026, 3, 11)
    assert stored.daily_starting_equity == 94000.0
    assert db.query(CircuitBreakerEvent).filter(CircuitBreakerEvent.action == "lock").count() == 1


def test_reset_after_rollover_hour_opens_the_next_trading_day(db, trader):
    account = make_account(db, trader, current_equity=98000.0, daily_pnl=-2000.0, last_daily_reset_on=date(2026, 3, 10))

    result = run_daily_reset(db, now=datetime(2026, 3, 10, 21, 35, tzinfo=timezone.utc))

    assert result["date"] == "2026-03-11"
    db.expire_all()
    stored = db.get(TradingAccount, account.id)
    assert stored.last_daily_reset_on == date(2026, 3, 11)
    assert stored.daily_pnl == 0.0
    assert {row.date for row in _stats_rows(db, account.id)} == {date(2026, 3, 11)}


def test_monday_scaling_applies_after_settlement_rolled_the_day(db, trader):
    account = make_account(db, trader, scaling_week=1, current_risk_multiplier=0.5, last_daily_reset_on=date(2026, 3, 9))

    result = run_daily_reset(db, now=datetime(2026, 3, 9, 0, 5, tzinfo=timezone.utc))

    assert result["scalingUpdates"] == 1
    db.expire_all()
    assert db.get(TradingAccount, account.id).scaling_week == 2


def test_daily_reset_continues_past_a_failing_account(db, trader, other_trader, monkeypatch):
    bad = make_account(db, trader, account_name="bad")
    good = make_account(db, other_trader, account_name="good")
    real_reset = daily_reset._reset_account

    def reset_or_fail(session, account, now):
        if account.id == bad.id:
            raise RuntimeError("corrupt account row")
        return real_reset(session, account, now)

    monkeypatch.setattr(daily_reset, "_reset_account", reset_or_fail)

    result = run_daily_reset(db, now=NOW)

    assert result["processed"] == 1
    assert result["dailyStatsCreated"] == 1
    db.expire_all()
    assert db.get(TradingAccount, good.id).last_daily_reset_on == date(2026, 3, 10)
    assert db.get(TradingAccount, bad.id).last_daily_reset_on is None


def test_inactivity_monitor_continues_past_a_failing_account(db, trader, other_trader, monkeypatch):
    bad = make_account(db, trader, inactivity_rule_days=30, inactivity_deadline_at=NOW - timedelta(hours=1))
    good = make_account(db, other_trader, inactivity_rule_days=30, inactivity_deadline_at=NOW - timedelta(hours=1))
    real_evaluate = inactivity_monitor.evaluate_inactivity

    def evaluate_or_fail(account, now):
        if account.id == bad.id:
            raise RuntimeError("bad deadline")
        return real_evaluate(account, now)

    monkeypatch.setattr(inactivity_monitor, "evaluate_inactivity", evaluate_or_fail)

    result = run_inactivity_monitor(db, now=NOW)

    assert result["accountsChecked"] == 2
    db.expire_all()
    assert db.get(TradingAccount, good.id).status == "failed"
    assert db.get(TradingAccount, bad.id).status == "active"


def test_lost_stats_insert_race_keeps_yesterday_finalization(db, trader, monkeypatch):
    account = make_account(db, trader, current_equity=101000.0, current_profit=1000.0)
    for day, trades in ((date(2026, 3, 9), 2), (date(2026, 3, 10), 0)):
        db.add(
            DailyStatsRecord(
                user_id=trader.id,
                account_id=account.id,
                date=day,
                starting_equity=100000.0,
                highest_equity=101000.0,
                lowest_equity=100000.0,
                daily_pnl=1000.0 if trades else 0.0,
                trades_taken=trades,
            )
        )
    db.commit()

    # another writer seeded today's row between the lookup and the insert
    real_get = daily_stats.get_daily_stats
    missed = []

    def lookup_misses_today_once(session, acct, day):
        if day == date(2026, 3, 10) and not missed:
            missed.append(day)
            return None
        return real_get(session, acct, day)

    monkeypatch.setattr(daily_stats, "get_daily_stats", lookup_misses_today_once)

    result = run_daily_reset(db, now=NOW)

    assert missed == [date(2026, 3, 10)]
    assert result["processed"] == 1
    db.expire_all()
    stored = db.get(TradingAccount, account.id)
    assert stored.days_traded == 1
    assert stored.last_daily_reset_on == date(2026, 3, 10)
    rows = {row.date: row for row in _stats_rows(db, account.id)}
    assert len(rows) == 2
    assert rows[date(2026, 3, 9)].finalized_at is not None
    assert rows[date(2026, 3, 9)].ending_equity == 101000.0
