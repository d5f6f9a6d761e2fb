import os
import sys
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Ensure project root is importable in local and CI runs.
PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Force test config before importing app modules.
TEST_DB_PATH = Path(tempfile.gettempdir()) / "riskdesk_integration_test.db"
if TEST_DB_PATH.exists():
    TEST_DB_PATH.unlink()

os.environ["DATABASE_URL"] = f"sqlite:///{TEST_DB_PATH}"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ENCRYPTION_KEY"] = "test-encryption-key"
os.environ["CRON_SECRET"] = ""
os.environ["VAPID_PRIVATE_KEY"] = "test-vapid-key"
os.environ["RESEND_API_KEY"] = ""
os.environ["TELEGRAM_BOT_TOKEN"] = ""
os.environ["DISCORD_WEBHOOK_URL"] = ""
os.environ["TRADING_DAY_ROLLOVER_HOUR_UTC"] = "21"

from apps.api.app.main import app
from apps.api.app.core.security import create_token, user_claims
from apps.api.app.db.session import Base, SessionLocal, engine
from apps.api.app.models.trading_account import TradingAccount
from apps.api.app.models.user import User


@pytest.fixture()
def client():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        db.add(User(email="trader@test.com", first_name="Tess", role="trader"))
        db.add(User(email="trader2@test.com", first_name="Theo", role="trader"))
        db.commit()
    finally:
        db.close()

    with TestClient(app) as tc:
        yield tc


@pytest.fixture()
def db(client):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def trader(db):
    return db.query(User).filter(User.email == "trader@test.com").one()


@pytest.fixture()
def other_trader(db):
    return db.query(User).filter(User.email == "trader2@test.com").one()


def auth_headers(user: User) -> dict:
    token = create_token(user_claims(user))
    return {"Authorization": f"Bearer {token}"}


def make_account(db, user: User, **overrides) -> TradingAccount:
    values = {
        "user_id": user.id,
        "account_name": "FTMO 100k",
        "prop_firm": "FTMO",
        "account_type": "Challenge Phase 1",
        "starting_balance": 100000.0,
        "current_equity": 100000.0,
        "highest_equity": 100000.0,
        "daily_starting_equity": 100000.0,
        "daily_drawdown_limit_pct": 5.0,
        "max_drawdown_limit_pct": 10.0,
    }
    values.update(overrides)
    account = TradingAccount(**values)
    db.add(account)
    db.commit()
    db.refresh(account)
    return account
