from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from apps.api.app.core.logging_config import configure_logging
from apps.api.app.api.accounts import router as accounts_router
from apps.api.app.api.functions import router as functions_router
from apps.api.app.api.users import router as users_router
from apps.api.app.routes.auth import router as auth_router

import apps.api.app.models.trading_account
import apps.api.app.models.daily_stats
import apps.api.app.models.circuit_breaker_event
import apps.api.app.models.drawdown_alert
import apps.api.app.models.psychology_log
import apps.api.app.models.risk_validation_log
import apps.api.app.models.notification
import apps.api.app.models.push_subscription
import apps.api.app.models.otp
import apps.api.app.models.user

from apps.api.app.db.session import engine, Base

configure_logging()

app = FastAPI(title="riskdesk API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

Base.metadata.create_all(bind=engine)

app.include_router(auth_router)
app.include_router(users_router)
app.include_router(accounts_router)
app.include_router(functions_router)


@app.get("/healthz")
def healthz():
    return {"status": "ok"}


@app.get("/")
def root():
    return {"app": "riskdesk", "docs": "/docs"}
