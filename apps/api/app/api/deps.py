import hmac
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from apps.api.app.core.config import settings
from apps.api.app.core.security import ACCESS, decode_token
from apps.api.app.db.session import get_db
from apps.api.app.models.trading_account import TradingAccount
from apps.api.app.models.user import User


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/otp/verify")


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    payload = decode_token(token, ACCESS)
    if payload is None or not payload.get("uid"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
        )

    user = db.get(User, payload["uid"])

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    if user.role == "disabled":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is disabled",
        )

    return user


def get_owned_account(
    account_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> TradingAccount:
    """Another user's account reads as missing rather than forbidden."""
    account = (
        db.query(TradingAccount)
        .filter(
            TradingAccount.id == account_id,
            TradingAccount.user_id == current_user.id,
        )
        .first()
    )
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Account not found",
        )
    return account


def require_cron_secret(
    x_cron_secret: Optional[str] = Header(default=None),
):
    """Scheduled-job endpoints are open unless CRON_SECRET is configured."""
    expected = settings.CRON_SECRET
    if not expected:
        return
    if not x_cron_secret or not hmac.compare_digest(x_cron_secret, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid cron secret",
        )
