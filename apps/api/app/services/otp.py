import logging
import re
from datetime import datetime, timedelta
from typing import Optional

import pyotp
from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from apps.api.app.core.config import settings
from apps.api.app.core.time import utc_now
from apps.api.app.models.otp import OtpRateLimit, OtpVerification
from apps.api.app.models.user import User
from apps.api.app.services.crypto import decrypt_secret, encrypt_secret
from apps.api.app.services.email import send_email

logger = logging.getLogger("riskdesk.otp")

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
OTP_RE = re.compile(r"^\d{6}$")
RATE_LIMIT_WINDOW = timedelta(hours=1)


def normalize_email(email: Optional[str]) -> str:
    if not EMAIL_RE.match(email or ""):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid email format",
        )
    return email.strip().lower()


def _attempts_in_window(db: Session, email: str, request_type: str, now: datetime) -> int:
    return db.execute(
        select(func.count(OtpRateLimit.id)).where(
            OtpRateLimit.email == email,
            OtpRateLimit.request_type == request_type,
            OtpRateLimit.created_at >= now - RATE_LIMIT_WINDOW,
        )
    ).scalar_one()


def _enforce_rate_limit(
    db: Session,
    *,
    email: str,
    request_type: str,
    limit: int,
    detail: str,
    ip_address: Optional[str],
    now: datetime,
):
    attempts = _attempts_in_window(db, email, request_type, now)
    if attempts >= limit:
        logger.info("Rate limit exceeded for %s %s: %d in the last hour", request_type, email, attempts)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=detail,
        )
    db.add(
        OtpRateLimit(
            email=email,
            request_type=request_type,
            ip_address=ip_address or "unknown",
            created_at=now,
        )
    )
    db.commit()


def send_login_code(
    db: Session,
    email: Optional[str],
    *,
    ip_address: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    if not email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email is required",
        )
    now = now or utc_now()
    email = normalize_email(email)
    _enforce_rate_limit(
        db,
        email=email,
        request_type="send",
        limit=int(settings.OTP_MAX_SENDS_PER_HOUR),
        detail="Too many OTP requests. Please try again later.",
        ip_address=ip_address,
        now=now,
    )

    secret = pyotp.random_base32()
    code = pyotp.HOTP(secret).at(0)
    db.add(
        OtpVerification(
            email=email,
            secret_encrypted=encrypt_secret(secret),
            expires_at=now + timedelta(minutes=int(settings.OTP_TTL_MINUTES)),
            created_at=now,
        )
    )
    db.commit()

    send_email(
        email,
        "Your Login Code - Trader Edge Pro",
        f"<p>Your one-time login code is <strong>{code}</strong>. "
        f"It expires in {int(settings.OTP_TTL_MINUTES)} minutes.</p>",
    )
    logger.info("OTP issued for %s", email)
    return code


def verify_login_code(
    db: Session,
    email: Optional[str],
    otp: Optional[str],
    *,
    ip_address: Optional[str] = None,
    now: Optional[datetime] = None,
) -> tuple[User, bool]:
    """Returns (user, user_existed_before)."""
    if not email or not otp:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email and OTP are required",
        )
    now = now or utc_now()
    email = normalize_email(email)
    if not OTP_RE.match(otp):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid OTP format",
        )
    _enforce_rate_limit(
        db,
        email=email,
        request_type="verify",
        limit=int(settings.OTP_MAX_VERIFY_ATTEMPTS_PER_HOUR),
        detail="Too many verification attempts. Please try again later.",
        ip_address=ip_address,
        now=now,
    )

    candidates = (
        db.execute(
            select(OtpVerification)
            .where(
                OtpVerification.email == email,
                OtpVerification.verified.is_(False),
                OtpVerification.expires_at > now,
            )
            .order_by(OtpVerification.created_at.desc())
        )
        .scalars()
        .all()
    )
    match = None
    for row in candidates:
        secret = decrypt_secret(row.secret_encrypted)
        if secret and pyotp.HOTP(secret).verify(otp, 0):
            match = row
            break
    if match is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired OTP. Please request a new code.",
        )

    match.verified = True
    user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    existed = user is not None
    if user is None:
        user = User(email=email, role="trader")
        db.add(user)
    db.commit()
    db.refresh(user)
    return user, existed
