from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from apps.api.app.core.security import REFRESH, decode_token, issue_token_pair
from apps.api.app.db.session import get_db
from apps.api.app.models.user import User
from apps.api.app.schemas.otp import (
    OtpSendOut,
    OtpSendRequest,
    OtpSessionOut,
    OtpVerifyOut,
    OtpVerifyRequest,
)
from apps.api.app.services.otp import send_login_code, verify_login_code

router = APIRouter(prefix="/auth", tags=["auth"])


class RefreshRequest(BaseModel):
    refresh_token: str


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for") or request.headers.get("cf-connecting-ip")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


@router.post("/otp/send", response_model=OtpSendOut)
def otp_send(
    payload: OtpSendRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    send_login_code(db, payload.email, ip_address=_client_ip(request))
    return OtpSendOut(success=True, message="OTP sent successfully")


@router.post("/otp/verify", response_model=OtpVerifyOut)
def otp_verify(
    payload: OtpVerifyRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    user, existed = verify_login_code(
        db,
        payload.email,
        payload.otp,
        ip_address=_client_ip(request),
    )
    return OtpVerifyOut(
        success=True,
        userExists=existed,
        session=OtpSessionOut(**issue_token_pair(user)),
    )


@router.post("/refresh", response_model=OtpSessionOut)
def refresh(
    payload: RefreshRequest,
    db: Session = Depends(get_db),
):
    token_payload = decode_token(payload.refresh_token, REFRESH)
    if token_payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token",
        )

    user = (
        db.query(User)
        .filter(User.id == token_payload.get("uid"))
        .first()
    )
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
    return OtpSessionOut(**issue_token_pair(user))
