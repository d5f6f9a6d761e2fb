from typing import Optional

from pydantic import BaseModel


class OtpSendRequest(BaseModel):
    email: Optional[str] = None


class OtpVerifyRequest(BaseModel):
    email: Optional[str] = None
    otp: Optional[str] = None


class OtpSendOut(BaseModel):
    success: bool
    message: str


class OtpSessionOut(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class OtpVerifyOut(BaseModel):
    success: bool
    userExists: bool
    session: OtpSessionOut
