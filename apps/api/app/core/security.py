from datetime import datetime, timedelta, timezone
import uuid
from typing import Optional

from jose import JWTError, jwt

from apps.api.app.core.config import settings


ALGORITHM = "HS256"
ACCESS = "access"
REFRESH = "refresh"


def _ttl(token_type: str) -> timedelta:
    if token_type == REFRESH:
        return timedelta(days=int(settings.REFRESH_TOKEN_TTL_DAYS))
    return timedelta(minutes=int(settings.ACCESS_TOKEN_TTL_MINUTES))


def create_token(
    claims: dict,
    token_type: str = ACCESS,
    expires_delta: Optional[timedelta] = None,
) -> str:
    issued_at = datetime.now(timezone.utc)
    to_encode = {
        **claims,
        "exp": issued_at + (expires_delta or _ttl(token_type)),
        "iat": issued_at,
        "typ": token_type,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def user_claims(user) -> dict:
    return {"sub": user.email, "uid": user.id, "role": user.role}


def issue_token_pair(user) -> dict:
    """Access + refresh tokens for a user who just proved control of their inbox."""
    claims = user_claims(user)
    return {
        "access_token": create_token(claims, ACCESS),
        "refresh_token": create_token(claims, REFRESH),
        "token_type": "bearer",
        "expires_in": int(_ttl(ACCESS).total_seconds()),
    }


def decode_token(token: str, token_type: Optional[str] = None) -> Optional[dict]:
    """None for a bad signature, an expired token or the wrong token type."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if token_type is not None and payload.get("typ") != token_type:
        return None
    return payload
