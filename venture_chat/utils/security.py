from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from pydantic import ValidationError as PayloadError

from venture_chat.core.config import settings
from venture_chat.schemas.user import CurrentUser, TokenPayload


def create_access_token(subject: str, name: Optional[str] = None, email: Optional[str] = None, expires_minutes: Optional[int] = None) -> str:
    now = datetime.now(timezone.utc)
    exp_min = settings.jwt_expire_minutes if expires_minutes is None else expires_minutes
    payload = {
        "sub": subject,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=exp_min)).timestamp()),
    }
    if name is not None:
        payload["name"] = name
    if email is not None:
        payload["email"] = email
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict:
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])


class JwtAuthenticator:
    """Resolves the current user from an access token issued by the auth service."""

    def current_user(self, token: Optional[str]) -> Optional[CurrentUser]:
        if not token:
            return None
        try:
            payload = TokenPayload.model_validate(decode_access_token(token))
        except (JWTError, PayloadError):
            return None
        return CurrentUser(id=payload.sub, name=payload.name, email=payload.email)
