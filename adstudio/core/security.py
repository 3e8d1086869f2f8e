import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from .config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def _encode(claims: dict[str, Any], token_type: str, lifetime: timedelta) -> str:
    payload = {**claims, "exp": datetime.now(timezone.utc) + lifetime, "type": token_type}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_access_token(data: dict[str, Any], expires_delta: timedelta | None = None) -> str:
    lifetime = expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    return _encode(data, ACCESS_TOKEN, lifetime)


def create_refresh_token(data: dict[str, Any]) -> str:
    return _encode(data, REFRESH_TOKEN, timedelta(days=settings.jwt_refresh_token_expire_days))


def verify_token(token: str, token_type: str = ACCESS_TOKEN) -> dict[str, Any] | None:
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    if payload.get("type") != token_type:
        return None
    return payload


def callback_token(provider: str) -> str:
    """Shared secret a vendor echoes back on the webhook URL, one per provider."""
    return hmac.new(
        settings.callback_secret.encode(), provider.lower().encode(), hashlib.sha256
    ).hexdigest()


def verify_callback_token(provider: str, token: str | None) -> bool:
    if not token:
        return False
    return hmac.compare_digest(callback_token(provider), token)
