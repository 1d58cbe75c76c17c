from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from dropdeck.config import Settings


def create_user_token(user_id: str, settings: Settings) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "exp": now + timedelta(seconds=settings.token_ttl_sec),
        "iat": now,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_user_token(token: str, settings: Settings) -> Optional[str]:
    """Return the user id the token was issued for, or None if it is invalid or expired."""
    try:
        data = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        return data.get("sub")
    except JWTError:
        return None
