from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from core.config import config
from core.exceptions.base import UnauthorizedException

ACCESS_TOKEN_EXPIRE = timedelta(minutes=60)


def create_access_token(
    subject: str, role: str, expires_delta: Optional[timedelta] = None
) -> str:
    """Create a JWT access token in the format the identity service issues."""
    expire = datetime.now(timezone.utc) + (expires_delta or ACCESS_TOKEN_EXPIRE)
    payload = {
        "sub": str(subject),
        "role": role,
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(payload, config.SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and verify a JWT token."""
    try:
        payload = jwt.decode(
            token, config.SECRET_KEY, algorithms=[config.JWT_ALGORITHM]
        )
        return payload
    except JWTError:
        raise UnauthorizedException(message="Invalid or expired token")
