"""Bearer tokens issued by the external identity provider.

Claims used by the API: ``sub`` (user id), ``role`` (ADMIN or AGENT),
``adminId`` (tenant of an agent) and ``email``.
"""
from jose import JWTError, jwt
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict

from drivecrm.config import Settings

JWT_EXPIRATION_HOURS = 24


def create_access_token(data: Dict, settings: Settings, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token (local tooling and tests)."""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(hours=JWT_EXPIRATION_HOURS)

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Settings) -> Optional[Dict]:
    """Decode and validate a JWT token."""
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
