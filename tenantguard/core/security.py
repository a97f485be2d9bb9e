"""
Token utilities.

Credential verification happens upstream; this module only validates bearer
tokens and, for tooling and tests, mints them.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from tenantguard.config import settings

logger = logging.getLogger(__name__)


def create_access_token(
    subject: str | int | dict[str, Any],
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        subject: User ID or custom claims dictionary
        expires_delta: Token expiration time (default: from settings)

    Returns:
        Encoded JWT token
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)

    now = datetime.now(timezone.utc)

    if isinstance(subject, dict):
        to_encode = subject.copy()
    else:
        to_encode = {"sub": str(subject)}

    to_encode.update({
        "exp": now + expires_delta,
        "iat": now,
        "type": "access"
    })

    return jwt.encode(
        to_encode,
        settings.secret_key,
        algorithm=settings.algorithm
    )


def decode_token(token: str) -> dict[str, Any]:
    """
    Decode and validate a JWT token.

    Raises:
        JWTError: If token is invalid or expired
    """
    try:
        return jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.algorithm]
        )
    except JWTError as e:
        logger.warning(f"JWT decode error: {e}")
        raise
