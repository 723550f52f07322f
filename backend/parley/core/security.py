"""
Security utilities for bearer token verification.

Tokens are issued by the identity service; this process only verifies the
signature and reads the claims it needs (user id and language preference).
"""
import logging
from typing import Any, Optional
from jose import jwt, JWTError
from parley.core.config import settings


logger = logging.getLogger(__name__)


def decode_access_token(token: str) -> Optional[dict[str, Any]]:
    """
    Decode and validate a JWT token.

    Args:
        token: JWT token string

    Returns:
        Dictionary containing token payload if valid, None otherwise
    """
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        logger.info("JWT decode error: %s", e)
        return None
