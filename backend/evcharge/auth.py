# backend/evcharge/auth.py
"""
Bearer token verification.

Tokens are issued by the account service; this API only verifies them.
``create_access_token`` mints tokens with the same claims for local tooling
and tests.
"""

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, Optional, cast

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
import jwt
from jwt import PyJWTError

from .core.config import settings

logger = logging.getLogger(__name__)

oauth2_scheme_optional = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Decode and verify a JWT access token signed with the shared secret."""
    payload_raw = jwt.decode(
        token,
        settings.secret_key.get_secret_value(),
        algorithms=[settings.algorithm],
        options={"verify_aud": False},
    )
    return cast(Dict[str, Any], payload_raw)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: The data to encode in the token (``sub`` is the user email)
        expires_delta: Optional expiration time delta

    Returns:
        str: The encoded JWT token
    """
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.access_token_expire_minutes
        )
    to_encode.update({"exp": expire})

    encoded_jwt = cast(
        str,
        jwt.encode(
            to_encode,
            settings.secret_key.get_secret_value(),
            algorithm=settings.algorithm,
        ),
    )
    logger.debug(f"Created access token for user: {data.get('sub')}")
    return encoded_jwt


async def get_current_user_email(token: Optional[str] = Depends(oauth2_scheme_optional)) -> str:
    """
    Dependency to get the current authenticated user email from JWT token.

    Raises:
        HTTPException: 401 if the token is missing, invalid or expired
    """
    not_authenticated = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )
    invalid_credentials = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not token:
        raise not_authenticated
    try:
        payload = decode_access_token(token)
    except PyJWTError as e:
        logger.warning(f"JWT validation error: {str(e)}")
        raise invalid_credentials

    email = payload.get("sub")
    if not isinstance(email, str) or not email:
        logger.warning("Token payload missing 'sub' field")
        raise invalid_credentials

    logger.debug(f"Successfully validated token for user: {email}")
    return email
