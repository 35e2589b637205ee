# backend/evcharge/api/dependencies/auth.py
"""
Authentication dependencies.

Resolves the bearer token's email to an active User row. Role and ownership
checks are not done here; services apply them through the access policy.
"""

import asyncio
import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from ...auth import get_current_user_email
from ...models.user import User
from ...repositories.factory import RepositoryFactory
from .database import get_db

logger = logging.getLogger(__name__)


def _lookup_user(db: Session, email: str) -> Optional[User]:
    return RepositoryFactory.create_user_repository(db).get_by_email(email)


async def get_current_user(
    email: str = Depends(get_current_user_email),
    db: Session = Depends(get_db),
) -> User:
    """
    Get the authenticated user.

    Raises:
        HTTPException: 401 if no user matches the token, 403 if the account is inactive
    """
    user = await asyncio.to_thread(_lookup_user, db, email)
    if user is None:
        logger.warning(f"Token subject {email} does not match any user")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user")
    return user
