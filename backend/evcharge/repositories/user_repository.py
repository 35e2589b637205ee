# backend/evcharge/repositories/user_repository.py
"""Data access for users."""

import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.user import User
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository[User]):
    def __init__(self, db: Session):
        super().__init__(db, User)

    def get_by_email(self, email: str) -> Optional[User]:
        """Case-insensitive lookup by email (the token subject)."""
        try:
            return (
                self.db.query(User)
                .filter(func.lower(User.email) == (email or "").strip().lower())
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting user by email: {str(e)}")
            raise RepositoryException(f"Failed to retrieve user: {str(e)}")
