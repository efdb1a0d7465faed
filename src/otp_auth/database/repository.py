"""User repository — data access layer for identity lookups."""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from otp_auth.exceptions import DuplicateUserError
from otp_auth.models.user import User

logger = logging.getLogger(__name__)


class UserRepository:
    """Encapsulates all database queries related to users."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_by_email(self, email: str) -> User | None:
        """Look up a user by their normalised (lowercase) email."""
        stmt = select(User).where(User.email == email)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_id(self, user_id: int) -> User | None:
        return await self._session.get(User, user_id)

    async def create(self, email: str, full_name: str, date_of_birth: date) -> User:
        """Insert a new user.

        Raises ``DuplicateUserError`` if the email is already registered,
        including when a concurrent signup won the unique-constraint race.
        """
        user = User(email=email, full_name=full_name, date_of_birth=date_of_birth)
        self._session.add(user)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            await self._session.rollback()
            logger.info("Signup for %s lost to an existing account", email)
            raise DuplicateUserError() from exc
        return user
