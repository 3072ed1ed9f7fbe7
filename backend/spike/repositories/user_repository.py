"""
Spike Server — User Repository (Data Access)
=============================================

What:  All SQL touching the `users` table.
How:   Wraps one AsyncSession. Lookups return None for missing rows; the
       service layer decides whether None means "not found" or "available".
       Writes flush (not commit); the session owner commits at request end.
Who:   Constructed per request by the route layer, used only by UserService.

Error Handling Strategy:
    Unique-constraint violations on insert → UserExistsError (409)
    Any other SQLAlchemy failure            → DatabaseError (500), details logged
                                              and kept in `context`, never returned
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from spike.exceptions import DatabaseError, UserExistsError
from spike.models.user import User

logger = logging.getLogger(__name__)


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, user: User) -> User:
        """
        Insert a new user and populate its id and timestamps.

        Raises:
            UserExistsError: username or email already taken
            DatabaseError:   any other database failure
        """
        self.session.add(user)
        try:
            await self.session.flush()
            await self.session.refresh(user)
        except IntegrityError as e:
            await self.session.rollback()
            logger.info("Duplicate user rejected by database: %s", user.username)
            raise UserExistsError(context={"username": user.username}) from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Database error creating user: %s", str(e), exc_info=True)
            raise DatabaseError(context={"operation": "create user", "error_type": type(e).__name__}) from e
        return user

    async def get_by_id(self, user_id: int) -> Optional[User]:
        return await self._one_or_none(select(User).where(User.id == user_id), "get user by id")

    async def get_by_username(self, username: str) -> Optional[User]:
        return await self._one_or_none(select(User).where(User.username == username), "get user by username")

    async def get_by_email(self, email: str) -> Optional[User]:
        return await self._one_or_none(select(User).where(User.email == email), "get user by email")

    async def update(self, user: User) -> User:
        """Persist changes made to an attached user (updated_at is bumped by the model)."""
        try:
            await self.session.flush()
            await self.session.refresh(user)
        except IntegrityError as e:
            await self.session.rollback()
            raise UserExistsError(context={"user_id": user.id}) from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Database error updating user %s: %s", user.id, str(e), exc_info=True)
            raise DatabaseError(context={"operation": "update user", "user_id": user.id}) from e
        return user

    async def delete(self, user_id: int) -> bool:
        """
        Soft delete: mark the user inactive.

        Returns:
            True if a user was deactivated, False if no such user exists.
        """
        user = await self.get_by_id(user_id)
        if user is None:
            return False
        user.is_active = False
        await self.update(user)
        return True

    async def _one_or_none(self, query, operation: str) -> Optional[User]:
        try:
            result = await self.session.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Database error during %s: %s", operation, str(e), exc_info=True)
            raise DatabaseError(context={"operation": operation, "error_type": type(e).__name__}) from e
