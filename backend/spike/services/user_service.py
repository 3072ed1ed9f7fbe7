"""
Spike Server — User Service (Business Logic)
=============================================

What:  Registration, login and user lookup rules.
How:   Composes UserRepository (persistence) and spike.security (bcrypt).
       Missing rows come back from the repository as None and are turned into
       UserNotFoundError here, so handlers only deal with exceptions.
Who:   Called by the auth and profile route handlers.

Business Rules:
    Register:
        1. Username and email must both be unused        → UserExistsError
        2. Username is trimmed; email is trimmed + lowercased
        3. Password is bcrypt-hashed; the plaintext is never stored or logged
        4. New users get role "user" and are active
    Login:
        1. `username` is tried as a username, then as an email
        2. Unknown user                                   → UserNotFoundError
        3. Inactive user                                  → UserInactiveError
        4. Wrong password                                 → InvalidCredentialsError

Cooperative cancellation:
    Methods accept the request Deadline and check it before bcrypt work, so a
    request that already timed out does not burn CPU on hashing.
"""

import asyncio
import logging
from typing import Optional

from spike.exceptions import (
    InvalidCredentialsError,
    UserExistsError,
    UserInactiveError,
    UserNotFoundError,
)
from spike.middleware.context import Deadline, check_deadline
from spike.models.user import User, UserRole
from spike.repositories.user_repository import UserRepository
from spike.schemas.user import LoginRequest, RegisterRequest
from spike.security import hash_password, verify_password

logger = logging.getLogger(__name__)


class UserService:
    """
    Stateless apart from its repository; one instance per request.

    Error Handling Strategy:
        Business failures raise the matching SpikeError subclass.
        Repository failures (DatabaseError) propagate unchanged.
    """

    def __init__(self, repository: UserRepository):
        self.repository = repository

    async def register(self, req: RegisterRequest, deadline: Optional[Deadline] = None) -> User:
        """
        Create a new account.

        Raises:
            UserExistsError:     username or email already registered
            RequestTimeoutError: deadline expired before hashing
            DatabaseError:       persistence failure
        """
        username = req.username.strip()
        email = req.email.strip().lower()

        if await self.repository.get_by_username(username) is not None:
            raise UserExistsError(context={"field": "username"})
        if await self.repository.get_by_email(email) is not None:
            raise UserExistsError(context={"field": "email"})

        check_deadline(deadline)
        password_hash = await asyncio.to_thread(hash_password, req.password)

        user = User(
            username=username,
            email=email,
            password_hash=password_hash,
            role=UserRole.USER.value,
            is_active=True,
        )
        await self.repository.create(user)

        logger.info("user registered", extra={"user_id": user.id, "username": user.username})
        return user

    async def login(self, req: LoginRequest, deadline: Optional[Deadline] = None) -> User:
        """
        Authenticate by username (or email) and password.

        Raises:
            UserNotFoundError:       no user with that username or email
            UserInactiveError:       account deactivated
            InvalidCredentialsError: password mismatch
        """
        user = await self.repository.get_by_username(req.username)
        if user is None:
            user = await self.repository.get_by_email(req.username.strip().lower())
        if user is None:
            raise UserNotFoundError(req.username)

        if not user.is_active:
            raise UserInactiveError(context={"user_id": user.id})

        check_deadline(deadline)
        if not await asyncio.to_thread(verify_password, req.password, user.password_hash):
            raise InvalidCredentialsError(context={"user_id": user.id})

        logger.info("user logged in", extra={"user_id": user.id, "username": user.username})
        return user

    async def get_user_by_id(self, user_id: int) -> User:
        user = await self.repository.get_by_id(user_id)
        if user is None:
            raise UserNotFoundError(str(user_id))
        return user

    async def get_user_by_username(self, username: str) -> User:
        user = await self.repository.get_by_username(username)
        if user is None:
            raise UserNotFoundError(username)
        return user
