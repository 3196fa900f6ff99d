"""
User signup and login.
"""

import asyncio
from typing import Tuple

import structlog

from bookreview_api.auth import hash_password, issue_token, verify_password
from bookreview_api.config import APIConfig
from bookreview_api.database import CatalogRepository
from bookreview_api.errors import ConflictError, DuplicateRecordError, UnauthenticatedError
from bookreview_api.models import LoginRequest, SignupRequest, UserResponse

logger = structlog.get_logger(__name__)

EMAIL_TAKEN = "User with this email already exists"
BAD_CREDENTIALS = "Incorrect email or password"


class UserService:
    """
    Account use cases; both return the public profile and a fresh token.

    Password hashing is CPU-bound and runs in a worker thread.
    """

    def __init__(self, repository: CatalogRepository, config: APIConfig):
        self.repository = repository
        self.config = config

    async def signup(self, data: SignupRequest) -> Tuple[UserResponse, str]:
        email = data.email.lower()
        if await self.repository.find_user_by_email(email) is not None:
            raise ConflictError(EMAIL_TAKEN)
        password_hash = await asyncio.to_thread(hash_password, data.password)
        try:
            user = await self.repository.create_user(data.name, email, password_hash)
        except DuplicateRecordError:
            raise ConflictError(EMAIL_TAKEN)

        logger.info("User signed up", user_id=user.id)
        return UserResponse.from_record(user), issue_token(user.id, self.config)

    async def login(self, data: LoginRequest) -> Tuple[UserResponse, str]:
        user = await self.repository.find_user_by_email(data.email.lower())
        if user is None or not await asyncio.to_thread(verify_password, data.password, user.password_hash):
            logger.warning("Failed login attempt")
            raise UnauthenticatedError(BAD_CREDENTIALS)

        logger.info("User logged in", user_id=user.id)
        return UserResponse.from_record(user), issue_token(user.id, self.config)
