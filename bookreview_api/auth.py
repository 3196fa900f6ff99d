"""
Authentication for the FastAPI API: bearer tokens and password hashing.

Tokens are HS256 JWTs signed with ``APIConfig.jwt_secret``; their payload is
``{"id": <user id>}`` plus ``iat``/``exp`` claims.
"""

import hashlib
import hmac
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from bookreview_api.config import APIConfig
from bookreview_api.database import to_object_id
from bookreview_api.errors import UnauthenticatedError

logger = structlog.get_logger(__name__)

NOT_LOGGED_IN = "You are not logged in. Please log in to get access"
INVALID_TOKEN = "Invalid or expired token"

PBKDF2_ITERATIONS = 100_000

# Missing or non-Bearer headers yield None so the message stays ours.
security = HTTPBearer(auto_error=False)


def issue_token(user_id: str, config: APIConfig, now: Optional[datetime] = None) -> str:
    """
    Sign a token for a user.

    Args:
        user_id: Identifier placed in the ``id`` claim
        config: Settings holding the secret, algorithm and lifetime
        now: Issue time, defaults to the current UTC time

    Returns:
        Encoded JWT
    """
    issued_at = now or datetime.now(timezone.utc)
    expires_at = issued_at + timedelta(minutes=config.access_token_expire_minutes)
    claims = {
        "id": user_id,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    return jwt.encode(claims, config.jwt_secret, algorithm=config.jwt_algorithm)


def decode_token(token: str, config: APIConfig) -> str:
    """
    Verify a token and return the user id it carries.

    Raises:
        UnauthenticatedError: If the signature or expiry is invalid, or the
            ``id`` claim is not a user identifier
    """
    try:
        payload = jwt.decode(token, config.jwt_secret, algorithms=[config.jwt_algorithm])
    except JWTError as e:
        logger.info("Token rejected", reason=str(e))
        raise UnauthenticatedError(INVALID_TOKEN)

    user_id = payload.get("id")
    if to_object_id(user_id) is None:
        logger.info("Token rejected", reason="missing or malformed id claim")
        raise UnauthenticatedError(INVALID_TOKEN)
    return user_id


def authenticate(credentials: Optional[HTTPAuthorizationCredentials], config: APIConfig) -> str:
    """
    Resolve the caller from parsed ``Authorization`` credentials.

    Raises:
        UnauthenticatedError: If no bearer token is present or it is invalid
    """
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise UnauthenticatedError(NOT_LOGGED_IN)
    return decode_token(credentials.credentials, config)


def get_config(request: Request) -> APIConfig:
    """Dependency returning the settings the app was built with."""
    return request.app.state.config


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    config: APIConfig = Depends(get_config)
) -> str:
    """
    Dependency that authenticates the request.

    The user id is also stored on ``request.state.user_id``.
    """
    user_id = authenticate(credentials, config)
    request.state.user_id = user_id
    return user_id


def hash_password(password: str) -> str:
    """
    Hash a password with PBKDF2-HMAC-SHA256 and a random 16-byte salt.

    Returns:
        ``<salt hex>$<hash hex>``
    """
    salt = os.urandom(16)
    dk = hashlib.pbkdf2_hmac('sha256', password.encode('utf-8'), salt, PBKDF2_ITERATIONS)
    return f"{salt.hex()}${dk.hex()}"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Check a password against a ``salt$hash`` string in constant time."""
    try:
        salt_hex, hash_hex = hashed_password.split('$', 1)
        salt = bytes.fromhex(salt_hex)
        stored_hash = bytes.fromhex(hash_hex)
    except ValueError:
        return False
    dk = hashlib.pbkdf2_hmac('sha256', plain_password.encode('utf-8'), salt, PBKDF2_ITERATIONS)
    return hmac.compare_digest(dk, stored_hash)
