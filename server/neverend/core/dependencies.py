"""FastAPI dependencies for database sessions, admin authentication and idempotent intake."""

import hashlib
import time
from datetime import datetime
from typing import AsyncGenerator, Optional

import jwt
from fastapi import Depends, Header
from jwt import PyJWTError
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from .database import get_async_session
from .exceptions import AuthenticationError, ValidationError


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Database dependency that provides async database sessions.

    Yields:
        AsyncSession: Database session
    """
    async for session in get_async_session():
        yield session


async def get_current_admin(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> dict:
    """
    Authentication dependency for admin panel endpoints.

    Args:
        authorization: Authorization header with Bearer token

    Returns:
        dict: Admin information from the validated token

    Raises:
        AuthenticationError: If the token is missing, malformed or invalid
    """
    if not authorization:
        raise AuthenticationError(detail="Authorization header missing")

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise AuthenticationError(detail="Invalid authorization header format")

    if scheme.lower() != "bearer":
        raise AuthenticationError(detail="Invalid authentication scheme")

    try:
        payload = jwt.decode(
            token,
            settings.bearer_token_secret,
            algorithms=["HS256"]
        )
    except PyJWTError as e:
        raise AuthenticationError(detail=f"Token validation failed: {e}")

    username = payload.get("sub")
    if username is None:
        raise AuthenticationError(detail="Invalid token payload")

    exp = payload.get("exp")
    if exp and datetime.utcnow().timestamp() > exp:
        raise AuthenticationError(detail="Token has expired")

    return {
        "username": username,
        "roles": payload.get("roles", []),
    }


# In-memory replay cache for application intake, keyed by hashed Idempotency-Key
_idempotency_cache: dict[str, dict] = {}


def _cleanup_expired_keys() -> None:
    """Remove expired idempotency keys from cache."""
    current_time = time.time()
    expired_keys = [
        key for key, data in _idempotency_cache.items()
        if current_time - data["timestamp"] > settings.idempotency_ttl_seconds
    ]
    for key in expired_keys:
        del _idempotency_cache[key]


def clear_idempotency_cache() -> None:
    _idempotency_cache.clear()


async def get_idempotency_key(
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key")
) -> Optional[str]:
    """
    Extract and validate idempotency key from request headers.

    Args:
        idempotency_key: Idempotency key from header

    Returns:
        str: Hashed idempotency key or None if not provided

    Raises:
        ValidationError: If idempotency key is too long
    """
    if not idempotency_key:
        return None

    _cleanup_expired_keys()

    if len(idempotency_key) > 255:
        raise ValidationError(detail="Idempotency key must be between 1 and 255 characters")

    return hashlib.sha256(idempotency_key.encode()).hexdigest()


async def check_idempotency(
    idempotency_key: Optional[str] = Depends(get_idempotency_key)
) -> Optional[dict]:
    """
    Return the stored response for a replayed idempotency key.

    Args:
        idempotency_key: Hashed idempotency key

    Returns:
        dict: Previous response if found, None otherwise
    """
    if not idempotency_key:
        return None

    cached = _idempotency_cache.get(idempotency_key)
    if cached:
        if time.time() - cached["timestamp"] <= settings.idempotency_ttl_seconds:
            return cached["response"]
        del _idempotency_cache[idempotency_key]

    return None


async def store_idempotent_response(
    response_data: dict,
    idempotency_key: Optional[str] = None
) -> None:
    """
    Store response for idempotency key.

    Args:
        response_data: Response data to cache
        idempotency_key: Hashed idempotency key
    """
    if not idempotency_key:
        return

    if len(_idempotency_cache) >= settings.idempotency_cache_size:
        oldest_key = min(
            _idempotency_cache.keys(),
            key=lambda k: _idempotency_cache[k]["timestamp"]
        )
        del _idempotency_cache[oldest_key]

    _idempotency_cache[idempotency_key] = {
        "response": response_data,
        "timestamp": time.time()
    }


RequiredAdmin = Depends(get_current_admin)
DatabaseSession = Depends(get_db)
