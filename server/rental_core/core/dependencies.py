"""FastAPI dependencies for authentication and idempotency."""

from typing import Optional

import jwt
from fastapi import Depends, Header
from jwt import PyJWTError

from .config import settings
from .exceptions import NotAuthenticatedError, ValidationError


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> dict:
    """
    Authentication dependency that validates Bearer tokens.

    Tokens are issued by the external identity provider; this service only
    verifies them.

    Args:
        authorization: Authorization header with Bearer token

    Returns:
        dict: User information from validated token

    Raises:
        NotAuthenticatedError: If token is invalid or missing
    """
    if not authorization:
        raise NotAuthenticatedError(detail="Authorization header missing")

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise NotAuthenticatedError(detail="Invalid authorization header format")

    if scheme.lower() != "bearer":
        raise NotAuthenticatedError(detail="Invalid authentication scheme")

    try:
        payload = jwt.decode(
            token,
            settings.bearer_token_secret,
            algorithms=["HS256"]
        )
    except PyJWTError as e:
        raise NotAuthenticatedError(detail=f"Token validation failed: {str(e)}")

    user_id = payload.get("sub")
    if user_id is None:
        raise NotAuthenticatedError(detail="Invalid token payload")

    return {
        "user_id": user_id,
        "username": payload.get("username"),
        "email": payload.get("email"),
        "roles": payload.get("roles", []),
    }


async def get_current_actor(user: dict = Depends(get_current_user)) -> str:
    """Identity recorded in audit and ledger entries for the calling staff member."""
    return str(user["user_id"])


async def get_idempotency_key(
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key")
) -> Optional[str]:
    """
    Extract and validate the idempotency key from request headers.

    Args:
        idempotency_key: Idempotency key from header

    Returns:
        str: Validated idempotency key or None if not provided

    Raises:
        ValidationError: If idempotency key format is invalid
    """
    if idempotency_key is None:
        return None

    if len(idempotency_key) < 1 or len(idempotency_key) > 255:
        raise ValidationError(
            detail="Idempotency key must be between 1 and 255 characters"
        )

    return idempotency_key


RequiredAuth = Depends(get_current_user)
CurrentActor = Depends(get_current_actor)
IdempotencyKey = Depends(get_idempotency_key)
