"""Authentication and authorization dependencies."""
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from storefront.database import get_db
from storefront.errors import AuthError
from storefront.models import Order, User
from storefront.monitoring import auth_attempts_counter, auth_failures_counter
from storefront.security import decode_access_token

logger = logging.getLogger(__name__)


def verify_token(authorization: Optional[str] = Header(None)) -> str:
    """
    Extract the bearer token from the Authorization header.

    Args:
        authorization: Authorization header value

    Returns:
        Raw token

    Raises:
        HTTPException: If the header is missing or malformed
    """
    auth_attempts_counter.add(1, {"type": "bearer_token"})

    if authorization is None:
        auth_failures_counter.add(1, {"reason": "missing_header"})
        logger.warning("Authentication failed: Missing authorization header")
        raise HTTPException(status_code=401, detail="Not authorized, no token")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        auth_failures_counter.add(1, {"reason": "invalid_format"})
        logger.warning("Authentication failed: Invalid authorization header format", extra={
            "auth_header": authorization[:20] + "..." if len(authorization) > 20 else authorization
        })
        raise HTTPException(status_code=401, detail="Invalid authorization header format")

    return parts[1]


def get_current_user(
    token: str = Depends(verify_token),
    db: Session = Depends(get_db)
) -> User:
    """
    Resolve the authenticated, active user behind a bearer token.

    Raises:
        HTTPException: If the token is invalid, expired, or the account is inactive
    """
    try:
        claims = decode_access_token(token)
    except AuthError as e:
        auth_failures_counter.add(1, {"reason": type(e).__name__})
        logger.warning("Authentication failed", extra={
            "reason": e.message,
            "token_prefix": token[:8] + "..." if len(token) > 8 else token
        })
        raise HTTPException(status_code=401, detail=e.message)

    user = db.get(User, claims["user_id"])
    if user is None or not user.is_active:
        auth_failures_counter.add(1, {"reason": "inactive_user"})
        logger.warning("Authentication failed: Unknown or inactive user", extra={
            "user_id": claims["user_id"]
        })
        raise HTTPException(status_code=401, detail="User not found or inactive")

    logger.debug("Authentication successful", extra={"user_id": user.id})
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    """Allow only admin accounts through."""
    if not user.is_admin:
        logger.warning("Authorization failed: Admin role required", extra={
            "user_id": user.id,
            "role": user.role
        })
        raise HTTPException(status_code=403, detail="Access denied, admin role required")
    return user


def is_owner_or_admin(caller: User, order: Order) -> bool:
    """Single capability check for reading or cancelling an order."""
    return caller.is_admin or order.user_id == caller.id
