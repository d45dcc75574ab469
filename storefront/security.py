"""Password hashing and bearer token issuance."""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt
from passlib.context import CryptContext

from storefront.config import BCRYPT_ROUNDS, JWT_ALGORITHM, JWT_EXPIRES_MINUTES, JWT_SECRET
from storefront.errors import ExpiredToken, InvalidToken

logger = logging.getLogger(__name__)

password_ctx = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)


def hash_password(password: str) -> str:
    return password_ctx.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return password_ctx.verify(password, password_hash)


def create_access_token(user_id: int, expires_minutes: int = JWT_EXPIRES_MINUTES) -> str:
    """
    Issue a signed bearer token for a user.

    Args:
        user_id: User identifier
        expires_minutes: Token lifetime

    Returns:
        Encoded JWT
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Validate a bearer token and return its claims.

    Raises:
        ExpiredToken: If the token is past its expiry
        InvalidToken: If the signature or claims are invalid
    """
    try:
        claims = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise ExpiredToken()
    except jwt.InvalidTokenError as e:
        logger.debug("Token rejected", extra={"reason": str(e)})
        raise InvalidToken()

    try:
        claims["user_id"] = int(claims["sub"])
    except (KeyError, ValueError):
        raise InvalidToken()
    return claims
