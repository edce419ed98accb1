"""
tourney/rbac.py
Caller identity for the HTTP layer.

Login is handled by a separate identity service; this module decodes the
bearer JWT whose `sub` claim is the user id. create_access_token signs the
same claims for tests and local tooling. Manager/leader checks are done by
the engine.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from tourney.config.settings import settings
from tourney.errors import ErrorCode

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


# ================= TOKEN UTILS =================

def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token for user_id"""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = {
        "sub": str(user_id),
        "exp": expire,
        "type": "access"
    }
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Decode and validate JWT token"""
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None


# ================= AUTH DEPENDENCIES =================

def _unauthorized(message: str, code: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={
            "success": False,
            "error": "Unauthorized",
            "message": message,
            "code": code
        },
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> int:
    """
    User id from the bearer access token.
    Returns 401 if the token is missing, invalid or expired.
    """
    if credentials is None:
        raise _unauthorized("Authentication required", ErrorCode.AUTH_REQUIRED)

    payload = decode_token(credentials.credentials)
    if not payload or payload.get("type") != "access":
        raise _unauthorized("Invalid or expired token", ErrorCode.AUTH_INVALID)

    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        logger.warning(f"Token with malformed subject: {payload.get('sub')!r}")
        raise _unauthorized("Invalid or expired token", ErrorCode.AUTH_INVALID)
