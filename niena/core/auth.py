"""
Caller identity for the API.

- bcrypt password hashes (passlib)
- JWT access tokens carrying the user id in "sub" (python-jose)
- FastAPI dependencies for protected routes, which also apply the
  suspension and subscription expiry rules on every request
"""

from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from niena.core.config import get_settings
from niena.services import account_service

settings = get_settings()

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

bearer_scheme = HTTPBearer()
optional_bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token."""
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[dict]:
    """Decode and verify JWT token. None when invalid or expired."""
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


def _user_id_from_token(token: str) -> Optional[int]:
    payload = decode_token(token)
    if not payload or not payload.get("sub"):
        return None
    try:
        return int(payload["sub"])
    except (TypeError, ValueError):
        return None


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)) -> dict:
    """
    FastAPI dependency - Get current authenticated user.

    Suspended accounts get 403. A paid plan past its expiry date is
    downgraded here and the request fails with 412 SUBSCRIPTION_EXPIRED
    (raised as a NienaError, mapped by the app's exception handler).

    Usage:
        @router.get("/protected")
        async def route(user: dict = Depends(get_current_user)):
            return user
    """
    return _load_active_user(credentials.credentials)


async def get_stream_user(token: str = Query(..., description="JWT access token")) -> dict:
    """Same checks as get_current_user; EventSource cannot send headers."""
    return _load_active_user(token)


def _load_active_user(token: str) -> dict:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )

    user_id = _user_id_from_token(token)
    if user_id is None:
        raise credentials_exception

    user = account_service.get_user(user_id)
    if not user:
        raise credentials_exception

    if not user["is_active"]:
        raise HTTPException(status_code=403, detail="Account deactivated")

    account_service.ensure_not_suspended(user)
    account_service.enforce_plan_expiry(user)
    return user


async def get_current_admin(user: dict = Depends(get_current_user)) -> dict:
    if user["role"] != "admin":
        raise HTTPException(status_code=403, detail="Admins only")
    return user


async def get_optional_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_bearer_scheme)
) -> Optional[int]:
    """User ID for routes that also serve anonymous visitors (job views)."""
    if credentials is None:
        return None
    return _user_id_from_token(credentials.credentials)
