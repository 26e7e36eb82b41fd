import logging
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from config.settings import settings

logger = logging.getLogger(__name__)

# Define security scheme for Swagger UI (auto_error=False so we can return our own 401)
security = HTTPBearer(auto_error=False)


def _extract_token(header_val: str) -> Optional[str]:
    """Helper to strip 'Bearer ' prefix if present."""
    if not header_val:
        return None
    hv = header_val.strip()
    if hv.lower().startswith("bearer "):
        return hv.split(None, 1)[1].strip()
    return hv  # accept raw token


def create_access_token(user_id: str, role: str = "user") -> str:
    """Issue a signed token (used by dev tooling and tests; login lives in the auth service)."""
    return jwt.encode({"sub": user_id, "role": role}, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


async def get_current_user(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(security),
):
    """
    Async JWT auth dependency. Returns {"user_id", "role"}.
    """
    token_value = creds.credentials if creds and creds.credentials else None

    if not token_value:
        auth_header = request.headers.get("Authorization")
        if auth_header:
            token_value = _extract_token(auth_header)

    if not token_value:
        logger.warning("Authentication failed: no bearer token on %s", request.url.path)
        raise HTTPException(status_code=401, detail="Missing Authorization token")

    try:
        payload = jwt.decode(token_value, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.warning("Token expired")
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError as e:
        logger.warning("Token decode error: %s", e)
        raise HTTPException(status_code=401, detail="Invalid token")

    if not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid token")
    user = {"user_id": payload["sub"], "role": payload.get("role", "user")}
    request.state.user = user
    return user


def require_roles(*roles: str):
    """Dependency factory: allow only callers whose token role is in `roles`."""
    async def _dependency(user: dict = Depends(get_current_user)):
        if user.get("role") not in roles:
            raise HTTPException(status_code=403, detail="Insufficient role")
        return user
    return _dependency
