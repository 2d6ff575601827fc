"""Caller identity for the HTTP API.

Login and account binding live in an external identity service; this
service only verifies the bearer JWT it issues and reads the uid from `sub`.
"""

import hmac
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from callmatch import config
from callmatch.errors import AuthenticationError

bearer_scheme = HTTPBearer(auto_error=False)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Decode and validate a JWT access token."""
    if not config.JWT_SECRET_KEY:
        raise AuthenticationError("Token verification is not configured")
    try:
        payload: Dict[str, Any] = jwt.decode(
            token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM]
        )
    except jwt.ExpiredSignatureError as e:
        raise AuthenticationError("Token has expired") from e
    except jwt.InvalidTokenError as e:
        raise AuthenticationError("Could not validate credentials") from e
    return payload


def uid_from_token(token: str) -> str:
    payload = decode_access_token(token)
    sub = payload.get("sub")
    if not sub:
        raise AuthenticationError("Could not validate credentials")
    return str(sub)


async def get_current_uid(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """Dependency resolving the authenticated caller uid."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return uid_from_token(credentials.credentials)
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


async def require_ops_key(x_ops_key: Optional[str] = Header(default=None)) -> None:
    """Guard for operational endpoints; open when OPS_API_KEY is unset."""
    if not config.OPS_API_KEY:
        return
    if not x_ops_key or not hmac.compare_digest(x_ops_key, config.OPS_API_KEY):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Invalid ops key"
        )
