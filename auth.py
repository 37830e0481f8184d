"""
Access control: resolves a request to the calling user's id and role.

Tokens are issued elsewhere; this module only verifies them.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from bson import ObjectId
from fastapi import Depends, Header
from jose import JWTError, jwt
from pydantic import BaseModel

from errors import AuthenticationError, AuthorizationError
from schemas import Role
from settings import get_settings

logger = logging.getLogger(__name__)


class Caller(BaseModel):
    id: str
    role: Role = Role.USER

    @property
    def object_id(self) -> ObjectId:
        return ObjectId(self.id)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_vendor(self) -> bool:
        return self.role == Role.VENDOR


def create_access_token(user_id: str, role: str = Role.USER.value, expires_minutes: int = 60 * 24) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "id": str(user_id),
        "role": Role(role).value,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Caller:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        logger.info(f"Rejected access token: {e}")
        raise AuthenticationError("Not authorized, token failed")

    user_id = payload.get("id") or payload.get("userId") or payload.get("sub")
    if not user_id or not ObjectId.is_valid(str(user_id)):
        raise AuthenticationError("Not authorized, token failed")
    try:
        role = Role(payload.get("role") or Role.USER.value)
    except ValueError:
        raise AuthenticationError("Not authorized, unknown role")
    return Caller(id=str(user_id), role=role)


def get_current_user(authorization: Optional[str] = Header(None)) -> Caller:
    if not authorization:
        raise AuthenticationError("Not authorized, no token provided")
    # both "Bearer <token>" and a bare token are accepted
    if authorization.startswith("Bearer"):
        parts = authorization.split(" ", 1)
        token = parts[1].strip() if len(parts) == 2 else ""
    else:
        token = authorization.strip()
    if not token:
        raise AuthenticationError("Not authorized, no token provided")
    return decode_access_token(token)


def require_roles(*roles: Role):
    """Dependency factory letting only the given roles through."""
    allowed = {Role(r) for r in roles}

    def dependency(caller: Caller = Depends(get_current_user)) -> Caller:
        if caller.role not in allowed:
            names = " or ".join(sorted(r.value for r in allowed))
            raise AuthorizationError(f"Not authorized - requires {names} role")
        return caller

    return dependency


require_admin = require_roles(Role.ADMIN)
require_vendor = require_roles(Role.VENDOR)
require_seller = require_roles(Role.ADMIN, Role.VENDOR)
