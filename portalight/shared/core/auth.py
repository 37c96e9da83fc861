import hashlib
from datetime import datetime, timedelta, timezone
from enum import Enum
from functools import lru_cache
from typing import Any, Callable, Optional, cast
from uuid import UUID

import jwt
import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from portalight.shared.core.config import get_settings

logger = structlog.get_logger()

__all__ = [
    "CurrentUser",
    "UserRole",
    "create_access_token",
    "decode_jwt",
    "get_current_user",
    "requires_role",
    "require_provisioning_permission",
]

security = HTTPBearer(auto_error=False)


class UserRole(str, Enum):
    SUPERADMIN = "superadmin"
    LEAD = "lead"
    DEV = "dev"


ROLE_HIERARCHY = {UserRole.SUPERADMIN: 100, UserRole.LEAD: 50, UserRole.DEV: 10}


def _hash_email(email: str | None) -> str | None:
    if not email:
        return None
    return hashlib.sha256(email.strip().lower().encode()).hexdigest()[:12]


class CurrentUser(BaseModel):
    """
    Represents the authenticated user from the JWT.
    """

    id: UUID
    email: str
    role: UserRole = UserRole.DEV
    team_id: Optional[UUID] = None
    # Resource types a dev may provision (s3, sqs, sns)
    provisioning_permissions: list[str] = Field(default_factory=list)


def create_access_token(
    data: dict[str, Any], expires_delta: Optional[timedelta] = None
) -> str:
    """
    Generate a new JWT signed with the application secret.
    """
    settings = get_settings()
    if not settings.JWT_SECRET:
        raise ValueError("JWT_SECRET is not configured")

    to_encode = data.copy()
    to_encode.setdefault("aud", settings.JWT_AUDIENCE)
    to_encode["exp"] = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.JWT_EXPIRE_MINUTES)
    )
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm="HS256")


def decode_jwt(token: str) -> dict[str, Any]:
    """
    Decode and verify a bearer token.

    Raises:
        HTTPException 401 if token is invalid or expired
    """
    settings = get_settings()
    if not settings.JWT_SECRET:
        logger.error("jwt_secret_missing_in_decode")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication is not configured",
        )

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=["HS256"],
            audience=settings.JWT_AUDIENCE,
        )
        return cast(dict[str, Any], payload)
    except jwt.ExpiredSignatureError:
        logger.warning("jwt_expired")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
        )
    except jwt.InvalidTokenError as e:
        logger.warning("jwt_invalid", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> CurrentUser:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_jwt(credentials.credentials)
    user_id = payload.get("sub")
    email = payload.get("email")
    if not user_id or not email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    try:
        role = UserRole(str(payload.get("role") or UserRole.DEV.value))
        user = CurrentUser(
            id=UUID(str(user_id)),
            email=email,
            role=role,
            team_id=payload.get("team_id"),
            provisioning_permissions=list(payload.get("provisioning_permissions") or []),
        )
    except ValueError as exc:
        logger.warning("jwt_claims_invalid", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    logger.debug("user_authenticated", user_id=user_id, email_hash=_hash_email(email))
    return user


@lru_cache(maxsize=32)
def requires_role(required_role: str) -> Callable[[CurrentUser], CurrentUser]:
    """
    FastAPI dependency for RBAC.

    Usage:
        @router.post("/catalog/sync")
        async def sync(user: CurrentUser = Depends(requires_role("lead"))):
            ...

    Access Levels:
    - superadmin: everything
    - lead: catalog configuration, sync, discovery and association
    - dev: read access and provisioning of permitted resource types
    """

    def role_checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role == UserRole.SUPERADMIN:
            return user

        user_level = ROLE_HIERARCHY.get(user.role, 0)
        required_level = ROLE_HIERARCHY.get(UserRole(required_role), 10)

        if user_level < required_level:
            logger.warning(
                "insufficient_permissions",
                user_id=str(user.id),
                user_role=user.role.value,
                required_role=required_role,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required role: {required_role}",
            )
        return user

    return role_checker


def require_provisioning_permission(user: CurrentUser, resource_type: str) -> None:
    """Leads and superadmins provision anything; devs need an explicit grant per type."""
    if user.role in (UserRole.SUPERADMIN, UserRole.LEAD):
        return
    if resource_type in user.provisioning_permissions:
        return
    logger.warning(
        "provisioning_permission_denied",
        user_id=str(user.id),
        resource_type=resource_type,
    )
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail=f"You do not have permission to provision {resource_type} resources",
    )
