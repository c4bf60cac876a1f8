"""
Identity collaborator: bearer token verification and the acting principal.

Tokens are issued by the identity provider; this service only verifies the
signature and reads the claims. ``create_access_token`` exists for tooling
(load tests, fixtures) that needs to mint tokens with the shared secret.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from planora.core.config import get_settings
from planora.core.logging import get_logger

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class Role(str, Enum):
    PARTICIPANT = "participant"
    ADMIN = "admin"


@dataclass(frozen=True)
class Principal:
    """The authenticated caller of an operation."""

    user_id: str
    email: str
    role: Role = Role.PARTICIPANT
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def display_name(self) -> str:
        return self.name or self.email.split("@")[0]

    def can_act_for(self, owner_id: str) -> bool:
        """Owner-or-admin capability check."""
        return self.is_admin or self.user_id == owner_id

    def as_participant(self) -> "Principal":
        """Same identity without admin capabilities (self-service routes)."""
        return replace(self, role=Role.PARTICIPANT)


def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None,
) -> str:
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode["exp"] = expire
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_principal(token: str) -> Principal:
    """Verify a bearer token and build the principal from its claims."""
    settings = get_settings()
    credentials_error = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.PyJWTError as e:
        logger.warning("token_rejected", error=str(e))
        raise credentials_error

    user_id = payload.get("sub")
    email = payload.get("email")
    if not user_id or not email:
        logger.warning("token_missing_claims", has_sub=bool(user_id), has_email=bool(email))
        raise credentials_error

    try:
        role = Role(payload.get("role", Role.PARTICIPANT.value))
    except ValueError:
        raise credentials_error

    return Principal(user_id=str(user_id), email=email, role=role, name=payload.get("name"))


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Principal:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return decode_principal(credentials.credentials)


async def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    return principal
