from dataclasses import dataclass
from typing import Annotated
import uuid
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from referral_core.config import CommissionConfig, get_commission_config
from referral_core.database import get_db
from referral_core.core.security import verify_access_token
from referral_core.models.referrer import Referrer
from referral_core.services.notification_service import NotificationService, get_notification_service


logger = logging.getLogger(__name__)

# HTTP Bearer security scheme
security = HTTPBearer()

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLE_SERVICE = "service"
ROLES = {ROLE_USER, ROLE_ADMIN, ROLE_SERVICE}


@dataclass(frozen=True)
class Principal:
    """Caller identity taken from the identity service's token."""
    user_id: uuid.UUID
    role: str = ROLE_USER

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> Principal:
    """
    Dependency to get the authenticated caller.
    Validates the JWT token; the account itself lives in the identity service.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = verify_access_token(credentials.credentials)
    if payload is None:
        logger.warning("Token verification failed - invalid or expired token")
        raise credentials_exception

    try:
        user_id = uuid.UUID(payload["sub"])
    except ValueError:
        logger.warning(f"Invalid user_id in token: {payload['sub']}")
        raise credentials_exception

    role = payload.get("role", ROLE_USER)
    if role not in ROLES:
        logger.warning(f"Unknown role '{role}' in token for {user_id}")
        raise credentials_exception

    return Principal(user_id=user_id, role=role)


async def require_admin(
    principal: Annotated[Principal, Depends(get_current_principal)],
) -> Principal:
    if principal.role != ROLE_ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return principal


async def require_internal(
    principal: Annotated[Principal, Depends(get_current_principal)],
) -> Principal:
    """Internal hooks are called by other services (or an admin)."""
    if principal.role not in (ROLE_SERVICE, ROLE_ADMIN):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Internal access required"
        )
    return principal


def ensure_owner_or_admin(principal: Principal, referrer: Referrer) -> None:
    if principal.is_admin or referrer.owned_by(principal.user_id):
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Not allowed to access this referrer"
    )


# Type aliases for cleaner endpoint signatures
DB = Annotated[AsyncSession, Depends(get_db)]
CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
AdminPrincipal = Annotated[Principal, Depends(require_admin)]
InternalPrincipal = Annotated[Principal, Depends(require_internal)]
Config = Annotated[CommissionConfig, Depends(get_commission_config)]
Notifier = Annotated[NotificationService, Depends(get_notification_service)]
