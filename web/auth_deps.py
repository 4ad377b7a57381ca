"""
FastAPI dependencies for authentication and authorization.

Every protected request starts unauthenticated. get_current_user verifies
the bearer token and resolves the acting user; require_role() additionally
checks the user's role. Nothing is carried over between requests.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool

from consult.auth.credentials import CredentialService
from consult.models.user import User, UserRole
from consult.storage.config_store import ConfigProvider
from consult.storage.document_store import DocumentStore
from consult.storage.resolver import StorageResolver
from consult.utils.config import Settings
from consult.utils.exceptions import AuthError, ForbiddenError, ForbiddenErrorKind
from consult.utils.logger import get_logger

logger = get_logger(__name__)

UNAUTHENTICATED_HEADERS = {"WWW-Authenticate": "Bearer"}


@dataclass
class AppServices:
    """Collaborators shared by all routes, attached to app.state"""

    settings: Settings
    store: DocumentStore
    credentials: CredentialService
    config_provider: ConfigProvider
    resolver: StorageResolver


def get_services(request: Request) -> AppServices:
    return request.app.state.services


def get_bearer_token(request: Request) -> Optional[str]:
    """Extract the token from 'Authorization: Bearer <token>'"""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_user(
    request: Request,
    services: AppServices = Depends(get_services),
) -> User:
    """Dependency to get current authenticated user"""
    token = get_bearer_token(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers=UNAUTHENTICATED_HEADERS,
        )

    try:
        claims = services.credentials.verify_token(token)
    except AuthError as e:
        # Same response for every failure kind; the kind is only logged
        logger.info("Token rejected", kind=e.kind.value, path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers=UNAUTHENTICATED_HEADERS,
        )

    user = await run_in_threadpool(services.store.find_user_by_id, claims.user_id)
    if not user or not user.is_active:
        logger.info("Token subject unavailable", user_id=claims.user_id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers=UNAUTHENTICATED_HEADERS,
        )

    request.state.user = user
    request.state.role = user.role
    return user


def require_role(*roles: UserRole):
    """Dependency factory for role-based access control"""
    allowed = {UserRole(r).value for r in roles}

    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if UserRole(current_user.role).value not in allowed:
            logger.info("Role check failed", user_id=current_user.id, role=current_user.role)
            raise ForbiddenError(
                f"Requires {' or '.join(sorted(allowed))} role", ForbiddenErrorKind.ROLE_MISMATCH
            )
        return current_user

    return role_checker


# Pre-configured dependencies
require_admin = require_role(UserRole.ADMIN)
require_auth = get_current_user
