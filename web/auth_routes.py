"""
FastAPI routes for authentication and user administration.

Prefix: /api/auth
"""

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.concurrency import run_in_threadpool

from consult.models.user import PUBLIC_ROLES, User
from consult.utils.logger import get_logger
from .auth_deps import AppServices, get_current_user, get_services, require_admin
from .models import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    UserListResponse,
    UserPublic,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _user_to_public(user: User) -> UserPublic:
    return UserPublic.model_validate(user)


@router.post("/register", response_model=UserPublic, status_code=status.HTTP_201_CREATED)
async def register(
    req: RegisterRequest,
    services: AppServices = Depends(get_services),
) -> UserPublic:
    """
    Register a doctor or patient account.

    Admin accounts are never created here; the default admin is bootstrapped
    at startup.
    """
    if req.role not in PUBLIC_ROLES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Role must be 'doctor' or 'patient'",
        )

    user = await run_in_threadpool(
        services.credentials.register,
        req.login_id,
        req.password,
        req.role,
        req.full_name,
    )
    return _user_to_public(user)


@router.post("/login", response_model=LoginResponse)
async def login(
    req: LoginRequest,
    services: AppServices = Depends(get_services),
) -> LoginResponse:
    """Verify credentials and issue a signed session token"""
    user = await run_in_threadpool(services.credentials.authenticate, req.login_id, req.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid login id or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is disabled")

    token = services.credentials.issue_token(user)
    logger.info("User logged in", user_id=user.id, role=user.role)
    return LoginResponse(token=token, role=user.role, user=_user_to_public(user))


@router.get("/me", response_model=UserPublic)
async def me(current_user: User = Depends(get_current_user)) -> UserPublic:
    return _user_to_public(current_user)


@router.put("/password", status_code=status.HTTP_204_NO_CONTENT)
async def change_password(
    req: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    services: AppServices = Depends(get_services),
) -> Response:
    """Change the current user's password"""
    changed = await run_in_threadpool(
        services.credentials.change_password,
        current_user,
        req.current_password,
        req.new_password,
    )
    if not changed:
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/users", response_model=UserListResponse)
async def list_users(
    admin: User = Depends(require_admin),
    services: AppServices = Depends(get_services),
) -> UserListResponse:
    """List all users (admin only)"""
    users = await run_in_threadpool(services.store.list_users)
    return UserListResponse(users=[_user_to_public(u) for u in users])


async def _set_active(user_id: str, is_active: bool, admin: User, services: AppServices) -> UserPublic:
    if user_id == admin.id and not is_active:
        raise HTTPException(status_code=400, detail="Cannot deactivate your own account")
    if not await run_in_threadpool(services.store.find_user_by_id, user_id):
        raise HTTPException(status_code=404, detail="User not found")
    updated = await run_in_threadpool(services.store.update_user, user_id, is_active=is_active)
    logger.info(
        "User activation changed",
        user_id=user_id,
        is_active=is_active,
        changed_by=admin.id,
    )
    return _user_to_public(updated)


@router.post("/users/{user_id}/deactivate", response_model=UserPublic)
async def deactivate_user(
    user_id: str,
    admin: User = Depends(require_admin),
    services: AppServices = Depends(get_services),
) -> UserPublic:
    """Soft-disable a user (admin only); their tokens stop working immediately"""
    return await _set_active(user_id, False, admin, services)


@router.post("/users/{user_id}/activate", response_model=UserPublic)
async def activate_user(
    user_id: str,
    admin: User = Depends(require_admin),
    services: AppServices = Depends(get_services),
) -> UserPublic:
    """Re-enable a user (admin only)"""
    return await _set_active(user_id, True, admin, services)
