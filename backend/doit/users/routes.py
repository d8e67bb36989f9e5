"""
backend/doit/users/routes.py

User Routes
Defines API endpoints for user profiles:
- Create or fetch the caller's profile (Authenticated)
- Update the caller's profile and avatar (Authenticated)
- Check whether a display name is taken (Public)
- Read another user's profile and level (Public)
"""

from typing import Annotated

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile, status

from doit.core.dependencies import CurrentUserDep, get_user_service
from doit.core.limiter import limiter
from doit.images.services import ImageUpload
from doit.users import schemas
from doit.users.services import UserService, get_user_level

router = APIRouter(prefix="/users", tags=["Users"])

UserServiceDep = Annotated[UserService, Depends(get_user_service)]


# ----------------------------------------------------
# Authenticated Profile Endpoints
# ----------------------------------------------------
@router.post(
    "/me",
    response_model=schemas.UserProfileRead,
    status_code=status.HTTP_200_OK,
    summary="Ensure Profile",
    description="Create the caller's profile on first sign-in, or return the existing one.",
)
async def ensure_my_profile(
    current_user_id: CurrentUserDep,
    service: UserServiceDep,
    payload: schemas.UserProfileUpdate | None = None,
) -> schemas.UserProfileRead:
    display_name = payload.display_name if payload else None
    return await service.create_user_profile(current_user_id, display_name=display_name)


@router.get(
    "/me",
    response_model=schemas.UserProfileRead,
    status_code=status.HTTP_200_OK,
    summary="My Profile",
)
async def get_my_profile(current_user_id: CurrentUserDep, service: UserServiceDep) -> schemas.UserProfileRead:
    return await service.get_profile_or_404(current_user_id)


@router.patch(
    "/me",
    response_model=schemas.UserProfileRead,
    status_code=status.HTTP_200_OK,
    summary="Update My Profile",
)
@limiter.limit("10/minute")
async def update_my_profile(
    request: Request,
    payload: schemas.UserProfileUpdate,
    current_user_id: CurrentUserDep,
    service: UserServiceDep,
) -> schemas.UserProfileRead:
    data = payload.model_dump(by_alias=True, exclude_unset=True)
    return await service.update_user_profile(current_user_id, data)


@router.post(
    "/me/avatar",
    response_model=schemas.UserProfileRead,
    status_code=status.HTTP_200_OK,
    summary="Upload Avatar",
    description="Upload a JPEG, PNG, WebP or GIF avatar (max 5 MB).",
)
@limiter.limit("5/minute")
async def upload_my_avatar(
    request: Request,
    current_user_id: CurrentUserDep,
    service: UserServiceDep,
    file: UploadFile = File(...),
) -> schemas.UserProfileRead:
    data = await file.read()
    return await service.upload_avatar(current_user_id, ImageUpload(data=data, filename=file.filename))


# ----------------------------------------------------
# Public Endpoints
# ----------------------------------------------------
@router.get(
    "/username-exists",
    response_model=schemas.UsernameCheck,
    status_code=status.HTTP_200_OK,
    summary="Check Display Name",
)
async def check_username(
    service: UserServiceDep,
    username: str = Query(..., min_length=1),
) -> schemas.UsernameCheck:
    exists = await service.username_exists(username)
    return schemas.UsernameCheck(username=username, exists=exists)


@router.get(
    "/{user_id}",
    response_model=schemas.UserProfileRead,
    status_code=status.HTTP_200_OK,
    summary="User Profile",
)
async def get_profile(user_id: str, service: UserServiceDep) -> schemas.UserProfileRead:
    return await service.get_profile_or_404(user_id)


@router.get(
    "/{user_id}/level",
    response_model=schemas.UserLevel,
    status_code=status.HTTP_200_OK,
    summary="User Level",
)
async def get_level(user_id: str, service: UserServiceDep) -> schemas.UserLevel:
    profile = await service.get_profile_or_404(user_id)
    return get_user_level(profile.completed_tasks, profile.rating)
