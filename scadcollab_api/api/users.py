"""User profile endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from ..errors import StoreUnavailable
from ..models import UserProfile, UserProfileRequest
from .dependencies import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


@router.put("/{uid}", response_model=UserProfile)
async def upsert_user(
    uid: str,
    profile: UserProfileRequest,
    services: Services = Depends(get_services),
) -> UserProfile:
    """Create the profile on first sign-in, otherwise update it and last_login."""
    try:
        if await services.users.get(uid) is None:
            return await services.users.create(
                uid, profile.email, profile.display_name, profile.photo_url
            )
        return await services.users.update(uid, **profile.model_dump(exclude_none=True))
    except StoreUnavailable as e:
        logger.error(f"Error saving user profile {uid}: {e}")
        raise HTTPException(status_code=503, detail="Document store unavailable")


@router.get("/{uid}", response_model=UserProfile)
async def get_user(uid: str, services: Services = Depends(get_services)) -> UserProfile:
    try:
        profile = await services.users.get(uid)
    except StoreUnavailable:
        raise HTTPException(status_code=503, detail="Document store unavailable")
    if profile is None:
        raise HTTPException(status_code=404, detail="User not found")
    return profile
