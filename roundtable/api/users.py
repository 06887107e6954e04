"""
roundtable/api/users.py
Profile setup and self-service profile management.
"""

from fastapi import APIRouter, Depends

from roundtable.core.auth import get_current_user
from roundtable.core.database import Database, get_database
from roundtable.core.errors import NotFoundError
from roundtable.features.users.service import (
    delete_user,
    get_public_profile,
    get_user,
    setup_profile,
    update_user_profile,
)
from roundtable.models.user import AuthenticatedUser, UserProfileRequest, UserUpdateRequest

router = APIRouter(prefix="/api/users", tags=["users"])


@router.post("")
def setup_profile_endpoint(
    body: UserProfileRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Database = Depends(get_database),
):
    """Create or complete the caller's profile on first login"""
    profile = setup_profile(
        db,
        user.uid,
        email=body.email or user.email,
        display_name=body.display_name or user.name,
        preferences=body.preferences.model_dump() if body.preferences else None,
    )
    return {"data": profile.model_dump()}


@router.get("/me")
def get_me_endpoint(
    user: AuthenticatedUser = Depends(get_current_user),
    db: Database = Depends(get_database),
):
    profile = get_user(db, user.uid)
    if not profile:
        raise NotFoundError("User not found")
    return {"data": profile.model_dump()}


@router.get("/{user_id}")
def get_profile_endpoint(
    user_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Database = Depends(get_database),
):
    return {"data": get_public_profile(db, user_id)}


@router.put("/{user_id}")
def update_profile_endpoint(
    user_id: str,
    body: UserUpdateRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Database = Depends(get_database),
):
    return {"data": update_user_profile(db, user_id, body.model_dump(exclude_unset=True), user.uid)}


@router.delete("/{user_id}")
def delete_profile_endpoint(
    user_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Database = Depends(get_database),
):
    delete_user(db, user_id, user.uid)
    return {"data": {"id": user_id, "deleted": True}}
