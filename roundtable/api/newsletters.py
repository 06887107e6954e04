"""
roundtable/api/newsletters.py
Newsletter CRUD and membership management.
"""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from roundtable.core.auth import get_current_user_id
from roundtable.core.database import Database, get_database
from roundtable.features.newsletters.service import (
    add_user_to_newsletter,
    create_newsletter,
    delete_newsletter,
    get_newsletter_for_user,
    get_newsletter_members,
    get_newsletters_for_user,
    join_newsletter,
    remove_user_from_newsletter,
    update_newsletter,
    update_user_role,
)
from roundtable.models.newsletter import MemberAddRequest, MemberRoleRequest, NewsletterCreateRequest

router = APIRouter(prefix="/api/newsletters", tags=["newsletters"])


@router.get("")
def list_newsletters_endpoint(
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    """Newsletters the caller belongs to"""
    items = get_newsletters_for_user(db, user_id)
    return {"data": items, "count": len(items)}


@router.post("", status_code=201)
def create_newsletter_endpoint(
    body: NewsletterCreateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    newsletter_id = create_newsletter(db, user_id, body.name, body.description, body.prompt, body.settings)
    return {"data": {"id": newsletter_id}}


@router.get("/{newsletter_id}")
def get_newsletter_endpoint(
    newsletter_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    return {"data": get_newsletter_for_user(db, newsletter_id, user_id).model_dump()}


@router.put("/{newsletter_id}")
def update_newsletter_endpoint(
    newsletter_id: str,
    updates: Dict[str, Any] = Body(...),
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    return {"data": update_newsletter(db, newsletter_id, updates, user_id)}


@router.delete("/{newsletter_id}")
def delete_newsletter_endpoint(
    newsletter_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    """Soft delete (owner only)"""
    delete_newsletter(db, newsletter_id, user_id)
    return {"data": {"id": newsletter_id, "deleted": True}}


@router.get("/{newsletter_id}/members")
def list_members_endpoint(
    newsletter_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    members = get_newsletter_members(db, newsletter_id, user_id)
    return {"data": [m.model_dump() for m in members], "count": len(members)}


@router.post("/{newsletter_id}/members", status_code=201)
def add_member_endpoint(
    newsletter_id: str,
    body: MemberAddRequest,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    add_user_to_newsletter(db, newsletter_id, body.user_id, user_id, body.role)
    return {"data": {"newsletter_id": newsletter_id, "user_id": body.user_id, "role": body.role.value}}


@router.patch("/{newsletter_id}/members")
def update_member_role_endpoint(
    newsletter_id: str,
    body: MemberRoleRequest,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    membership = update_user_role(db, newsletter_id, body.user_id, body.role, user_id)
    return {"data": membership.model_dump()}


@router.delete("/{newsletter_id}/members/{member_id}")
def remove_member_endpoint(
    newsletter_id: str,
    member_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    remove_user_from_newsletter(db, newsletter_id, member_id, user_id)
    return {"data": {"newsletter_id": newsletter_id, "user_id": member_id, "removed": True}}


@router.post("/{newsletter_id}/join")
def join_newsletter_endpoint(
    newsletter_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    join_newsletter(db, newsletter_id, user_id)
    return {"data": {"newsletter_id": newsletter_id, "user_id": user_id, "role": "member"}}
