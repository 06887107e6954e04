"""
Admin API routes.

Every route depends on require_admin: the caller's own profile must be an
active admin.
"""
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from roundtable.core.auth import require_admin
from roundtable.core.database import Database, get_database
from roundtable.features.admin import service as admin_service
from roundtable.models.user import User

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/test")
def admin_test(admin: User = Depends(require_admin)) -> dict:
    """Confirms the caller has admin access."""
    return {"data": {"ok": True, "user_id": admin.id}}


@router.get("/users")
def list_users(admin: User = Depends(require_admin), db: Database = Depends(get_database)) -> dict:
    items = admin_service.list_users(db)
    return {"data": items, "count": len(items)}


@router.put("/users/{user_id}")
def update_user(
    user_id: str,
    updates: Dict[str, Any] = Body(...),
    admin: User = Depends(require_admin),
    db: Database = Depends(get_database),
) -> dict:
    return {"data": admin_service.update_user(db, user_id, updates, admin.id)}


@router.get("/newsletters")
def list_newsletters(admin: User = Depends(require_admin), db: Database = Depends(get_database)) -> dict:
    items = admin_service.list_newsletters(db)
    return {"data": items, "count": len(items)}


@router.put("/newsletters/{newsletter_id}")
def update_newsletter(
    newsletter_id: str,
    updates: Dict[str, Any] = Body(...),
    admin: User = Depends(require_admin),
    db: Database = Depends(get_database),
) -> dict:
    return {"data": admin_service.update_newsletter(db, newsletter_id, updates, admin.id)}


@router.get("/questions")
def list_questions(admin: User = Depends(require_admin), db: Database = Depends(get_database)) -> dict:
    items = admin_service.list_questions(db)
    return {"data": items, "count": len(items)}


@router.put("/questions/{question_id}")
def update_question(
    question_id: str,
    updates: Dict[str, Any] = Body(...),
    admin: User = Depends(require_admin),
    db: Database = Depends(get_database),
) -> dict:
    return {"data": admin_service.update_question(db, question_id, updates, admin.id)}


@router.get("/responses")
def list_responses(admin: User = Depends(require_admin), db: Database = Depends(get_database)) -> dict:
    items = admin_service.list_responses(db)
    return {"data": items, "count": len(items)}


@router.delete("/responses/{response_id}")
def delete_response(
    response_id: str,
    admin: User = Depends(require_admin),
    db: Database = Depends(get_database),
) -> dict:
    admin_service.delete_response(db, response_id, admin.id)
    return {"data": {"id": response_id, "deleted": True}}


@router.get("/sessions")
def list_sessions(admin: User = Depends(require_admin), db: Database = Depends(get_database)) -> dict:
    items = admin_service.list_sessions(db)
    return {"data": items, "count": len(items)}


@router.put("/sessions/{session_id}")
def update_session(
    session_id: str,
    updates: Dict[str, Any] = Body(...),
    admin: User = Depends(require_admin),
    db: Database = Depends(get_database),
) -> dict:
    return {"data": admin_service.update_session(db, session_id, updates, admin.id)}


@router.delete("/sessions/{session_id}")
def delete_session(
    session_id: str,
    admin: User = Depends(require_admin),
    db: Database = Depends(get_database),
) -> dict:
    admin_service.delete_session(db, session_id, admin.id)
    return {"data": {"id": session_id, "deleted": True}}
