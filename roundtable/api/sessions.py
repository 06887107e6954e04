"""
roundtable/api/sessions.py
Weekly sessions, question assignments and responses.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query

from roundtable.core.auth import get_current_user_id
from roundtable.core.database import Database, get_database
from roundtable.features.assignments.weekly import assign_weekly_questions
from roundtable.features.access.service import require_access
from roundtable.features.sessions.service import (
    assign_question_to_user,
    create_session,
    get_active_session,
    get_session_responses,
    get_user_question_assignments,
    get_user_session_responses,
    submit_user_response,
    update_session,
)
from roundtable.models.newsletter import AccessMode
from roundtable.models.session import AssignmentCreateRequest, ResponseSubmitRequest, SessionCreateRequest

router = APIRouter(prefix="/api/sessions", tags=["sessions"])
responses_router = APIRouter(prefix="/api/responses", tags=["responses"])
assignments_router = APIRouter(prefix="/api/assignments", tags=["assignments"])


@router.get("")
def get_active_session_endpoint(
    newsletter_id: str = Query(..., min_length=1),
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    """The newsletter's active session, or null"""
    active = get_active_session(db, newsletter_id, user_id)
    return {"data": active.model_dump() if active else None}


@router.post("", status_code=201)
def create_session_endpoint(
    body: SessionCreateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    session_id = create_session(db, body.newsletter_id, body.week_identifier, body.week_start, body.week_end, user_id)
    return {"data": {"id": session_id}}


@router.put("/{session_id}")
def update_session_endpoint(
    session_id: str,
    updates: Dict[str, Any] = Body(...),
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    return {"data": update_session(db, session_id, updates, user_id)}


# Responses

@responses_router.get("")
def list_responses_endpoint(
    session_id: str = Query(..., min_length=1),
    user_id: Optional[str] = Query(None, description="Only this user's responses"),
    requester_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    if user_id:
        items = get_user_session_responses(db, session_id, user_id, requester_id)
    else:
        items = get_session_responses(db, session_id, requester_id)
    return {"data": [r.model_dump() for r in items], "count": len(items)}


@responses_router.post("", status_code=201)
def submit_response_endpoint(
    body: ResponseSubmitRequest,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    record = submit_user_response(
        db,
        body.newsletter_id,
        body.session_id,
        user_id,
        body.question_id,
        body.response,
        is_public=body.is_public,
        submitted_question=body.submitted_question,
    )
    return {"data": record.model_dump()}


# Assignments

@assignments_router.get("")
def list_assignments_endpoint(
    session_id: str = Query(..., min_length=1),
    user_id: Optional[str] = Query(None, description="Defaults to the caller"),
    requester_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    items = get_user_question_assignments(db, session_id, user_id or requester_id, requester_id)
    return {"data": [a.model_dump() for a in items], "count": len(items)}


@assignments_router.post("", status_code=201)
def create_assignment_endpoint(
    body: AssignmentCreateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    assignment_id = assign_question_to_user(
        db, body.session_id, body.newsletter_id, body.user_id, body.question_id, user_id
    )
    return {"data": {"id": assignment_id}}


@assignments_router.post("/weekly")
def run_weekly_assignment_endpoint(
    newsletter_id: str = Query(..., min_length=1),
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    """Run this week's assignment for one newsletter now (writers only)"""
    require_access(db, newsletter_id, user_id, AccessMode.WRITE, "Unauthorized: User cannot run assignments for this newsletter")
    summaries = assign_weekly_questions(db, newsletter_id=newsletter_id)
    if summaries is None:
        # The batch rolled back; details are in the server log
        return {"data": None, "ok": False}
    return {"data": summaries[0].model_dump() if summaries else None, "ok": True}
