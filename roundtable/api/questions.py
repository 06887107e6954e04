"""
roundtable/api/questions.py
Question pool CRUD.
"""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Query

from roundtable.core.auth import get_current_user_id
from roundtable.core.database import Database, get_database
from roundtable.features.questions.service import (
    add_question,
    delete_question,
    get_question,
    get_questions,
    update_question,
)
from roundtable.models.question import QuestionCreateRequest

router = APIRouter(prefix="/api/questions", tags=["questions"])


@router.get("")
def list_questions_endpoint(
    newsletter_id: str = Query(..., min_length=1),
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    """Active questions for a newsletter"""
    items = get_questions(db, newsletter_id, user_id)
    return {"data": [q.model_dump() for q in items], "count": len(items)}


@router.post("", status_code=201)
def add_question_endpoint(
    body: QuestionCreateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    question = add_question(db, body.newsletter_id, body.text, user_id, body.source, body.category, body.tags)
    return {"data": question.model_dump()}


@router.get("/{question_id}")
def get_question_endpoint(
    question_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    return {"data": get_question(db, question_id, user_id).model_dump()}


@router.put("/{question_id}")
def update_question_endpoint(
    question_id: str,
    updates: Dict[str, Any] = Body(...),
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    return {"data": update_question(db, question_id, updates, user_id)}


@router.delete("/{question_id}")
def delete_question_endpoint(
    question_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
):
    delete_question(db, question_id, user_id)
    return {"data": {"id": question_id, "deleted": True}}
