"""Question bank for a newsletter."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import insert, select, update

from roundtable.core.database import Database, new_id, questions
from roundtable.core.errors import NotFoundError, ValidationError
from roundtable.features.access.service import require_access
from roundtable.models.newsletter import AccessMode
from roundtable.models.question import Question, QuestionSource, QuestionUpdateRequest

logger = logging.getLogger("roundtable.questions")


def question_from_row(row) -> Question:
    return Question(
        id=row.id,
        newsletter_id=row.newsletter_id,
        text=row.text,
        source=QuestionSource(row.source),
        created_by=row.created_by,
        usage_count=row.usage_count,
        is_active=row.is_active,
        category=row.category,
        tags=list(row.tags or []),
        created_at=row.created_at,
    )


def _load(db: Database, question_id: str) -> Optional[Question]:
    with db.session() as session:
        row = session.execute(select(questions).where(questions.c.id == question_id)).first()
        return question_from_row(row) if row else None


def get_questions(db: Database, newsletter_id: str, user_id: str) -> List[Question]:
    require_access(db, newsletter_id, user_id, AccessMode.READ, "Unauthorized: User cannot view questions for this newsletter")
    with db.session() as session:
        rows = session.execute(
            select(questions)
            .where(questions.c.newsletter_id == newsletter_id, questions.c.is_active.is_(True))
            .order_by(questions.c.created_at)
        ).all()
    return [question_from_row(row) for row in rows]


def get_question(db: Database, question_id: str, user_id: str) -> Question:
    question = _load(db, question_id)
    if not question:
        raise NotFoundError("Question not found")
    require_access(db, question.newsletter_id, user_id, AccessMode.READ, "Unauthorized: User cannot view this question")
    return question


def add_question(
    db: Database,
    newsletter_id: str,
    text: str,
    created_by: str,
    source: Union[QuestionSource, str] = QuestionSource.USER,
    category: Optional[str] = None,
    tags: Optional[List[str]] = None,
) -> Question:
    require_access(db, newsletter_id, created_by, AccessMode.WRITE, "Unauthorized: User cannot add questions to this newsletter")
    if not text or not text.strip():
        raise ValidationError("Question text is required")
    try:
        source = QuestionSource(source)
    except ValueError:
        raise ValidationError(f"Invalid question source: {source}")

    question = Question(
        id=new_id(),
        newsletter_id=newsletter_id,
        text=text.strip(),
        source=source,
        created_by=created_by,
        category=category,
        tags=tags or [],
        created_at=datetime.now(timezone.utc),
    )
    with db.session() as session:
        session.execute(insert(questions).values(**{**question.model_dump(), "source": question.source.value}))

    logger.info("question.added", extra={"newsletter_id": newsletter_id, "question_id": question.id, "user_id": created_by})
    return question


def update_question(db: Database, question_id: str, updates: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    question = _load(db, question_id)
    if not question:
        raise NotFoundError("Question not found")
    require_access(db, question.newsletter_id, user_id, AccessMode.WRITE, "Unauthorized: User cannot update this question")

    # usage_count and identity columns are not patchable
    allowed = QuestionUpdateRequest.parse(updates)

    with db.session() as session:
        session.execute(update(questions).where(questions.c.id == question_id).values(**allowed))

    logger.info("question.updated", extra={"question_id": question_id, "user_id": user_id, "fields": sorted(allowed)})
    return allowed


def delete_question(db: Database, question_id: str, user_id: str) -> None:
    """Soft delete: the question stays for past responses but leaves the pool."""
    question = _load(db, question_id)
    if not question:
        raise NotFoundError("Question not found")
    require_access(db, question.newsletter_id, user_id, AccessMode.WRITE, "Unauthorized: User cannot delete this question")

    with db.session() as session:
        session.execute(update(questions).where(questions.c.id == question_id).values(is_active=False))

    logger.info("question.deleted", extra={"question_id": question_id, "user_id": user_id})


def increment_question_usage(db: Database, question_id: str, *, session=None) -> None:
    """
    Bump usage_count by one.

    The increment is a single UPDATE evaluated by the database inside one
    transaction, so concurrent callers never lose an update. Pass `session`
    to join a caller's transaction.
    """
    stmt = update(questions).where(questions.c.id == question_id).values(usage_count=questions.c.usage_count + 1)
    if session is not None:
        result = session.execute(stmt)
    else:
        with db.session() as own_session:
            result = own_session.execute(stmt)
    if result.rowcount == 0:
        raise NotFoundError("Question not found")
