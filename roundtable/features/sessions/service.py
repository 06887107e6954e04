"""
Weekly sessions, per-user question assignments and submitted responses.

A newsletter has at most one session with status "active". create_session
and update_session refuse to produce a second one.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import insert, select, update

from roundtable.core.database import (
    Database,
    new_id,
    question_assignments,
    questions,
    sessions,
    user_responses,
)
from roundtable.core.errors import ConflictError, NotFoundError, PermissionError, ValidationError
from roundtable.features.access.service import has_access, require_access
from roundtable.features.questions.service import increment_question_usage
from roundtable.models.newsletter import AccessMode
from roundtable.models.session import QuestionAssignment, Session, SessionStatus, SessionUpdateRequest, UserResponse

logger = logging.getLogger("roundtable.sessions")


def session_from_row(row) -> Session:
    return Session(
        id=row.id,
        newsletter_id=row.newsletter_id,
        week_identifier=row.week_identifier,
        week_start=row.week_start,
        week_end=row.week_end,
        status=SessionStatus(row.status),
        newsletter_sent=row.newsletter_sent,
        participant_count=row.participant_count,
        generated_newsletter=row.generated_newsletter,
        created_at=row.created_at,
    )


def assignment_from_row(row) -> QuestionAssignment:
    return QuestionAssignment(
        id=row.id,
        session_id=row.session_id,
        newsletter_id=row.newsletter_id,
        user_id=row.user_id,
        question_id=row.question_id,
        assigned_at=row.assigned_at,
        answered=row.answered,
    )


def response_from_row(row) -> UserResponse:
    return UserResponse(
        id=row.id,
        newsletter_id=row.newsletter_id,
        session_id=row.session_id,
        user_id=row.user_id,
        question_id=row.question_id,
        response=row.response,
        submitted_question=row.submitted_question,
        word_count=row.word_count,
        is_public=row.is_public,
        submitted_at=row.submitted_at,
    )


def count_words(text: str) -> int:
    return len(text.split())


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def active_session_row(session, newsletter_id: str, exclude_id: Optional[str] = None):
    stmt = select(sessions).where(
        sessions.c.newsletter_id == newsletter_id,
        sessions.c.status == SessionStatus.ACTIVE.value,
    )
    if exclude_id:
        stmt = stmt.where(sessions.c.id != exclude_id)
    return session.execute(stmt.limit(1)).first()


def _require_newsletter_question(session, newsletter_id: str, question_id: str) -> None:
    question = session.execute(
        select(questions.c.newsletter_id).where(questions.c.id == question_id)
    ).first()
    if question is None:
        raise NotFoundError("Question not found")
    if question.newsletter_id != newsletter_id:
        raise ValidationError("Invalid question for this newsletter")


def get_session(db: Database, session_id: str) -> Optional[Session]:
    with db.session() as session:
        row = session.execute(select(sessions).where(sessions.c.id == session_id)).first()
        return session_from_row(row) if row else None


def _require_session(db: Database, session_id: str) -> Session:
    found = get_session(db, session_id)
    if not found:
        raise NotFoundError("Session not found")
    return found


def create_session(
    db: Database,
    newsletter_id: str,
    week_identifier: str,
    week_start: Optional[datetime],
    week_end: Optional[datetime],
    user_id: str,
) -> str:
    require_access(db, newsletter_id, user_id, AccessMode.WRITE, "Unauthorized: User cannot create sessions for this newsletter")
    now = datetime.now(timezone.utc)
    start = _as_utc(week_start) if week_start else now
    end = _as_utc(week_end) if week_end else now
    if end < start:
        raise ValidationError("Invalid week range: week_end is before week_start")

    session_id = new_id()
    with db.session() as session:
        if active_session_row(session, newsletter_id) is not None:
            raise ConflictError("Newsletter already has an active session")
        session.execute(
            insert(sessions).values(
                id=session_id,
                newsletter_id=newsletter_id,
                week_identifier=week_identifier,
                week_start=start,
                week_end=end,
                status=SessionStatus.ACTIVE.value,
                newsletter_sent=False,
                participant_count=0,
                created_at=now,
            )
        )

    logger.info("session.created", extra={"newsletter_id": newsletter_id, "session_id": session_id, "week": week_identifier})
    return session_id


def update_session(db: Database, session_id: str, updates: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    current = _require_session(db, session_id)
    require_access(db, current.newsletter_id, user_id, AccessMode.WRITE, "Unauthorized: User cannot update this session")

    allowed = SessionUpdateRequest.parse(updates)
    for bound in ("week_start", "week_end"):
        if bound in allowed:
            allowed[bound] = _as_utc(allowed[bound])
    start = allowed.get("week_start", _as_utc(current.week_start))
    end = allowed.get("week_end", _as_utc(current.week_end))
    if end < start:
        raise ValidationError("Invalid week range: week_end is before week_start")

    with db.session() as session:
        if allowed.get("status") == SessionStatus.ACTIVE.value and active_session_row(
            session, current.newsletter_id, exclude_id=session_id
        ) is not None:
            raise ConflictError("Newsletter already has an active session")
        session.execute(update(sessions).where(sessions.c.id == session_id).values(**allowed))

    logger.info("session.updated", extra={"session_id": session_id, "user_id": user_id, "fields": sorted(allowed)})
    return allowed


def get_active_session(db: Database, newsletter_id: str, user_id: str) -> Optional[Session]:
    require_access(db, newsletter_id, user_id, AccessMode.READ, "Unauthorized: User cannot access sessions for this newsletter")
    with db.session() as session:
        row = active_session_row(session, newsletter_id)
        return session_from_row(row) if row else None


def assign_question_to_user(
    db: Database,
    session_id: str,
    newsletter_id: str,
    user_id: str,
    question_id: str,
    assigned_by: str,
) -> str:
    require_access(db, newsletter_id, assigned_by, AccessMode.WRITE, "Unauthorized: User cannot assign questions for this newsletter")
    target = _require_session(db, session_id)
    if target.newsletter_id != newsletter_id:
        raise ValidationError("Invalid session")

    assignment_id = new_id()
    with db.session() as session:
        _require_newsletter_question(session, newsletter_id, question_id)
        session.execute(
            insert(question_assignments).values(
                id=assignment_id,
                session_id=session_id,
                newsletter_id=newsletter_id,
                user_id=user_id,
                question_id=question_id,
                assigned_at=datetime.now(timezone.utc),
                answered=False,
            )
        )

    logger.info("assignment.created", extra={"session_id": session_id, "user_id": user_id, "question_id": question_id})
    return assignment_id


def get_user_question_assignments(
    db: Database,
    session_id: str,
    target_user_id: str,
    requesting_user_id: str,
) -> List[QuestionAssignment]:
    """The subject may always see their own assignments; anyone with read access may too."""
    target = _require_session(db, session_id)
    allowed = target_user_id == requesting_user_id or has_access(
        db, target.newsletter_id, requesting_user_id, AccessMode.READ
    )
    if not allowed:
        raise PermissionError("Unauthorized: User cannot view these assignments")

    with db.session() as session:
        rows = session.execute(
            select(question_assignments)
            .where(
                question_assignments.c.session_id == session_id,
                question_assignments.c.user_id == target_user_id,
            )
            .order_by(question_assignments.c.assigned_at)
        ).all()
    return [assignment_from_row(row) for row in rows]


def submit_user_response(
    db: Database,
    newsletter_id: str,
    session_id: str,
    user_id: str,
    question_id: str,
    response: str,
    is_public: bool = False,
    submitted_question: Optional[str] = None,
) -> UserResponse:
    """
    Store a response and mark the matching assignment answered.

    The insert, the assignment flip, the participant count and the question
    usage bump commit together or not at all.
    """
    require_access(db, newsletter_id, user_id, AccessMode.READ, "Unauthorized: User cannot submit responses to this newsletter")
    target = get_session(db, session_id)
    if not target or target.newsletter_id != newsletter_id:
        raise ValidationError("Invalid session")
    if not response or not response.strip():
        raise ValidationError("Response text is required")

    record = UserResponse(
        id=new_id(),
        newsletter_id=newsletter_id,
        session_id=session_id,
        user_id=user_id,
        question_id=question_id,
        response=response,
        submitted_question=submitted_question or None,
        word_count=count_words(response),
        is_public=is_public,
        submitted_at=datetime.now(timezone.utc),
    )

    with db.session() as session:
        _require_newsletter_question(session, newsletter_id, question_id)
        first_response = session.execute(
            select(user_responses.c.id)
            .where(user_responses.c.session_id == session_id, user_responses.c.user_id == user_id)
            .limit(1)
        ).first() is None
        session.execute(insert(user_responses).values(**record.model_dump()))
        if first_response:
            session.execute(
                update(sessions)
                .where(sessions.c.id == session_id)
                .values(participant_count=sessions.c.participant_count + 1)
            )
        assignment = session.execute(
            select(question_assignments.c.id)
            .where(
                question_assignments.c.session_id == session_id,
                question_assignments.c.user_id == user_id,
                question_assignments.c.question_id == question_id,
            )
            .limit(1)
        ).first()
        if assignment is not None:
            session.execute(
                update(question_assignments)
                .where(question_assignments.c.id == assignment.id)
                .values(answered=True)
            )
        increment_question_usage(db, question_id, session=session)

    logger.info(
        "response.submitted",
        extra={"session_id": session_id, "user_id": user_id, "question_id": question_id, "word_count": record.word_count},
    )
    return record


def _responses(db: Database, session_id: str, user_id: Optional[str] = None) -> List[UserResponse]:
    stmt = select(user_responses).where(user_responses.c.session_id == session_id)
    if user_id is not None:
        stmt = stmt.where(user_responses.c.user_id == user_id)
    with db.session() as session:
        rows = session.execute(stmt.order_by(user_responses.c.submitted_at)).all()
    return [response_from_row(row) for row in rows]


def get_session_responses(db: Database, session_id: str, user_id: str) -> List[UserResponse]:
    target = _require_session(db, session_id)
    require_access(db, target.newsletter_id, user_id, AccessMode.READ, "Unauthorized: User cannot access responses for this session")
    return _responses(db, session_id)


def get_user_session_responses(
    db: Database,
    session_id: str,
    target_user_id: str,
    requesting_user_id: str,
) -> List[UserResponse]:
    """Own responses, or anyone's for a writer of the newsletter."""
    target = _require_session(db, session_id)
    allowed = target_user_id == requesting_user_id or has_access(
        db, target.newsletter_id, requesting_user_id, AccessMode.WRITE
    )
    if not allowed:
        raise PermissionError("Unauthorized: User cannot view these responses")
    return _responses(db, session_id, target_user_id)
