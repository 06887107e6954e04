"""
Admin listings and moderation.

Callers are already gated by require_admin; nothing here re-checks
newsletter roles. Listings join names and counts in SQL rather than
per-row lookups.
"""

import logging
from typing import Any, Dict, List

from sqlalchemy import Table, delete, func, select, update

from roundtable.core.database import (
    Database,
    newsletter_memberships,
    newsletters,
    questions,
    sessions,
    user_responses,
    users,
)
from roundtable.core.errors import ConflictError, NotFoundError, ValidationError
from roundtable.features.newsletters.service import get_newsletter, merge_settings, newsletter_from_row
from roundtable.features.questions.service import question_from_row
from roundtable.features.sessions.service import active_session_row, response_from_row, session_from_row
from roundtable.features.users.service import user_from_row
from roundtable.models.newsletter import NewsletterUpdateRequest, Role
from roundtable.models.question import AdminQuestionUpdate
from roundtable.models.session import AdminSessionUpdate, SessionStatus
from roundtable.models.user import AdminUserUpdate

logger = logging.getLogger("roundtable.admin")

UNKNOWN = "Unknown"


def _apply(db: Database, table: Table, row_id: str, values: Dict[str, Any], not_found: str) -> None:
    with db.session() as session:
        result = session.execute(update(table).where(table.c.id == row_id).values(**values))
        if result.rowcount == 0:
            raise NotFoundError(not_found)


def _response_counts(column):
    return (
        select(column.label("key"), func.count().label("response_count"))
        .group_by(column)
        .subquery()
    )


# Users

def list_users(db: Database) -> List[dict]:
    with db.session() as session:
        rows = session.execute(select(users).order_by(users.c.created_at)).all()
    return [user_from_row(row).model_dump() for row in rows]


def update_user(db: Database, user_id: str, updates: Dict[str, Any], acting_admin_id: str) -> Dict[str, Any]:
    filtered = AdminUserUpdate.parse(updates)
    if user_id == acting_admin_id and filtered.get("is_admin") is False:
        raise ValidationError("Invalid request: cannot remove your own admin privileges")
    _apply(db, users, user_id, filtered, "User not found")
    logger.info("admin.user_updated", extra={"user_id": user_id, "admin_id": acting_admin_id, "fields": sorted(filtered)})
    return filtered


# Newsletters

def list_newsletters(db: Database) -> List[dict]:
    members = (
        select(
            newsletter_memberships.c.newsletter_id.label("newsletter_id"),
            func.count().label("member_count"),
        )
        .where(newsletter_memberships.c.is_active.is_(True))
        .group_by(newsletter_memberships.c.newsletter_id)
        .subquery()
    )
    owners = (
        select(
            newsletter_memberships.c.newsletter_id.label("newsletter_id"),
            func.min(users.c.email).label("owner_email"),
        )
        .join(users, users.c.id == newsletter_memberships.c.user_id)
        .where(
            newsletter_memberships.c.is_active.is_(True),
            newsletter_memberships.c.role == Role.OWNER.value,
        )
        .group_by(newsletter_memberships.c.newsletter_id)
        .subquery()
    )
    with db.session() as session:
        rows = session.execute(
            select(newsletters, members.c.member_count, owners.c.owner_email)
            .outerjoin(members, members.c.newsletter_id == newsletters.c.id)
            .outerjoin(owners, owners.c.newsletter_id == newsletters.c.id)
            .order_by(newsletters.c.created_at)
        ).all()

    return [
        {
            **newsletter_from_row(row).model_dump(),
            "member_count": row.member_count or 0,
            "owner_email": row.owner_email or UNKNOWN,
        }
        for row in rows
    ]


def update_newsletter(db: Database, newsletter_id: str, updates: Dict[str, Any], acting_admin_id: str) -> Dict[str, Any]:
    filtered = NewsletterUpdateRequest.parse(updates)
    current = get_newsletter(db, newsletter_id)
    if current is None:
        raise NotFoundError("Newsletter not found")
    if "settings" in filtered:
        filtered["settings"] = merge_settings(current.settings, filtered["settings"])
    _apply(db, newsletters, newsletter_id, filtered, "Newsletter not found")
    logger.info("admin.newsletter_updated", extra={"newsletter_id": newsletter_id, "admin_id": acting_admin_id})
    return filtered


# Questions

def list_questions(db: Database) -> List[dict]:
    counts = _response_counts(user_responses.c.question_id)
    with db.session() as session:
        rows = session.execute(
            select(questions, newsletters.c.name.label("newsletter_name"), counts.c.response_count)
            .outerjoin(newsletters, newsletters.c.id == questions.c.newsletter_id)
            .outerjoin(counts, counts.c.key == questions.c.id)
            .order_by(questions.c.created_at)
        ).all()

    return [
        {
            **question_from_row(row).model_dump(),
            "newsletter_name": row.newsletter_name or UNKNOWN,
            "response_count": row.response_count or 0,
        }
        for row in rows
    ]


def update_question(db: Database, question_id: str, updates: Dict[str, Any], acting_admin_id: str) -> Dict[str, Any]:
    filtered = AdminQuestionUpdate.parse(updates)
    _apply(db, questions, question_id, filtered, "Question not found")
    logger.info("admin.question_updated", extra={"question_id": question_id, "admin_id": acting_admin_id})
    return filtered


# Responses

def list_responses(db: Database) -> List[dict]:
    """All responses, newest first."""
    with db.session() as session:
        rows = session.execute(
            select(
                user_responses,
                users.c.email.label("user_email"),
                questions.c.text.label("question_text"),
                newsletters.c.name.label("newsletter_name"),
            )
            .outerjoin(users, users.c.id == user_responses.c.user_id)
            .outerjoin(questions, questions.c.id == user_responses.c.question_id)
            .outerjoin(newsletters, newsletters.c.id == user_responses.c.newsletter_id)
            .order_by(user_responses.c.submitted_at.desc())
        ).all()

    return [
        {
            **response_from_row(row).model_dump(),
            "user_email": row.user_email or UNKNOWN,
            "question_text": row.question_text or UNKNOWN,
            "newsletter_name": row.newsletter_name or UNKNOWN,
        }
        for row in rows
    ]


def delete_response(db: Database, response_id: str, acting_admin_id: str) -> None:
    with db.session() as session:
        result = session.execute(delete(user_responses).where(user_responses.c.id == response_id))
        if result.rowcount == 0:
            raise NotFoundError("Response not found")
    logger.info("admin.response_deleted", extra={"response_id": response_id, "admin_id": acting_admin_id})


# Sessions

def list_sessions(db: Database) -> List[dict]:
    """All sessions, most recent week first."""
    counts = _response_counts(user_responses.c.session_id)
    with db.session() as session:
        rows = session.execute(
            select(sessions, newsletters.c.name.label("newsletter_name"), counts.c.response_count)
            .outerjoin(newsletters, newsletters.c.id == sessions.c.newsletter_id)
            .outerjoin(counts, counts.c.key == sessions.c.id)
            .order_by(sessions.c.week_start.desc())
        ).all()

    return [
        {
            **session_from_row(row).model_dump(),
            "newsletter_name": row.newsletter_name or UNKNOWN,
            "response_count": row.response_count or 0,
        }
        for row in rows
    ]


def update_session(db: Database, session_id: str, updates: Dict[str, Any], acting_admin_id: str) -> Dict[str, Any]:
    filtered = AdminSessionUpdate.parse(updates)

    with db.session() as session:
        current = session.execute(select(sessions.c.newsletter_id).where(sessions.c.id == session_id)).first()
        if current is None:
            raise NotFoundError("Session not found")
        if filtered.get("status") == SessionStatus.ACTIVE.value and active_session_row(
            session, current.newsletter_id, exclude_id=session_id
        ) is not None:
            raise ConflictError("Newsletter already has an active session")
        session.execute(update(sessions).where(sessions.c.id == session_id).values(**filtered))

    logger.info("admin.session_updated", extra={"session_id": session_id, "admin_id": acting_admin_id})
    return filtered


def delete_session(db: Database, session_id: str, acting_admin_id: str) -> None:
    """Hard delete; the session's responses and assignments are kept."""
    with db.session() as session:
        result = session.execute(delete(sessions).where(sessions.c.id == session_id))
        if result.rowcount == 0:
            raise NotFoundError("Session not found")
    logger.info("admin.session_deleted", extra={"session_id": session_id, "admin_id": acting_admin_id})
