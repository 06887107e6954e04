"""Weekly question assignment batch.

For every active member of a newsletter, pick one active question the
member has not been given before and record it on the membership's
answered list. A member who has seen the whole pool gets a random question
from the full pool instead (repeats allowed) and the answered list is left
alone.

Everything is written in one transaction: a failure anywhere rolls back
the whole run. The batch is not idempotent; running it twice in the same
week assigns twice and overwrites that week's summary.
"""

import logging
import random
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import delete, insert, select, update

from roundtable.core.database import (
    Database,
    new_id,
    newsletter_memberships,
    newsletters,
    question_assignments,
    questions,
    sessions,
    users,
    weekly_assignments,
)
from roundtable.models.session import SessionStatus, WeeklyAssignmentSummary

logger = logging.getLogger("roundtable.assignments")


def iso_week_id(moment: Optional[datetime] = None) -> str:
    """`YYYY-Www` for the ISO-8601 week containing `moment` (UTC, Thursday-anchored)."""
    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    year, week, _ = moment.isocalendar()
    return f"{year}-W{week:02d}"


def _assign_for_newsletter(session, newsletter_id: str, week_id: str, now: datetime, rng: random.Random) -> Optional[WeeklyAssignmentSummary]:
    pool = [
        row.id
        for row in session.execute(
            select(questions.c.id)
            .where(questions.c.newsletter_id == newsletter_id, questions.c.is_active.is_(True))
            .order_by(questions.c.created_at, questions.c.id)
        )
    ]
    if not pool:
        logger.warning("weekly_assignment.empty_pool", extra={"newsletter_id": newsletter_id, "week_id": week_id})
        return None

    members = session.execute(
        select(newsletter_memberships.c.id, newsletter_memberships.c.user_id, newsletter_memberships.c.answered_questions)
        .join(users, users.c.id == newsletter_memberships.c.user_id)
        .where(
            newsletter_memberships.c.newsletter_id == newsletter_id,
            newsletter_memberships.c.is_active.is_(True),
            users.c.is_active.is_(True),
        )
        .order_by(newsletter_memberships.c.user_id)
    ).all()

    active_session = session.execute(
        select(sessions.c.id)
        .where(sessions.c.newsletter_id == newsletter_id, sessions.c.status == SessionStatus.ACTIVE.value)
        .limit(1)
    ).first()

    assignments = {}
    exhausted = 0
    for member in members:
        answered = list(member.answered_questions or [])
        seen = set(answered)
        available = [qid for qid in pool if qid not in seen]

        if available:
            pick = rng.choice(available)
            session.execute(
                update(newsletter_memberships)
                .where(newsletter_memberships.c.id == member.id)
                .values(answered_questions=answered + [pick])
            )
        else:
            # Pool exhausted for this member: repeat from the full pool
            exhausted += 1
            pick = rng.choice(pool)
            logger.warning(
                "weekly_assignment.pool_exhausted",
                extra={"newsletter_id": newsletter_id, "user_id": member.user_id},
            )

        assignments[member.user_id] = pick
        if active_session is not None:
            session.execute(
                insert(question_assignments).values(
                    id=new_id(),
                    session_id=active_session.id,
                    newsletter_id=newsletter_id,
                    user_id=member.user_id,
                    question_id=pick,
                    assigned_at=now,
                    answered=False,
                )
            )

    session.execute(
        delete(weekly_assignments).where(
            weekly_assignments.c.newsletter_id == newsletter_id,
            weekly_assignments.c.week_id == week_id,
        )
    )
    session.execute(
        insert(weekly_assignments).values(
            id=new_id(),
            newsletter_id=newsletter_id,
            week_id=week_id,
            assignments=assignments,
            created_at=now,
        )
    )

    return WeeklyAssignmentSummary(
        newsletter_id=newsletter_id,
        week_id=week_id,
        assignments=assignments,
        exhausted_users=exhausted,
        created_at=now,
    )


def assign_weekly_questions(
    db: Database,
    *,
    newsletter_id: Optional[str] = None,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> Optional[List[WeeklyAssignmentSummary]]:
    """
    Run the weekly assignment for one newsletter, or all active ones.

    Returns the per-newsletter summaries, or None when the batch failed and
    was rolled back. Failures are logged, never raised or retried.
    """
    now = now or datetime.now(timezone.utc)
    rng = rng or random.Random()
    week_id = iso_week_id(now)
    logger.info("weekly_assignment.start", extra={"week_id": week_id, "newsletter_id": newsletter_id})

    try:
        with db.session() as session:
            stmt = select(newsletters.c.id).where(newsletters.c.is_active.is_(True)).order_by(newsletters.c.created_at)
            if newsletter_id is not None:
                stmt = stmt.where(newsletters.c.id == newsletter_id)
            targets = [row.id for row in session.execute(stmt)]

            summaries = []
            for target in targets:
                summary = _assign_for_newsletter(session, target, week_id, now, rng)
                if summary is not None:
                    summaries.append(summary)
    except Exception:
        logger.exception("weekly_assignment.failed", extra={"week_id": week_id, "newsletter_id": newsletter_id})
        return None

    logger.info(
        "weekly_assignment.completed",
        extra={
            "week_id": week_id,
            "newsletters": len(summaries),
            "assigned": sum(len(s.assignments) for s in summaries),
        },
    )
    return summaries
