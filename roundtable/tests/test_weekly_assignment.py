"""Weekly question assignment batch."""

import logging
import random
from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from roundtable.core.database import newsletter_memberships, users, weekly_assignments
from roundtable.features.access.service import get_active_membership
from roundtable.features.assignments import weekly
from roundtable.features.assignments.weekly import assign_weekly_questions, iso_week_id
from roundtable.features.newsletters.service import add_user_to_newsletter, create_newsletter
from roundtable.features.questions.service import add_question, delete_question
from roundtable.features.sessions.service import create_session, get_user_question_assignments

NOW = datetime(2024, 3, 6, 12, 0, tzinfo=timezone.utc)


def _set_answered(db, newsletter_id, user_id, answered):
    with db.session() as session:
        session.execute(
            newsletter_memberships.update()
            .where(
                newsletter_memberships.c.newsletter_id == newsletter_id,
                newsletter_memberships.c.user_id == user_id,
            )
            .values(answered_questions=answered)
        )


@pytest.fixture
def nid(db, make_user):
    make_user("alice")
    make_user("bob")
    newsletter_id = create_newsletter(db, "alice", "Book Club", "Monthly reads", "Cozy")
    add_user_to_newsletter(db, newsletter_id, "bob", "alice")
    return newsletter_id


@pytest.mark.parametrize(
    "moment, expected",
    [
        (datetime(2024, 3, 6, tzinfo=timezone.utc), "2024-W10"),
        (datetime(2021, 1, 1, tzinfo=timezone.utc), "2020-W53"),
        (datetime(2024, 12, 30, tzinfo=timezone.utc), "2025-W01"),
        (datetime(2023, 1, 2, tzinfo=timezone.utc), "2023-W01"),
    ],
)
def test_iso_week_id(moment, expected):
    assert iso_week_id(moment) == expected


def test_single_candidate_is_picked(db, nid):
    first = add_question(db, nid, "Q1", "alice").id
    second = add_question(db, nid, "Q2", "alice").id
    _set_answered(db, nid, "alice", [first])
    _set_answered(db, nid, "bob", [second])

    summaries = assign_weekly_questions(db, newsletter_id=nid, now=NOW)

    assert len(summaries) == 1
    assert summaries[0].assignments == {"alice": second, "bob": first}
    assert summaries[0].week_id == "2024-W10"
    assert get_active_membership(db, nid, "alice").answered_questions == [first, second]
    assert get_active_membership(db, nid, "bob").answered_questions == [second, first]


def test_exhausted_pool_repeats_without_touching_history(db, nid, caplog):
    only = add_question(db, nid, "Only question", "alice").id
    _set_answered(db, nid, "alice", [only])
    _set_answered(db, nid, "bob", [only])

    with caplog.at_level(logging.WARNING, logger="roundtable.assignments"):
        summaries = assign_weekly_questions(db, newsletter_id=nid, now=NOW)

    assert summaries[0].assignments == {"alice": only, "bob": only}
    assert summaries[0].exhausted_users == 2
    assert get_active_membership(db, nid, "alice").answered_questions == [only]
    assert any(r.getMessage() == "weekly_assignment.pool_exhausted" for r in caplog.records)


def test_inactive_questions_are_not_assigned(db, nid):
    keep = add_question(db, nid, "Keep", "alice").id
    drop = add_question(db, nid, "Drop", "alice").id
    delete_question(db, drop, "alice")

    summaries = assign_weekly_questions(db, newsletter_id=nid, now=NOW, rng=random.Random(3))
    assert set(summaries[0].assignments.values()) == {keep}


def test_inactive_users_are_skipped(db, nid):
    add_question(db, nid, "Q1", "alice")
    with db.session() as session:
        session.execute(users.update().where(users.c.id == "bob").values(is_active=False))

    summaries = assign_weekly_questions(db, newsletter_id=nid, now=NOW)
    assert list(summaries[0].assignments) == ["alice"]


def test_empty_pool_assigns_nothing(db, nid):
    assert assign_weekly_questions(db, newsletter_id=nid, now=NOW) == []
    with db.session() as session:
        assert session.execute(select(weekly_assignments)).all() == []


def test_week_record_is_overwritten_on_rerun(db, nid):
    add_question(db, nid, "Q1", "alice")
    add_question(db, nid, "Q2", "alice")

    assign_weekly_questions(db, newsletter_id=nid, now=NOW)
    second = assign_weekly_questions(db, newsletter_id=nid, now=NOW)

    with db.session() as session:
        rows = session.execute(select(weekly_assignments)).all()
    assert len(rows) == 1
    assert rows[0].week_id == "2024-W10"
    assert rows[0].assignments == second[0].assignments


def test_active_session_gets_assignment_rows(db, nid):
    qid = add_question(db, nid, "Q1", "alice").id
    sid = create_session(db, nid, "2024-W10", NOW, NOW, "alice")

    assign_weekly_questions(db, newsletter_id=nid, now=NOW)

    assigned = get_user_question_assignments(db, sid, "bob", "bob")
    assert [(a.question_id, a.answered) for a in assigned] == [(qid, False)]


def test_failure_rolls_back_whole_batch(db, nid, monkeypatch):
    add_question(db, nid, "Q1", "alice").id
    second_nid = create_newsletter(db, "alice", "Second", "d", "p")
    add_question(db, second_nid, "Q2", "alice")

    real = weekly._assign_for_newsletter
    calls = []

    def flaky(session, newsletter_id, *args, **kwargs):
        calls.append(newsletter_id)
        if len(calls) == 2:
            raise RuntimeError("store unavailable")
        return real(session, newsletter_id, *args, **kwargs)

    monkeypatch.setattr(weekly, "_assign_for_newsletter", flaky)

    assert assign_weekly_questions(db, now=NOW) is None
    assert len(calls) == 2
    assert get_active_membership(db, nid, "bob").answered_questions == []
    with db.session() as session:
        assert session.execute(select(weekly_assignments)).all() == []
