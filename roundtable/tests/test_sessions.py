"""Sessions, question assignments and responses."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from roundtable.core.database import questions
from roundtable.core.errors import ConflictError, NotFoundError, PermissionError, ValidationError
from roundtable.features.newsletters.service import add_user_to_newsletter, create_newsletter
from roundtable.features.questions.service import add_question, get_question
from roundtable.features.sessions.service import (
    assign_question_to_user,
    count_words,
    create_session,
    get_active_session,
    get_session,
    get_session_responses,
    get_user_question_assignments,
    get_user_session_responses,
    submit_user_response,
    update_session,
)
from roundtable.models.session import SessionStatus

WEEK_START = datetime(2024, 3, 4, tzinfo=timezone.utc)


@pytest.fixture
def nid(db, make_user):
    for uid in ("alice", "bob", "carol", "mallory"):
        make_user(uid)
    newsletter_id = create_newsletter(db, "alice", "Book Club", "Monthly reads", "Cozy", {"is_public": False})
    add_user_to_newsletter(db, newsletter_id, "bob", "alice")
    add_user_to_newsletter(db, newsletter_id, "carol", "alice")
    return newsletter_id


@pytest.fixture
def sid(db, nid):
    return create_session(db, nid, "2024-W10", WEEK_START, WEEK_START + timedelta(days=6), "alice")


@pytest.fixture
def qid(db, nid):
    return add_question(db, nid, "What did you read this week?", "alice").id


def test_count_words():
    assert count_words("one two  three\nfour\tfive") == 5
    assert count_words("   ") == 0


def test_create_session_defaults(db, nid, sid):
    created = get_session(db, sid)
    assert created.status is SessionStatus.ACTIVE
    assert created.newsletter_sent is False
    assert created.participant_count == 0
    assert created.week_identifier == "2024-W10"


def test_members_cannot_create_sessions(db, nid):
    with pytest.raises(PermissionError):
        create_session(db, nid, "2024-W10", WEEK_START, WEEK_START, "bob")


def test_week_end_before_start_is_rejected(db, nid):
    with pytest.raises(ValidationError):
        create_session(db, nid, "2024-W10", WEEK_START, WEEK_START - timedelta(days=1), "alice")


def test_only_one_active_session(db, nid, sid):
    with pytest.raises(ConflictError):
        create_session(db, nid, "2024-W11", WEEK_START, WEEK_START, "alice")

    update_session(db, sid, {"status": "completed"}, "alice")
    second = create_session(db, nid, "2024-W11", WEEK_START, WEEK_START, "alice")
    assert get_active_session(db, nid, "bob").id == second

    with pytest.raises(ConflictError):
        update_session(db, sid, {"status": "active"}, "alice")


def test_update_session_strips_identity_fields(db, nid, sid):
    applied = update_session(db, sid, {"newsletter_sent": True, "newsletter_id": "elsewhere"}, "alice")
    assert applied == {"newsletter_sent": True}
    updated = get_session(db, sid)
    assert updated.newsletter_id == nid
    assert updated.newsletter_sent is True


def test_update_session_rejects_unknown_status(db, sid):
    with pytest.raises(ValidationError):
        update_session(db, sid, {"status": "archived"}, "alice")


def test_update_session_parses_iso_dates(db, sid):
    applied = update_session(db, sid, {"week_start": "2024-03-05T00:00:00Z", "week_end": "2024-03-11"}, "alice")
    assert applied["week_start"] == datetime(2024, 3, 5, tzinfo=timezone.utc)

    updated = get_session(db, sid)
    assert updated.week_start.replace(tzinfo=timezone.utc) == datetime(2024, 3, 5, tzinfo=timezone.utc)
    assert updated.week_end.replace(tzinfo=timezone.utc) == datetime(2024, 3, 11, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "patch",
    [
        {"week_start": "next tuesday"},
        {"week_end": "2024-03-01T00:00:00Z"},
        {"participant_count": -1},
        {"status": None},
    ],
)
def test_update_session_rejects_bad_values(db, sid, patch):
    with pytest.raises(ValidationError):
        update_session(db, sid, patch, "alice")


def test_active_session_none(db, nid):
    assert get_active_session(db, nid, "alice") is None


def test_assign_requires_matching_session(db, nid, sid, qid):
    other = create_newsletter(db, "alice", "Other", "d", "p")
    with pytest.raises(ValidationError):
        assign_question_to_user(db, sid, other, "bob", qid, "alice")
    with pytest.raises(NotFoundError):
        assign_question_to_user(db, sid, nid, "bob", "missing-question", "alice")
    with pytest.raises(PermissionError):
        assign_question_to_user(db, sid, nid, "carol", qid, "bob")


def test_assignment_visibility(db, nid, sid, qid):
    assign_question_to_user(db, sid, nid, "bob", qid, "alice")

    own = get_user_question_assignments(db, sid, "bob", "bob")
    assert [a.question_id for a in own] == [qid]
    assert len(get_user_question_assignments(db, sid, "bob", "carol")) == 1
    with pytest.raises(PermissionError):
        get_user_question_assignments(db, sid, "bob", "mallory")


def test_response_marks_assignment_answered(db, nid, sid, qid):
    assign_question_to_user(db, sid, nid, "bob", qid, "alice")
    assert get_user_question_assignments(db, sid, "bob", "bob")[0].answered is False

    record = submit_user_response(db, nid, sid, "bob", qid, "A long novel about whales")

    assert record.word_count == 5
    assert record.is_public is False
    assert get_user_question_assignments(db, sid, "bob", "bob")[0].answered is True
    assert get_question(db, qid, "alice").usage_count == 1
    assert get_session(db, sid).participant_count == 1


def test_participant_count_counts_users_once(db, nid, sid, qid):
    submit_user_response(db, nid, sid, "bob", qid, "first")
    submit_user_response(db, nid, sid, "bob", qid, "second thoughts")
    submit_user_response(db, nid, sid, "carol", qid, "mine")
    assert get_session(db, sid).participant_count == 2


def test_response_for_foreign_session_is_invalid(db, nid, sid, qid):
    other = create_newsletter(db, "alice", "Other", "d", "p")
    with pytest.raises(ValidationError) as exc:
        submit_user_response(db, other, sid, "alice", qid, "wrong place")
    assert exc.value.message == "Invalid session"


def test_response_to_another_newsletters_question_is_rejected(db, nid, sid):
    other = create_newsletter(db, "mallory", "Elsewhere", "d", "p")
    foreign_qid = add_question(db, other, "Not yours", "mallory").id

    with pytest.raises(ValidationError):
        submit_user_response(db, nid, sid, "bob", foreign_qid, "sneaky")
    with pytest.raises(NotFoundError):
        submit_user_response(db, nid, sid, "bob", "missing-question", "lost")

    assert get_question(db, foreign_qid, "mallory").usage_count == 0
    assert get_session_responses(db, sid, "alice") == []


def test_outsider_cannot_respond(db, nid, sid, qid):
    with pytest.raises(PermissionError):
        submit_user_response(db, nid, sid, "mallory", qid, "let me in")


def test_failed_response_writes_nothing(db, nid, sid, qid, monkeypatch):
    from roundtable.features.sessions import service as sessions_service

    assign_question_to_user(db, sid, nid, "bob", qid, "alice")

    def boom(*args, **kwargs):
        raise RuntimeError("usage counter unavailable")

    monkeypatch.setattr(sessions_service, "increment_question_usage", boom)
    with pytest.raises(RuntimeError):
        submit_user_response(db, nid, sid, "bob", qid, "lost answer")

    assert get_session_responses(db, sid, "alice") == []
    assert get_user_question_assignments(db, sid, "bob", "bob")[0].answered is False
    assert get_session(db, sid).participant_count == 0
    with db.session() as session:
        assert session.execute(select(questions.c.usage_count).where(questions.c.id == qid)).scalar() == 0


def test_response_listing_permissions(db, nid, sid, qid):
    submit_user_response(db, nid, sid, "bob", qid, "bob's answer")
    submit_user_response(db, nid, sid, "carol", qid, "carol's answer")

    assert len(get_session_responses(db, sid, "carol")) == 2
    assert [r.user_id for r in get_user_session_responses(db, sid, "bob", "bob")] == ["bob"]
    assert len(get_user_session_responses(db, sid, "bob", "alice")) == 1
    with pytest.raises(PermissionError):
        get_user_session_responses(db, sid, "bob", "carol")


def test_unknown_session_responses(db, nid):
    with pytest.raises(NotFoundError):
        get_session_responses(db, "missing", "alice")
