"""Question pool CRUD and the usage counter."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from roundtable.core.database import Database
from roundtable.core.errors import NotFoundError, PermissionError, ValidationError
from roundtable.features.newsletters.service import add_user_to_newsletter, create_newsletter
from roundtable.features.questions.service import (
    add_question,
    delete_question,
    get_question,
    get_questions,
    increment_question_usage,
    update_question,
)
from roundtable.features.users.service import ensure_user
from roundtable.models.question import QuestionSource


@pytest.fixture
def nid(db, make_user):
    make_user("alice")
    make_user("bob")
    newsletter_id = create_newsletter(db, "alice", "Book Club", "Monthly reads", "Cozy", {"is_public": False})
    add_user_to_newsletter(db, newsletter_id, "bob", "alice")
    return newsletter_id


def test_add_and_list(db, nid):
    question = add_question(db, nid, "  What are you reading?  ", "alice", category="books", tags=["weekly"])
    assert question.text == "What are you reading?"
    assert question.source is QuestionSource.USER
    assert question.usage_count == 0

    listed = get_questions(db, nid, "bob")
    assert [q.id for q in listed] == [question.id]
    assert listed[0].tags == ["weekly"]


def test_members_cannot_add_questions(db, nid):
    with pytest.raises(PermissionError):
        add_question(db, nid, "Sneaky?", "bob")


def test_invalid_source_is_rejected(db, nid):
    with pytest.raises(ValidationError):
        add_question(db, nid, "Hmm?", "alice", source="oracle")


def test_outsider_cannot_read_private_questions(db, nid, make_user):
    make_user("mallory")
    question = add_question(db, nid, "Favourite chapter?", "alice")
    with pytest.raises(PermissionError):
        get_questions(db, nid, "mallory")
    with pytest.raises(PermissionError):
        get_question(db, question.id, "mallory")


def test_get_missing_question(db, nid):
    with pytest.raises(NotFoundError):
        get_question(db, "missing", "alice")


def test_update_strips_protected_fields(db, nid):
    question = add_question(db, nid, "Old text", "alice")
    applied = update_question(
        db,
        question.id,
        {"text": "New text", "usage_count": 99, "created_by": "bob", "newsletter_id": "other"},
        "alice",
    )
    assert applied == {"text": "New text"}

    fetched = get_question(db, question.id, "alice")
    assert fetched.text == "New text"
    assert fetched.usage_count == 0
    assert fetched.created_by == "alice"
    assert fetched.newsletter_id == nid


def test_update_with_only_protected_fields_fails(db, nid):
    question = add_question(db, nid, "Text", "alice")
    with pytest.raises(ValidationError):
        update_question(db, question.id, {"id": "x"}, "alice")


def test_delete_is_soft(db, nid):
    question = add_question(db, nid, "Going away", "alice")
    delete_question(db, question.id, "alice")

    assert get_questions(db, nid, "alice") == []
    assert get_question(db, question.id, "alice").is_active is False


def test_increment_usage(db, nid):
    question = add_question(db, nid, "Count me", "alice")
    increment_question_usage(db, question.id)
    increment_question_usage(db, question.id)
    assert get_question(db, question.id, "alice").usage_count == 2


def test_increment_missing_question(db, nid):
    with pytest.raises(NotFoundError):
        increment_question_usage(db, "missing")


def test_concurrent_increments_are_not_lost(tmp_path):
    file_db = Database(f"sqlite:///{tmp_path / 'usage.db'}")
    file_db.create_all()
    try:
        ensure_user(file_db, "alice")
        newsletter_id = create_newsletter(file_db, "alice", "Busy", "d", "p")
        question = add_question(file_db, newsletter_id, "Popular?", "alice")

        calls = 40
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda _: increment_question_usage(file_db, question.id), range(calls)))

        assert get_question(file_db, question.id, "alice").usage_count == calls
    finally:
        file_db.dispose()
