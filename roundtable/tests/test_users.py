"""User profiles: first login, self-service updates and deletion."""

import pytest

from roundtable.core.errors import NotFoundError, PermissionError, ValidationError
from roundtable.features.access.service import get_active_membership
from roundtable.features.newsletters.service import add_user_to_newsletter, create_newsletter
from roundtable.features.users.service import (
    delete_user,
    ensure_user,
    get_public_profile,
    get_user,
    setup_profile,
    update_user_profile,
)


def test_first_login_creates_profile_with_defaults(db):
    user = ensure_user(db, "u1", email="u1@example.com", name="Uma")
    assert user.is_active is True
    assert user.is_admin is False
    assert user.display_name == "Uma"
    assert user.preferences == {"email_notifications": True, "timezone": "UTC"}


def test_ensure_user_is_idempotent(db):
    ensure_user(db, "u1", email="u1@example.com", name="Uma")
    again = ensure_user(db, "u1", email="other@example.com", name="Someone else")
    assert again.email == "u1@example.com"
    assert again.display_name == "Uma"


def test_setup_profile_fills_details(db):
    ensure_user(db, "u1")
    profile = setup_profile(db, "u1", email="u1@example.com", display_name="Uma", preferences={"timezone": "Europe/Oslo"})
    assert profile.email == "u1@example.com"
    assert profile.display_name == "Uma"
    assert profile.preferences == {"email_notifications": True, "timezone": "Europe/Oslo"}


def test_public_profile(db):
    ensure_user(db, "u1", email="u1@example.com", name="Uma")
    assert get_public_profile(db, "u1") == {
        "id": "u1",
        "display_name": "Uma",
        "email": "u1@example.com",
        "is_active": True,
    }
    with pytest.raises(NotFoundError):
        get_public_profile(db, "nobody")


def test_update_profile_only_allowed_fields(db):
    ensure_user(db, "u1", name="Uma")
    applied = update_user_profile(db, "u1", {"display_name": "Uma B", "is_admin": True}, "u1")
    assert applied == {"display_name": "Uma B"}
    assert get_user(db, "u1").is_admin is False

    with pytest.raises(ValidationError):
        update_user_profile(db, "u1", {"is_admin": True}, "u1")


def test_cannot_update_someone_else(db):
    ensure_user(db, "u1")
    ensure_user(db, "u2")
    with pytest.raises(PermissionError):
        update_user_profile(db, "u1", {"display_name": "pwned"}, "u2")


def test_self_delete_removes_profile_and_memberships(db):
    ensure_user(db, "owner")
    ensure_user(db, "u1")
    nid = create_newsletter(db, "owner", "Club", "d", "p")
    add_user_to_newsletter(db, nid, "u1", "owner")

    with pytest.raises(PermissionError):
        delete_user(db, "u1", "owner")

    delete_user(db, "u1", "u1")
    assert get_user(db, "u1") is None
    assert get_active_membership(db, nid, "u1") is None
