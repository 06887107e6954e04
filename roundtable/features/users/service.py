"""
User domain service.
- ensure_user(db, uid, ...)   create-on-first-login
- get_user(db, user_id)
- update_user_profile / delete_user   self-service only
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError

from roundtable.core.database import Database, newsletter_memberships, users
from roundtable.core.errors import NotFoundError, PermissionError
from roundtable.models.user import User, UserPreferences, UserUpdateRequest

logger = logging.getLogger("roundtable.users")


def user_from_row(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        display_name=row.display_name or "",
        is_active=row.is_active,
        is_admin=row.is_admin,
        preferences=row.preferences or {},
        created_at=row.created_at,
    )


def get_user(db: Database, user_id: str) -> Optional[User]:
    with db.session() as session:
        row = session.execute(select(users).where(users.c.id == user_id)).first()
        return user_from_row(row) if row else None


def ensure_user(db: Database, uid: str, *, email: Optional[str] = None, name: Optional[str] = None) -> User:
    existing = get_user(db, uid)
    if existing:
        return existing

    now = datetime.now(timezone.utc)
    values = {
        "id": uid,
        "email": email,
        "display_name": (name or "").strip(),
        "is_active": True,
        "is_admin": False,
        "preferences": UserPreferences().model_dump(),
        "created_at": now,
    }
    try:
        with db.session() as session:
            session.execute(insert(users).values(**values))
    except IntegrityError:
        # Lost a first-login race with a concurrent request
        existing = get_user(db, uid)
        if existing:
            return existing
        raise

    logger.info("user.created", extra={"user_id": uid})
    return User(**values)


def setup_profile(
    db: Database,
    uid: str,
    *,
    email: Optional[str] = None,
    display_name: Optional[str] = None,
    preferences: Optional[Dict[str, Any]] = None,
) -> User:
    """Create the profile if needed and apply first-login details."""
    user = ensure_user(db, uid, email=email, name=display_name)
    changes: Dict[str, Any] = {}
    if email and not user.email:
        changes["email"] = email
    if display_name and display_name.strip() and display_name.strip() != user.display_name:
        changes["display_name"] = display_name.strip()
    if preferences is not None:
        changes["preferences"] = {**user.preferences, **preferences}
    if not changes:
        return user

    with db.session() as session:
        session.execute(update(users).where(users.c.id == uid).values(**changes))
    return get_user(db, uid)


def get_public_profile(db: Database, user_id: str) -> dict:
    user = get_user(db, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user.public_profile()


def update_user_profile(db: Database, user_id: str, updates: Dict[str, Any], acting_user_id: str) -> Dict[str, Any]:
    """Self-service profile update; only display_name and preferences may change."""
    if user_id != acting_user_id:
        raise PermissionError("Unauthorized: Users can only update their own profile")

    allowed = UserUpdateRequest.parse(updates)

    with db.session() as session:
        result = session.execute(update(users).where(users.c.id == user_id).values(**allowed))
        if result.rowcount == 0:
            raise NotFoundError("User not found")

    logger.info("user.updated", extra={"user_id": user_id, "fields": sorted(allowed)})
    return allowed


def delete_user(db: Database, user_id: str, acting_user_id: str) -> None:
    """Hard-delete the caller's own profile and deactivate their memberships."""
    if user_id != acting_user_id:
        raise PermissionError("Unauthorized: Users can only delete their own profile")

    with db.session() as session:
        result = session.execute(delete(users).where(users.c.id == user_id))
        if result.rowcount == 0:
            raise NotFoundError("User not found")
        session.execute(
            update(newsletter_memberships)
            .where(newsletter_memberships.c.user_id == user_id)
            .values(is_active=False)
        )

    logger.info("user.deleted", extra={"user_id": user_id})
