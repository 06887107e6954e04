"""
Newsletter and membership domain logic.

Memberships live in their own table, one row per (newsletter, user).
Removing a member flips the row inactive; adding them again re-activates it.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import func, insert, select, update

from roundtable.core.config import settings as default_settings
from roundtable.core.database import Database, new_id, newsletter_memberships, newsletters, users
from roundtable.core.errors import ConflictError, NotFoundError, PermissionError, ValidationError
from roundtable.core.logging import log_event
from roundtable.features.access.service import (
    get_active_membership,
    has_access,
    is_owner,
    membership_from_row,
    require_access,
)
from roundtable.models.newsletter import (
    AccessMode,
    Membership,
    Newsletter,
    NewsletterMember,
    NewsletterSettings,
    NewsletterUpdateRequest,
    Role,
)

logger = logging.getLogger("roundtable.newsletters")


def newsletter_from_row(row) -> Newsletter:
    return Newsletter(
        id=row.id,
        name=row.name,
        description=row.description or "",
        prompt=row.prompt or "",
        settings=NewsletterSettings(**(row.settings or {})),
        is_active=row.is_active,
        created_at=row.created_at,
    )


def _settings_with_defaults(overrides: Optional[Dict[str, Any]]) -> NewsletterSettings:
    values: Dict[str, Any] = {"max_members": default_settings.DEFAULT_MAX_MEMBERS}
    values.update({k: v for k, v in (overrides or {}).items() if v is not None})
    try:
        return NewsletterSettings(**values)
    except ValueError as e:
        raise ValidationError(f"Invalid settings: {e}")


def merge_settings(current: NewsletterSettings, patch: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Overlay a partial settings patch on the stored settings."""
    return _settings_with_defaults({**current.model_dump(), **(patch or {})}).model_dump()


def _active_member_count(session, newsletter_id: str) -> int:
    return session.execute(
        select(func.count()).select_from(newsletter_memberships).where(
            newsletter_memberships.c.newsletter_id == newsletter_id,
            newsletter_memberships.c.is_active.is_(True),
        )
    ).scalar() or 0


def create_newsletter(
    db: Database,
    owner_id: str,
    name: str,
    description: str,
    prompt: str,
    settings: Optional[Dict[str, Any]] = None,
) -> str:
    """Create a newsletter and make `owner_id` its owner. Returns the new id."""
    newsletter_id = new_id()
    now = datetime.now(timezone.utc)
    resolved = _settings_with_defaults(settings)

    with db.session() as session:
        session.execute(
            insert(newsletters).values(
                id=newsletter_id,
                name=name,
                description=description,
                prompt=prompt,
                settings=resolved.model_dump(),
                is_active=True,
                created_at=now,
            )
        )
        session.execute(
            insert(newsletter_memberships).values(
                id=new_id(),
                newsletter_id=newsletter_id,
                user_id=owner_id,
                role=Role.OWNER.value,
                joined_at=now,
                is_active=True,
                answered_questions=[],
            )
        )

    logger.info("newsletter.created", extra={"newsletter_id": newsletter_id, "user_id": owner_id})
    return newsletter_id


def get_newsletter(db: Database, newsletter_id: str) -> Optional[Newsletter]:
    with db.session() as session:
        row = session.execute(select(newsletters).where(newsletters.c.id == newsletter_id)).first()
        return newsletter_from_row(row) if row else None


def get_newsletter_for_user(db: Database, newsletter_id: str, user_id: str) -> Newsletter:
    newsletter = get_newsletter(db, newsletter_id)
    if not newsletter:
        raise NotFoundError("Newsletter not found")
    require_access(db, newsletter_id, user_id, AccessMode.READ, "Unauthorized: Access denied")
    return newsletter


def get_newsletters_for_user(db: Database, user_id: str) -> List[dict]:
    """Active newsletters the user belongs to, each with the user's role."""
    with db.session() as session:
        rows = session.execute(
            select(newsletters, newsletter_memberships.c.role)
            .join(newsletter_memberships, newsletter_memberships.c.newsletter_id == newsletters.c.id)
            .where(
                newsletter_memberships.c.user_id == user_id,
                newsletter_memberships.c.is_active.is_(True),
                newsletters.c.is_active.is_(True),
            )
            .order_by(newsletters.c.created_at)
        ).all()

    return [{**newsletter_from_row(row).model_dump(), "role": row.role} for row in rows]


def update_newsletter(db: Database, newsletter_id: str, updates: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """Patch a newsletter. Settings are merged over the current settings."""
    current = get_newsletter(db, newsletter_id)
    if not current:
        raise NotFoundError("Newsletter not found")
    require_access(db, newsletter_id, user_id, AccessMode.WRITE, "Unauthorized: User cannot update this newsletter")

    allowed = NewsletterUpdateRequest.parse(updates)
    if "is_active" in allowed and not is_owner(db, newsletter_id, user_id):
        raise PermissionError("Unauthorized: Only an owner can change whether this newsletter is active")
    if "settings" in allowed:
        allowed["settings"] = merge_settings(current.settings, allowed["settings"])

    with db.session() as session:
        session.execute(update(newsletters).where(newsletters.c.id == newsletter_id).values(**allowed))

    logger.info("newsletter.updated", extra={"newsletter_id": newsletter_id, "user_id": user_id, "fields": sorted(allowed)})
    return allowed


def delete_newsletter(db: Database, newsletter_id: str, user_id: str) -> None:
    """Owner-only soft delete."""
    if not get_newsletter(db, newsletter_id):
        raise NotFoundError("Newsletter not found")
    if not is_owner(db, newsletter_id, user_id):
        raise PermissionError("Unauthorized: User is not an owner of this newsletter")

    with db.session() as session:
        session.execute(update(newsletters).where(newsletters.c.id == newsletter_id).values(is_active=False))

    logger.info("newsletter.deleted", extra={"newsletter_id": newsletter_id, "user_id": user_id})


def _activate_membership(session, newsletter_id: str, user_id: str, role: Role, max_members: Optional[int]) -> None:
    existing = session.execute(
        select(newsletter_memberships).where(
            newsletter_memberships.c.newsletter_id == newsletter_id,
            newsletter_memberships.c.user_id == user_id,
        )
    ).first()
    if existing is not None and existing.is_active:
        raise ConflictError("User is already a member of this newsletter")

    if max_members is not None and _active_member_count(session, newsletter_id) >= max_members:
        raise ValidationError("Invalid request: newsletter has reached its member limit")

    now = datetime.now(timezone.utc)
    if existing is not None:
        session.execute(
            update(newsletter_memberships)
            .where(newsletter_memberships.c.id == existing.id)
            .values(role=role.value, is_active=True, joined_at=now)
        )
    else:
        session.execute(
            insert(newsletter_memberships).values(
                id=new_id(),
                newsletter_id=newsletter_id,
                user_id=user_id,
                role=role.value,
                joined_at=now,
                is_active=True,
                answered_questions=[],
            )
        )


def add_user_to_newsletter(
    db: Database,
    newsletter_id: str,
    user_id: str,
    added_by: str,
    role: Union[Role, str] = Role.MEMBER,
) -> None:
    """Add `user_id` as an active member. Rejects (does not duplicate) existing members."""
    role = Role(role)
    if not has_access(db, newsletter_id, added_by, AccessMode.WRITE):
        raise PermissionError("Unauthorized: User cannot add members to this newsletter")
    if role is Role.OWNER:
        raise ValidationError("Invalid role: owners cannot be added")

    newsletter = get_newsletter(db, newsletter_id)
    with db.session() as session:
        if session.execute(select(users.c.id).where(users.c.id == user_id)).first() is None:
            raise NotFoundError("User not found")
        _activate_membership(session, newsletter_id, user_id, role, newsletter.settings.max_members)

    log_event(
        "info",
        "membership.added",
        user_id=user_id,
        newsletter_id=newsletter_id,
        event_type="membership",
        extra={"added_by": added_by, "role": role.value},
    )


def join_newsletter(db: Database, newsletter_id: str, user_id: str) -> None:
    """Self-join a public newsletter that does not require approval."""
    newsletter = get_newsletter(db, newsletter_id)
    if not newsletter or not newsletter.is_active:
        raise NotFoundError("Newsletter not found")
    if not newsletter.settings.is_public or newsletter.settings.require_approval:
        raise PermissionError("Unauthorized: This newsletter requires an invitation")

    with db.session() as session:
        _activate_membership(session, newsletter_id, user_id, Role.MEMBER, newsletter.settings.max_members)

    log_event("info", "membership.joined", user_id=user_id, newsletter_id=newsletter_id, event_type="membership")


def remove_user_from_newsletter(db: Database, newsletter_id: str, user_id: str, removed_by: str) -> None:
    """
    Deactivate a membership.

    Allowed for writers and for the member themself. An owner can only be
    removed by themself.
    """
    is_self = user_id == removed_by
    if not is_self and not has_access(db, newsletter_id, removed_by, AccessMode.WRITE):
        raise PermissionError("Unauthorized: User cannot remove members from this newsletter")

    membership = get_active_membership(db, newsletter_id, user_id)
    if membership is None:
        raise NotFoundError("Membership not found")
    if membership.role is Role.OWNER and not is_self:
        raise PermissionError("Unauthorized: Owners can only be removed by themselves")

    with db.session() as session:
        session.execute(
            update(newsletter_memberships)
            .where(newsletter_memberships.c.id == membership.id)
            .values(is_active=False)
        )

    log_event(
        "info",
        "membership.removed",
        user_id=user_id,
        newsletter_id=newsletter_id,
        event_type="membership",
        extra={"removed_by": removed_by},
    )


def update_user_role(
    db: Database,
    newsletter_id: str,
    user_id: str,
    new_role: Union[Role, str],
    updated_by: str,
) -> Membership:
    """Owner-only role change on an existing active membership."""
    new_role = Role(new_role)
    if not is_owner(db, newsletter_id, updated_by):
        raise PermissionError("Unauthorized: Only owners can change member roles")

    membership = get_active_membership(db, newsletter_id, user_id)
    if membership is None:
        raise NotFoundError("Membership not found")
    if membership.role is Role.OWNER:
        raise PermissionError("Unauthorized: Owners cannot be demoted")
    if new_role is Role.OWNER:
        raise ValidationError("Invalid role: ownership cannot be granted")

    with db.session() as session:
        session.execute(
            update(newsletter_memberships)
            .where(newsletter_memberships.c.id == membership.id)
            .values(role=new_role.value)
        )

    log_event(
        "info",
        "membership.role_changed",
        user_id=user_id,
        newsletter_id=newsletter_id,
        event_type="membership",
        extra={"role": new_role.value, "updated_by": updated_by},
    )
    return membership.model_copy(update={"role": new_role})


def get_newsletter_members(db: Database, newsletter_id: str, requesting_user_id: str) -> List[NewsletterMember]:
    if not has_access(db, newsletter_id, requesting_user_id, AccessMode.READ):
        raise PermissionError("Unauthorized: User cannot view members of this newsletter")

    with db.session() as session:
        rows = session.execute(
            select(
                newsletter_memberships,
                users.c.email.label("user_email"),
                users.c.display_name.label("user_display_name"),
            )
            .join(users, users.c.id == newsletter_memberships.c.user_id)
            .where(
                newsletter_memberships.c.newsletter_id == newsletter_id,
                newsletter_memberships.c.is_active.is_(True),
            )
            .order_by(newsletter_memberships.c.joined_at)
        ).all()

    return [
        NewsletterMember(
            id=row.user_id,
            email=row.user_email,
            display_name=row.user_display_name or "",
            membership=membership_from_row(row),
        )
        for row in rows
    ]
