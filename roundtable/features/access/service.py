"""Newsletter access checks.

Every call re-reads the newsletter and the membership row; nothing is
cached, so concurrent requests never share state here.
"""

from typing import Optional, Union

from sqlalchemy import select

from roundtable.core.database import Database, newsletter_memberships, newsletters
from roundtable.core.errors import PermissionError
from roundtable.models.newsletter import AccessMode, Membership, Role, WRITE_ROLES


def membership_from_row(row) -> Membership:
    return Membership(
        id=row.id,
        newsletter_id=row.newsletter_id,
        user_id=row.user_id,
        role=Role(row.role),
        joined_at=row.joined_at,
        is_active=row.is_active,
        answered_questions=list(row.answered_questions or []),
    )


def get_active_membership(db: Database, newsletter_id: str, user_id: str) -> Optional[Membership]:
    with db.session() as session:
        row = session.execute(
            select(newsletter_memberships).where(
                newsletter_memberships.c.newsletter_id == newsletter_id,
                newsletter_memberships.c.user_id == user_id,
                newsletter_memberships.c.is_active.is_(True),
            )
        ).first()
        return membership_from_row(row) if row else None


def has_access(
    db: Database,
    newsletter_id: str,
    user_id: str,
    mode: Union[AccessMode, str] = AccessMode.READ,
) -> bool:
    """
    Whether `user_id` may read or write `newsletter_id`'s data.

    write: active membership with role owner or moderator.
    read:  newsletter is public, or any active membership.
    A missing newsletter denies both.
    """
    mode = AccessMode(mode)
    with db.session() as session:
        newsletter = session.execute(
            select(newsletters.c.id, newsletters.c.settings).where(newsletters.c.id == newsletter_id)
        ).first()
    if newsletter is None:
        return False

    membership = get_active_membership(db, newsletter_id, user_id)

    if mode is AccessMode.WRITE:
        return membership is not None and membership.role in WRITE_ROLES

    if (newsletter.settings or {}).get("is_public", True):
        return True
    return membership is not None


def require_access(
    db: Database,
    newsletter_id: str,
    user_id: str,
    mode: Union[AccessMode, str],
    message: str,
) -> None:
    if not has_access(db, newsletter_id, user_id, mode):
        raise PermissionError(message)


def is_owner(db: Database, newsletter_id: str, user_id: str) -> bool:
    membership = get_active_membership(db, newsletter_id, user_id)
    return membership is not None and membership.role is Role.OWNER
