from __future__ import annotations

from ..extensions import db
from ..models import ApprovalHistory, Branch, Invitation, Profile
from ..roles import Role
from ..time_utils import utcnow
from ..validation import NotFoundError, ValidationError, clean_str, parse_int
from . import branch_service, session_service
from .concurrency import lock_for_update, run_with_retry

_UNSET = object()


def get_user(user_id: int) -> Profile | None:
    return db.session.get(Profile, user_id)


def list_users(
    *,
    search: str | None = None,
    approved: bool | None = None,
    role: Role | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Profile], int]:
    query = db.session.query(Profile)

    search = clean_str(search)
    if search:
        pattern = f"%{search}%"
        query = query.filter(db.or_(
            Profile.name.ilike(pattern),
            Profile.email.ilike(pattern),
            Profile.phone.ilike(pattern),
        ))
    if approved is not None:
        query = query.filter(Profile.approved.is_(approved))
    if role is not None:
        query = query.filter(Profile.role == Role.parse(role).value)

    total = query.count()
    profiles = query.order_by(Profile.created_at.desc(), Profile.id.desc()).limit(limit).offset(offset).all()
    return profiles, total


def change_role(user_id: int, role, branch_id=_UNSET) -> tuple[Profile, dict]:
    """
    Move a profile to another role.

    - An HQ profile's role cannot be changed
    - OWNER/STAFF need a branch: the explicit branch_id (must exist), or the
      profile's current one
    - HQ clears the branch

    Active sessions are revoked so the new role applies on next login.
    Returns (profile, change summary).
    """
    new_role = Role.parse(role)

    def _op():
        profile = lock_for_update(db.session.query(Profile).filter_by(id=user_id)).first()
        if not profile:
            raise NotFoundError("User not found")

        old = {"role": profile.role, "branch_id": profile.branch_id}
        if profile.role_enum == Role.HQ and new_role != Role.HQ:
            raise ValidationError("HQ role cannot be changed")

        if new_role.is_branch_scoped:
            if branch_id not in (_UNSET, None, ""):
                profile.branch_id = branch_service.require_branch(parse_int(branch_id, "branch_id")).id
            elif profile.branch_id is None:
                raise ValidationError(f"{new_role.value} role requires a branch")
        else:
            profile.branch_id = None

        profile.role = new_role.value
        session_service.revoke_all_identity_sessions(profile.id, "Role changed", commit=False)
        db.session.commit()
        return profile, {"old": old, "new": {"role": profile.role, "branch_id": profile.branch_id}}

    try:
        return run_with_retry(_op)
    except (ValidationError, NotFoundError):
        db.session.rollback()
        raise


def deactivate_user(actor: Profile, user_id: int, reason: str | None = None) -> Profile:
    """
    Deactivate = un-approve. The row stays; sessions are revoked and the
    decision is recorded in approval_history.
    """
    profile = lock_for_update(db.session.query(Profile).filter_by(id=user_id)).first()
    if not profile:
        raise NotFoundError("User not found")
    if profile.role_enum == Role.HQ:
        raise ValidationError("HQ users cannot be deactivated")

    now = utcnow()
    profile.approved = False
    profile.approved_by = None
    profile.approved_at = None
    db.session.add(ApprovalHistory(
        user_id=profile.id,
        approved_by=actor.id,
        approved=False,
        reason=clean_str(reason) or "Deactivated",
        created_at=now,
    ))
    session_service.revoke_all_identity_sessions(profile.id, "User deactivated", commit=False)
    db.session.commit()
    return profile


def get_statistics() -> dict:
    """Headline counts for the HQ statistics page."""
    role_counts = dict(
        db.session.query(Profile.role, db.func.count(Profile.id)).group_by(Profile.role).all()
    )
    approved = db.session.query(Profile).filter(Profile.approved.is_(True)).count()
    total = sum(role_counts.values())

    now = utcnow()
    open_invitations = db.session.query(Invitation).filter(
        Invitation.used_at.is_(None),
        Invitation.expires_at > now,
    ).count()

    return {
        "users": {
            "total": total,
            "by_role": {role.value: role_counts.get(role.value, 0) for role in Role},
            "approved": approved,
            "pending": total - approved,
        },
        "branches": {
            "total": db.session.query(Branch).filter(Branch.deleted_at.is_(None)).count(),
            "deleted": db.session.query(Branch).filter(Branch.deleted_at.isnot(None)).count(),
        },
        "invitations": {
            "open": open_invitations,
            "used": db.session.query(Invitation).filter(Invitation.used_at.isnot(None)).count(),
        },
        "approval_decisions": db.session.query(ApprovalHistory).count(),
    }
