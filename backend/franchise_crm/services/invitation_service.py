# Overview: Invitation issuing, listing and single-use redemption.

"""
Invitation Service

Issuing rules (keyed by the inviter's role):
- HQ invites OWNER, for an explicit, live branch
- OWNER invites STAFF, always for the owner's own branch
- STAFF invites nobody

Redemption is a single conditional UPDATE, so two signups racing on the
same code can never both succeed: whichever UPDATE lands second matches
zero rows and is reported as "already used".

Codes are handed back to the inviter; no email is sent.
"""

from __future__ import annotations

import secrets
import string
from datetime import timedelta

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Invitation, Profile
from ..roles import Role
from ..time_utils import epoch_millis, utcnow
from ..validation import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
    clean_str,
    normalize_email,
    validate_email,
)
from . import branch_service

CODE_ALPHABET = string.digits + string.ascii_uppercase
CODE_SUFFIX_LENGTH = 9

# Inviter role -> roles it may invite
INVITE_RULES: dict[Role, frozenset[Role]] = {
    Role.HQ: frozenset({Role.OWNER}),
    Role.OWNER: frozenset({Role.STAFF}),
    Role.STAFF: frozenset(),
}


def generate_invite_code() -> str:
    """INV_<epoch millis>_<9 uppercase base36 chars>."""
    suffix = "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_SUFFIX_LENGTH))
    return f"INV_{epoch_millis()}_{suffix}"


def _expiry_window() -> timedelta:
    return timedelta(days=current_app.config["INVITATION_EXPIRY_DAYS"])


def _resolve_branch_id(actor: Profile, branch_id) -> int:
    actor_role = actor.role_enum

    if actor_role == Role.HQ:
        if branch_id in (None, ""):
            raise ValidationError("branch_id is required when inviting an owner")
        try:
            branch_id = int(branch_id)
        except (TypeError, ValueError):
            raise ValidationError("branch_id must be an integer")
        return branch_service.require_branch(branch_id).id

    # Owners invite into their own branch; a client supplied branch_id is ignored
    if actor.branch_id is None:
        raise ValidationError("Inviter has no branch")
    return actor.branch_id


def create_invitation(actor: Profile, *, email: str, role, branch_id=None) -> Invitation:
    """
    Issue an invitation.

    Raises:
        ValidationError: bad email/role, HQ omitted branch_id
        AuthorizationError: role combination not allowed
        NotFoundError: HQ-specified branch missing or soft-deleted
    """
    email = validate_email(email)
    target_role = Role.parse(role)
    actor_role = actor.role_enum

    if target_role not in INVITE_RULES[actor_role]:
        if actor_role == Role.OWNER and target_role == Role.OWNER:
            raise AuthorizationError("Owners cannot invite owners")
        raise AuthorizationError(f"{actor_role.value} cannot invite {target_role.value}")

    resolved_branch_id = _resolve_branch_id(actor, branch_id)
    expires_at = utcnow() + _expiry_window()

    # Codes carry a random suffix; retry on the rare unique collision
    for _ in range(3):
        invitation = Invitation(
            email=email,
            role=target_role.value,
            branch_id=resolved_branch_id,
            invite_code=generate_invite_code(),
            invited_by=actor.id,
            expires_at=expires_at,
        )
        db.session.add(invitation)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            current_app.logger.warning("Invite code collision, regenerating")
            continue
        current_app.logger.info(
            "Invitation %s issued by profile %s for %s (%s, branch %s)",
            invitation.id, actor.id, email, target_role.value, resolved_branch_id,
        )
        return invitation

    raise ConflictError("Could not generate a unique invite code")


def list_invitations(actor: Profile) -> list[Invitation]:
    """HQ sees every invitation; an OWNER sees only their own branch's. Newest first."""
    query = db.session.query(Invitation)
    if actor.role_enum != Role.HQ:
        query = query.filter(Invitation.branch_id == actor.branch_id)
    return query.order_by(Invitation.created_at.desc(), Invitation.id.desc()).all()


def get_invitation(invitation_id: int) -> Invitation | None:
    return db.session.get(Invitation, invitation_id)


def delete_invitation(invitation_id: int) -> Invitation:
    """
    Remove an invitation that has not been redeemed yet.

    Raises NotFoundError if it does not exist, ConflictError if already used.
    """
    invitation = get_invitation(invitation_id)
    if not invitation:
        raise NotFoundError("Invitation not found")
    if invitation.used_at is not None:
        raise ConflictError("Invitation has already been used")

    db.session.delete(invitation)
    db.session.commit()
    return invitation


def find_redeemable_invitation(invite_code: str, email: str) -> Invitation | None:
    """
    Read-only check that (code, email) is currently redeemable.

    Registration uses this before creating an identity. It is not a
    reservation; redeem_invitation() is what actually claims the code.
    """
    invite_code = clean_str(invite_code)
    email = normalize_email(email)
    if not invite_code or not email:
        return None

    return db.session.query(Invitation).filter(
        Invitation.invite_code == invite_code,
        Invitation.email == email,
        Invitation.used_at.is_(None),
        Invitation.expires_at > utcnow(),
    ).first()


def _redemption_failure(invite_code: str, email: str, now) -> Exception:
    """Explain why a conditional redemption matched no rows."""
    invitation = db.session.query(Invitation).filter(
        Invitation.invite_code == invite_code,
        Invitation.email == email,
    ).first()

    if not invitation:
        return NotFoundError("Invalid invitation code")
    if invitation.expires_at <= now:
        return NotFoundError("Invitation has expired")
    return ConflictError("Invitation has already been used")


def redeem_invitation(invite_code: str, email: str, used_by: int, *, commit: bool = True) -> Invitation:
    """
    Atomically claim an invitation for profile used_by.

    UPDATE invitations SET used_at = now, used_by = :used_by
    WHERE invite_code = :code AND email = :email
      AND used_at IS NULL AND expires_at > now

    Returns the claimed Invitation (its branch_id is authoritative for the
    new profile). commit=False leaves the claim in the caller's transaction.

    Raises:
        NotFoundError: unknown code, email mismatch, or expired
        ConflictError: already used
    """
    invite_code = clean_str(invite_code)
    email = normalize_email(email)
    if not invite_code or not email:
        raise NotFoundError("Invalid invitation code")

    now = utcnow()
    result = db.session.execute(
        update(Invitation)
        .where(
            Invitation.invite_code == invite_code,
            Invitation.email == email,
            Invitation.used_at.is_(None),
            Invitation.expires_at > now,
        )
        .values(used_at=now, used_by=used_by)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        failure = _redemption_failure(invite_code, email, now)
        current_app.logger.warning(
            "Invitation redemption failed for %s: %s", email, failure
        )
        raise failure

    invitation = db.session.query(Invitation).populate_existing().filter(
        Invitation.invite_code == invite_code
    ).one()

    if commit:
        db.session.commit()
    return invitation
