# Overview: HQ approval gate (single and batch decisions) and its history ledger.

"""
Approval Service

The profile's approved flag is the only gate into the application. HQ
flips it here; every decision is also appended to approval_history.

Batch decisions are independent per user: each id is applied and committed
on its own, and a failure is reported for that id without touching the
others.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import ApprovalHistory, Profile
from ..roles import Role
from ..time_utils import utcnow
from ..validation import AuthorizationError, NotFoundError, ValidationError, clean_str, parse_int
from . import notification_service
from .concurrency import lock_for_update


def _require_hq_actor(actor: Profile) -> None:
    if actor is None or actor.role_enum != Role.HQ or not actor.approved:
        raise AuthorizationError("HQ approval required")


def _coerce_user_id(user_id) -> int:
    # parse_int rejects floats and bools; int(3.9) would silently become 3
    try:
        parsed = parse_int(user_id, "user_id")
    except ValidationError:
        parsed = None
    if parsed is None:
        raise ValidationError("Invalid user id")
    return parsed


def _apply_decision(actor: Profile, user_id, approved: bool, reason: str | None) -> Profile:
    """Mutate the profile and append history. Caller commits or rolls back."""
    user_id = _coerce_user_id(user_id)

    profile = lock_for_update(db.session.query(Profile).filter_by(id=user_id)).first()
    if not profile:
        raise NotFoundError("User not found")
    if profile.id == actor.id:
        raise ValidationError("You cannot change your own approval")

    now = utcnow()
    if approved:
        if profile.role_enum.is_branch_scoped and profile.branch_id is None:
            raise ValidationError(f"{profile.role} users need a branch before approval")
        profile.approved = True
        profile.approved_by = actor.id
        profile.approved_at = now
    else:
        profile.approved = False
        profile.approved_by = None
        profile.approved_at = None

    db.session.add(ApprovalHistory(
        user_id=profile.id,
        approved_by=actor.id,
        approved=approved,
        reason=clean_str(reason),
        created_at=now,
    ))
    return profile


def set_approval(actor: Profile, user_id, approved: bool = True, reason: str | None = None) -> Profile:
    """
    Approve or reject one profile.

    Approval stamps approved_by/approved_at; rejection clears them. The
    profile is never deleted; a rejected user simply stays at the
    pending-approval page.

    Raises:
        AuthorizationError: actor is not an approved HQ profile
        NotFoundError: user does not exist
        ValidationError: self-approval, or OWNER/STAFF without a branch
    """
    _require_hq_actor(actor)
    if not isinstance(approved, bool):
        raise ValidationError("approved must be a boolean")

    try:
        profile = _apply_decision(actor, user_id, approved, reason)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Profile %s %s by HQ %s", profile.id, "approved" if approved else "rejected", actor.id
    )
    notification_service.notify_approval_decision(profile, approved, reason=reason)
    return profile


def set_approval_batch(actor: Profile, user_ids, approved: bool, reason: str | None = None) -> dict:
    """
    Apply the same decision to several profiles.

    Returns:
        {
            "approved": bool,
            "results": [{"user_id", "ok", "error", "profile"}, ...],
            "succeeded": int,
            "failed": int,
        }
    """
    _require_hq_actor(actor)
    if not isinstance(user_ids, list) or not user_ids:
        raise ValidationError("user_ids must be a non-empty list")
    if not isinstance(approved, bool):
        raise ValidationError("approved must be a boolean")

    results = []
    decided: list[Profile] = []
    for user_id in user_ids:
        try:
            profile = _apply_decision(actor, user_id, approved, reason)
            db.session.commit()
        except (ValidationError, NotFoundError) as exc:
            db.session.rollback()
            results.append({"user_id": user_id, "ok": False, "error": str(exc), "profile": None})
            continue

        decided.append(profile)
        results.append({"user_id": profile.id, "ok": True, "error": None, "profile": profile.to_dict()})

    for profile in decided:
        notification_service.notify_approval_decision(profile, approved, reason=reason)

    succeeded = len(decided)
    current_app.logger.info(
        "Batch %s by HQ %s: %s succeeded, %s failed",
        "approval" if approved else "rejection", actor.id, succeeded, len(results) - succeeded,
    )
    return {
        "approved": approved,
        "results": results,
        "succeeded": succeeded,
        "failed": len(results) - succeeded,
    }


def pending_count() -> int:
    """Unapproved profiles awaiting review. HQ signups are excluded."""
    return db.session.query(Profile).filter(
        Profile.approved.is_(False),
        Profile.role != Role.HQ.value,
    ).count()


def approval_status(profile: Profile) -> dict:
    """What the pending-approval page polls for."""
    return {
        "approved": bool(profile.approved),
        "role": profile.role,
        "redirect": "/dashboard" if profile.approved else "/pending-approval",
        "poll_interval_seconds": current_app.config["APPROVAL_POLL_INTERVAL_SECONDS"],
    }


def list_approval_history(
    *,
    user_id: int | None = None,
    approved_by: int | None = None,
    since: datetime | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[ApprovalHistory], int]:
    """Newest decisions first, plus the total before paging."""
    query = db.session.query(ApprovalHistory)
    if user_id is not None:
        query = query.filter(ApprovalHistory.user_id == user_id)
    if approved_by is not None:
        query = query.filter(ApprovalHistory.approved_by == approved_by)
    if since is not None:
        query = query.filter(ApprovalHistory.created_at >= since)

    total = query.count()
    rows = query.order_by(
        ApprovalHistory.created_at.desc(), ApprovalHistory.id.desc()
    ).limit(limit).offset(offset).all()
    return rows, total
