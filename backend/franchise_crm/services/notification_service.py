# Overview: Approval notifications (logged only; no mail transport is configured).

from __future__ import annotations

from flask import current_app

from ..models import Profile
from ..time_utils import to_utc_z, utcnow


def notify_approval_decision(profile: Profile, approved: bool, *, reason: str | None = None) -> dict:
    """
    Record that a user should be told about an approval decision.

    Returns the notification payload so callers and tests can inspect it.
    """
    payload = {
        "user_id": profile.id,
        "email": profile.email,
        "name": profile.name,
        "approved": approved,
        "reason": reason,
        "timestamp": to_utc_z(utcnow()),
    }
    current_app.logger.info("Approval notification: %s", payload)
    return payload


def notify_pending_registration(profile: Profile) -> None:
    current_app.logger.info(
        "New %s registration pending approval: profile %s (%s)",
        profile.role, profile.id, profile.email,
    )
