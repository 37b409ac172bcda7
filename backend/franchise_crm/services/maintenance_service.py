# Overview: Retention cleanup for the audit log and stale invitations.

from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from ..models import Invitation, SecurityEvent
from ..time_utils import utcnow


def cleanup_security_events(*, retention_days: int = 90, event_types: list[str] | None = None) -> int:
    """
    Delete security events older than retention_days, optionally only the
    given event types. Approval history is a separate table and never pruned.
    """
    cutoff = utcnow() - timedelta(days=retention_days)
    query = db.session.query(SecurityEvent).filter(SecurityEvent.occurred_at < cutoff)
    if event_types:
        query = query.filter(SecurityEvent.event_type.in_(event_types))

    deleted = query.delete(synchronize_session=False)
    db.session.commit()
    return deleted


def cleanup_expired_invitations(*, older_than_days: int = 30) -> int:
    """Delete never-redeemed invitations that expired more than older_than_days ago."""
    cutoff = utcnow() - timedelta(days=older_than_days)
    deleted = db.session.query(Invitation).filter(
        Invitation.used_at.is_(None),
        Invitation.expires_at < cutoff,
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted
