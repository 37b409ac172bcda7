# Overview: Append-only security event logging.

from __future__ import annotations

from ..extensions import db
from ..models import SecurityEvent
from ..time_utils import utcnow


def log_security_event(
    actor_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    branch_id: int | None = None,
    commit: bool = True,
) -> SecurityEvent:
    """
    Record a security event.

    event_type examples:
    - ACCESS_DENIED (role guard: wrong role)
    - APPROVAL_REQUIRED (role guard: unapproved profile)
    - ROLE_CHANGED
    - USER_DEACTIVATED
    - INVITATION_DELETED

    commit=False adds the event to the caller's unit of work instead of
    committing on its own.
    """
    event = SecurityEvent(
        actor_id=actor_id,
        branch_id=branch_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )
    db.session.add(event)
    if commit:
        db.session.commit()
    return event


def list_security_events(*, event_type: str | None = None, limit: int = 100) -> list[SecurityEvent]:
    query = db.session.query(SecurityEvent)
    if event_type:
        query = query.filter(SecurityEvent.event_type == event_type)
    return query.order_by(SecurityEvent.occurred_at.desc(), SecurityEvent.id.desc()).limit(limit).all()
