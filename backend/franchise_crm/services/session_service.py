# Overview: Session token issuing, validation and revocation.

"""
Session Token Management Service

Tokens are opaque random strings handed to the client (as a cookie and in
the login response body) and stored only as SHA-256 hashes.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Absolute timeout (SESSION_ABSOLUTE_TIMEOUT_HOURS, default 24h)
- Idle timeout (SESSION_IDLE_TIMEOUT_HOURS, default 2h)
- Revocable on logout, deactivation or role change
"""

import secrets
import hashlib
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import AuthIdentity, Profile, SessionToken
from ..time_utils import utcnow


@dataclass
class SessionContext:
    """
    Resolved session for a request.

    profile is None when the identity has no profile row (e.g. a signup
    whose compensation is still pending); the role guard treats that as
    unauthenticated.
    """
    identity: AuthIdentity
    session: SessionToken
    profile: Profile | None


def _absolute_timeout() -> timedelta:
    return timedelta(hours=current_app.config["SESSION_ABSOLUTE_TIMEOUT_HOURS"])


def _idle_timeout() -> timedelta:
    return timedelta(hours=current_app.config["SESSION_IDLE_TIMEOUT_HOURS"])


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy)."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    Tokens are already high-entropy, so a fast hash is sufficient.
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(
    identity_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[SessionToken, str]:
    """
    Create new session token for an identity.

    Returns (session_record, plaintext_token).
    Client receives plaintext_token, database stores only the hash.
    """
    identity = db.session.get(AuthIdentity, identity_id)
    if not identity:
        raise ValueError("Identity not found")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        identity_id=identity_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _absolute_timeout(),
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False
    )

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def validate_session(token: str) -> SessionContext | None:
    """
    Validate session token and return SessionContext if valid.

    Returns None if the token is unknown, revoked, expired or idle too long.
    Idle sessions are revoked as a side effect.
    Updates last_used_at on successful validation.
    """
    if not token:
        return None

    now = utcnow()
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return None

    if session.expires_at <= now:
        return None

    if now - session.last_used_at > _idle_timeout():
        session.is_revoked = True
        session.revoked_at = now
        session.revoked_reason = "Idle timeout"
        db.session.commit()
        return None

    identity = session.identity
    if not identity:
        return None

    session.last_used_at = now
    db.session.commit()

    profile = db.session.get(Profile, identity.id)
    return SessionContext(identity=identity, session=session, profile=profile)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Revoke a single session. Returns False if not found."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return False

    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason

    db.session.commit()
    return True


def revoke_all_identity_sessions(identity_id: int, reason: str = "Revoke all sessions", *, commit: bool = True) -> int:
    """Revoke every active session of an identity. Returns count revoked."""
    now = utcnow()

    sessions = db.session.query(SessionToken).filter_by(
        identity_id=identity_id,
        is_revoked=False
    ).all()

    for session in sessions:
        session.is_revoked = True
        session.revoked_at = now
        session.revoked_reason = reason

    if commit:
        db.session.commit()
    return len(sessions)


def cleanup_expired_sessions(*, older_than_days: int = 30) -> int:
    """Delete expired or revoked sessions created more than older_than_days ago."""
    cutoff = utcnow() - timedelta(days=older_than_days)

    deleted = db.session.query(SessionToken).filter(
        db.or_(
            SessionToken.expires_at < utcnow(),
            SessionToken.is_revoked.is_(True)
        ),
        SessionToken.created_at < cutoff
    ).delete(synchronize_session=False)

    db.session.commit()
    return deleted
