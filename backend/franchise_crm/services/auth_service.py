# Overview: Authentication identity store (credentials + signup metadata).

"""
Authentication identity store.

Stands in for the hosted auth service: holds email/password credentials
and the metadata submitted at signup. Profiles, branches and invitations
are application data and live in their own services.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Emails are unique across the whole system and compared lower-cased
- Session tokens managed separately (see session_service.py)
"""

import bcrypt
from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import AuthIdentity
from ..time_utils import utcnow
from ..validation import ConflictError, normalize_email, validate_email, validate_password


def hash_password(password: str) -> str:
    """Hash password using bcrypt (BCRYPT_ROUNDS, default cost factor 12)."""
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    Returns False for malformed hashes instead of raising.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def get_identity(identity_id: int) -> AuthIdentity | None:
    return db.session.get(AuthIdentity, identity_id)


def get_identity_by_email(email: str) -> AuthIdentity | None:
    normalized = normalize_email(email)
    if not normalized:
        return None
    return db.session.query(AuthIdentity).filter_by(email=normalized).first()


def create_identity(email: str, password: str, metadata: dict | None = None) -> AuthIdentity:
    """
    Create and commit a new authentication identity.

    Committed on its own: callers that build more state on top of it must
    call delete_identity() if a later step fails.

    Raises:
        ValidationError: malformed email or short password
        ConflictError: email already registered
    """
    email = validate_email(email)
    validate_password(password, min_length=current_app.config["MIN_PASSWORD_LENGTH"])

    if get_identity_by_email(email):
        raise ConflictError("Email is already registered")

    identity = AuthIdentity(
        email=email,
        password_hash=hash_password(password),
        user_metadata=dict(metadata or {}),
    )
    db.session.add(identity)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost a race against a concurrent signup with the same email
        db.session.rollback()
        raise ConflictError("Email is already registered")
    return identity


def delete_identity(identity_id: int) -> bool:
    """
    Remove an identity and its sessions.

    Used as the compensating step when registration fails after the
    identity was created. Returns False if it was already gone.
    """
    identity = db.session.get(AuthIdentity, identity_id)
    if not identity:
        return False
    db.session.delete(identity)
    db.session.commit()
    return True


def authenticate(email: str, password: str) -> AuthIdentity | None:
    """
    Authenticate by email and password.

    Returns the identity on success (and stamps last_login_at), None otherwise.
    Approval is not checked here; the role guard enforces it per request.
    """
    identity = get_identity_by_email(email)
    if not identity or not password:
        return None

    if not verify_password(password, identity.password_hash):
        return None

    identity.last_login_at = utcnow()
    db.session.commit()
    return identity
