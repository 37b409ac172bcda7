# Overview: Input validation helpers and the service-layer error taxonomy.

from __future__ import annotations

import re
from typing import Any

# Deliberately loose: the same check the signup form applies
EMAIL_PATTERN = re.compile(r".+@.+\..+")


class ValidationError(ValueError):
    """400-level input problem."""
    status_code = 400


class AuthenticationError(Exception):
    """401-level: no valid session, or the session has no profile."""
    status_code = 401


class AuthorizationError(Exception):
    """403-level: authenticated, but the role may not do this."""
    status_code = 403
    redirect = "/dashboard"


class ApprovalPendingError(AuthorizationError):
    """403-level: the profile exists but has not been approved by HQ yet."""
    redirect = "/pending-approval"


class NotFoundError(LookupError):
    """404-level: a referenced branch, invitation or profile does not resolve."""
    status_code = 404


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate email, used invitation)."""
    status_code = 409


def clean_str(value: Any) -> str | None:
    """Strip strings; empty strings and None become None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_email(value: Any) -> str | None:
    email = clean_str(value)
    return email.lower() if email else None


def require_fields(payload: dict, *fields: str) -> None:
    """Raise ValidationError naming every missing or blank field."""
    missing = [name for name in fields if not clean_str(payload.get(name))]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def validate_email(value: Any) -> str:
    email = normalize_email(value)
    if not email or not EMAIL_PATTERN.fullmatch(email):
        raise ValidationError("A valid email address is required")
    return email


def validate_password(value: Any, *, min_length: int) -> str:
    if not isinstance(value, str) or len(value) < min_length:
        raise ValidationError(f"Password must be at least {min_length} characters long")
    return value


def parse_int(value: Any, field: str, *, default: int | None = None, minimum: int | None = None) -> int | None:
    """Parse an integer query/body value, rejecting bools, floats and junk strings."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str) and value.strip().lstrip("-").isdigit():
        result = int(value.strip())
    else:
        raise ValidationError(f"{field} must be an integer")
    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    return result


def parse_bool(value: Any, field: str, *, default: bool | None = None) -> bool | None:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
    raise ValidationError(f"{field} must be a boolean")
