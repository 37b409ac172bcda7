# Overview: Self-registration saga (identity -> profile -> branch or invitation).

"""
Registration Service

Signup runs as a small saga:

    IDENTITY_CREATED -> PROFILE_CREATED -> (BRANCH_CREATED | INVITATION_REDEEMED) -> COMPLETED

1. Everything that can be checked without writing is checked first
   (field validation, OWNER branch code, STAFF invitation), so the common
   failures never create an identity at all.
2. The identity is created and committed on its own (it stands in for the
   external auth provider).
3. Profile plus branch or invitation redemption run in one local
   transaction. If any of it fails, that transaction is rolled back and
   the identity is deleted again (COMPENSATED).

Role-specific behavior lives in REGISTRATION_HANDLERS, one entry per Role.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from flask import current_app

from ..extensions import db
from ..models import AuthIdentity, Branch, Invitation, Profile
from ..roles import ROLE_LABELS, Role
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    clean_str,
    require_fields,
    validate_email,
    validate_password,
)
from . import auth_service, branch_service, invitation_service, notification_service


class RegistrationStep(str, Enum):
    IDENTITY_CREATED = "IDENTITY_CREATED"
    PROFILE_CREATED = "PROFILE_CREATED"
    BRANCH_CREATED = "BRANCH_CREATED"
    INVITATION_REDEEMED = "INVITATION_REDEEMED"
    COMPLETED = "COMPLETED"
    COMPENSATED = "COMPENSATED"


# Message shown when the step being attempted fails unexpectedly
STEP_FAILURE_MESSAGES = {
    RegistrationStep.PROFILE_CREATED: "Failed to create profile",
    RegistrationStep.BRANCH_CREATED: "Failed to create branch",
    RegistrationStep.INVITATION_REDEEMED: "Failed to redeem invitation",
}


class RegistrationError(Exception):
    """
    A saga step after identity creation failed; the identity was removed.

    step is the step that was being attempted. status_code is 400 when the
    cause was a business rule (e.g. the invitation was claimed by a
    concurrent signup) and 500 otherwise.
    """

    def __init__(self, message: str, *, step: RegistrationStep, status_code: int = 500):
        super().__init__(message)
        self.step = step
        self.status_code = status_code


@dataclass
class RegistrationRequest:
    role: Role
    email: str
    password: str
    name: str
    phone: str
    branch_code: str | None = None
    invite_code: str | None = None
    new_branch_name: str | None = None
    new_branch_address: str | None = None
    new_branch_phone: str | None = None

    def identity_metadata(self) -> dict:
        return {
            "name": self.name,
            "phone": self.phone,
            "role": self.role.value,
            "invite_code": self.invite_code if self.role.is_branch_scoped else None,
        }


@dataclass
class RegistrationResult:
    profile: Profile
    message: str
    branch: Branch | None = None
    invitation: Invitation | None = None
    steps: list[RegistrationStep] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "profile": self.profile.to_dict(include_branch=True),
            "branch": self.branch.to_dict() if self.branch else None,
            "invitation": self.invitation.to_dict() if self.invitation else None,
            "steps": [step.value for step in self.steps],
            "message": self.message,
            "redirect": "/login",
            "redirect_delay_seconds": current_app.config["SIGNUP_REDIRECT_DELAY_SECONDS"],
        }


class _SagaRun:
    """Tracks which step is in flight so a failure can be reported precisely."""

    def __init__(self):
        self.completed: list[RegistrationStep] = []
        self.attempting: RegistrationStep | None = None

    def attempt(self, step: RegistrationStep) -> None:
        self.attempting = step

    def done(self) -> None:
        self.completed.append(self.attempting)
        self.attempting = None


# ---------------------------------------------------------------------------
# Per-role handlers
# ---------------------------------------------------------------------------

def _build_profile(request: RegistrationRequest, identity: AuthIdentity, branch_id: int | None) -> Profile:
    profile = Profile(
        id=identity.id,
        email=identity.email,
        name=request.name,
        phone=request.phone,
        role=request.role.value,
        branch_id=branch_id,
        invite_code=request.invite_code if request.role.is_branch_scoped else None,
        approved=False,
    )
    db.session.add(profile)
    db.session.flush()
    return profile


def _precheck_hq(request: RegistrationRequest):
    return None


def _complete_hq(request, identity, prepared, run: _SagaRun) -> RegistrationResult:
    run.attempt(RegistrationStep.PROFILE_CREATED)
    profile = _build_profile(request, identity, branch_id=None)
    run.done()

    run.attempt(RegistrationStep.BRANCH_CREATED)
    branch = branch_service.build_branch(
        code=branch_service.generate_placeholder_code(),
        name=request.new_branch_name,
        address=request.new_branch_address,
        phone=request.new_branch_phone,
        created_by=identity.id,
    )
    run.done()
    return RegistrationResult(profile=profile, branch=branch, message="")


@dataclass
class _OwnerPrecheck:
    branch: Branch
    invitation: Invitation | None


def _precheck_owner(request: RegistrationRequest) -> _OwnerPrecheck:
    branch = branch_service.get_branch_by_code(request.branch_code)
    if not branch:
        raise NotFoundError("Invalid branch code")

    # An OWNER invitation is optional, but if one is given it must fit the branch
    invitation = None
    if request.invite_code:
        invitation = invitation_service.find_redeemable_invitation(request.invite_code, request.email)
        if not invitation or invitation.role != Role.OWNER.value or invitation.branch_id != branch.id:
            raise NotFoundError("Invalid invitation code")
    return _OwnerPrecheck(branch=branch, invitation=invitation)


def _complete_owner(request, identity, prepared: _OwnerPrecheck, run: _SagaRun) -> RegistrationResult:
    run.attempt(RegistrationStep.PROFILE_CREATED)
    profile = _build_profile(request, identity, branch_id=prepared.branch.id)
    run.done()

    redeemed = None
    if prepared.invitation is not None:
        run.attempt(RegistrationStep.INVITATION_REDEEMED)
        redeemed = invitation_service.redeem_invitation(
            request.invite_code, request.email, used_by=profile.id, commit=False
        )
        run.done()
    return RegistrationResult(profile=profile, invitation=redeemed, message="")


def _precheck_staff(request: RegistrationRequest) -> Invitation:
    invitation = invitation_service.find_redeemable_invitation(request.invite_code, request.email)
    if not invitation or invitation.role != Role.STAFF.value:
        raise NotFoundError("Invalid invitation code")
    # The branch may have been soft-deleted after the invitation was issued
    if not branch_service.get_branch(invitation.branch_id):
        raise NotFoundError("Invalid invitation code")
    return invitation


def _complete_staff(request, identity, invitation: Invitation, run: _SagaRun) -> RegistrationResult:
    # The invitation's branch is authoritative; the submitted branch_code is not used
    run.attempt(RegistrationStep.PROFILE_CREATED)
    profile = _build_profile(request, identity, branch_id=invitation.branch_id)
    run.done()

    run.attempt(RegistrationStep.INVITATION_REDEEMED)
    redeemed = invitation_service.redeem_invitation(
        request.invite_code, request.email, used_by=profile.id, commit=False
    )
    profile.branch_id = redeemed.branch_id
    run.done()
    return RegistrationResult(profile=profile, invitation=redeemed, message="")


@dataclass(frozen=True)
class RoleRegistration:
    required_fields: tuple[str, ...]
    precheck: Callable[[RegistrationRequest], object]
    complete: Callable[..., RegistrationResult]


REGISTRATION_HANDLERS: dict[Role, RoleRegistration] = {
    Role.HQ: RoleRegistration(("new_branch_name",), _precheck_hq, _complete_hq),
    Role.OWNER: RoleRegistration(("branch_code",), _precheck_owner, _complete_owner),
    Role.STAFF: RoleRegistration(("branch_code", "invite_code"), _precheck_staff, _complete_staff),
}


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def parse_registration(payload: dict | None) -> RegistrationRequest:
    """
    Validate a signup payload. Nothing is written.

    Raises ValidationError naming the first problem found.
    """
    payload = payload or {}
    if not clean_str(payload.get("role")):
        raise ValidationError("role is required")
    role = Role.parse(payload.get("role"))

    require_fields(payload, "email", "password", "name", "phone")
    email = validate_email(payload.get("email"))
    password = validate_password(payload.get("password"), min_length=current_app.config["MIN_PASSWORD_LENGTH"])
    require_fields(payload, *REGISTRATION_HANDLERS[role].required_fields)

    return RegistrationRequest(
        role=role,
        email=email,
        password=password,
        name=clean_str(payload.get("name")),
        phone=clean_str(payload.get("phone")),
        branch_code=clean_str(payload.get("branch_code")),
        invite_code=clean_str(payload.get("invite_code")),
        new_branch_name=clean_str(payload.get("new_branch_name")),
        new_branch_address=clean_str(payload.get("new_branch_address")),
        new_branch_phone=clean_str(payload.get("new_branch_phone")),
    )


def _compensate(identity_id: int, run: _SagaRun) -> None:
    try:
        auth_service.delete_identity(identity_id)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Compensation failed: identity %s could not be deleted", identity_id)
        return
    run.completed.append(RegistrationStep.COMPENSATED)
    current_app.logger.warning("Registration rolled back: identity %s deleted", identity_id)


def register(payload: dict | None) -> RegistrationResult:
    """
    Register a new HQ, OWNER or STAFF user. The profile starts unapproved.

    Raises:
        ValidationError: malformed or missing fields (nothing written)
        NotFoundError: OWNER branch code or STAFF invitation does not resolve (nothing written)
        ConflictError: email already registered (nothing written)
        RegistrationError: a later step failed; the identity was deleted again
    """
    request = parse_registration(payload)
    handler = REGISTRATION_HANDLERS[request.role]
    prepared = handler.precheck(request)

    identity = auth_service.create_identity(request.email, request.password, request.identity_metadata())
    identity_id = identity.id
    run = _SagaRun()
    run.attempt(RegistrationStep.IDENTITY_CREATED)
    run.done()

    try:
        result = handler.complete(request, identity, prepared, run)
        db.session.commit()
    except (ValidationError, NotFoundError, ConflictError) as exc:
        step = run.attempting
        db.session.rollback()
        _compensate(identity_id, run)
        raise RegistrationError(str(exc), step=step, status_code=400) from exc
    except Exception as exc:
        step = run.attempting
        db.session.rollback()
        current_app.logger.exception("Registration failed at %s for %s", step, request.email)
        _compensate(identity_id, run)
        raise RegistrationError(
            STEP_FAILURE_MESSAGES.get(step, "Registration failed"), step=step, status_code=500
        ) from exc

    run.completed.append(RegistrationStep.COMPLETED)
    result.steps = run.completed
    result.message = (
        f"{ROLE_LABELS[request.role]} registration complete. "
        "Please wait for administrator approval."
    )
    notification_service.notify_pending_registration(result.profile)
    return result
