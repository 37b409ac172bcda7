from __future__ import annotations

from ..extensions import db
from ..roles import Role
from ..time_utils import to_utc_z


class Profile(db.Model):
    """
    Application profile, one per authentication identity (shares its id).

    Every profile starts unapproved. Only an approved profile gets past the
    role guard; the approval flag is the single gate into the application.

    Invariants (enforced by check constraints, not just services):
    - role HQ => branch_id IS NULL
    - approved and role in (OWNER, STAFF) => branch_id IS NOT NULL

    Never hard-deleted: deactivation clears the approval flag.
    """
    __tablename__ = "profiles"
    __table_args__ = (
        db.CheckConstraint("role IN ('HQ', 'OWNER', 'STAFF')", name="ck_profiles_role"),
        db.CheckConstraint("role != 'HQ' OR branch_id IS NULL", name="ck_profiles_hq_without_branch"),
        db.CheckConstraint(
            "NOT approved OR role = 'HQ' OR branch_id IS NOT NULL",
            name="ck_profiles_approved_branch_scope",
        ),
        db.Index("ix_profiles_approved_role", "approved", "role"),
    )

    id = db.Column(db.Integer, db.ForeignKey("auth_identities.id"), primary_key=True, autoincrement=False)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    name = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(32), nullable=False)
    role = db.Column(db.String(16), nullable=False, index=True)

    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    # Invitation code redeemed at signup (STAFF only)
    invite_code = db.Column(db.String(64), nullable=True)

    approved = db.Column(db.Boolean, nullable=False, default=False)
    approved_by = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    identity = db.relationship("AuthIdentity", backref=db.backref("profile", uselist=False, lazy=True))
    branch = db.relationship("Branch", backref=db.backref("profiles", lazy=True))
    approver = db.relationship("Profile", remote_side=[id], foreign_keys=[approved_by])

    @property
    def role_enum(self) -> Role:
        return Role(self.role)

    def __repr__(self) -> str:
        return f"<Profile id={self.id} role={self.role} approved={self.approved}>"

    def summary(self) -> dict:
        return {"id": self.id, "email": self.email, "name": self.name, "role": self.role}

    def to_dict(self, *, include_branch: bool = False) -> dict:
        data = {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "phone": self.phone,
            "role": self.role,
            "branch_id": self.branch_id,
            "invite_code": self.invite_code,
            "approved": self.approved,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_branch:
            data["branch"] = self.branch.summary() if self.branch else None
        return data


class ApprovalHistory(db.Model):
    """
    Append-only ledger of approval decisions.

    The profile row only holds the current state (approved, approved_by,
    approved_at); every approve, reject or deactivate decision also lands
    here and is never updated or deleted.
    """
    __tablename__ = "approval_history"
    __table_args__ = (
        db.Index("ix_approval_history_user_created", "user_id", "created_at"),
        db.Index("ix_approval_history_approver", "approved_by"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False)
    approved_by = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False)

    # Decision: True = approved, False = rejected / deactivated
    approved = db.Column(db.Boolean, nullable=False)
    reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    user = db.relationship("Profile", foreign_keys=[user_id])
    approver = db.relationship("Profile", foreign_keys=[approved_by])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "approved_by": self.approved_by,
            "approved": self.approved,
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
            "user": self.user.summary() if self.user else None,
            "approver": self.approver.summary() if self.approver else None,
        }
