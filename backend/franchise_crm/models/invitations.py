from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Invitation(db.Model):
    """
    Single-use, expiring invitation binding an email to a role and branch.

    Redeemable iff used_at IS NULL AND expires_at > now AND the email and
    code both match. Mutated exactly once, at redemption.
    """
    __tablename__ = "invitations"
    __table_args__ = (
        db.CheckConstraint("role IN ('OWNER', 'STAFF')", name="ck_invitations_role"),
        db.Index("ix_invitations_branch_created", "branch_id", "created_at"),
        db.Index("ix_invitations_code_email", "invite_code", "email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, index=True)
    role = db.Column(db.String(16), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)
    invite_code = db.Column(db.String(64), nullable=False, unique=True)
    invited_by = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False)

    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    used_at = db.Column(db.DateTime(timezone=True), nullable=True)
    used_by = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    branch = db.relationship("Branch", backref=db.backref("invitations", lazy=True))
    inviter = db.relationship("Profile", foreign_keys=[invited_by])

    def status(self, now=None) -> str:
        if self.used_at is not None:
            return "used"
        if self.expires_at <= (now or utcnow()):
            return "expired"
        return "pending"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role,
            "branch_id": self.branch_id,
            "invite_code": self.invite_code,
            "invited_by": self.invited_by,
            "inviter_name": self.inviter.name if self.inviter else None,
            "expires_at": to_utc_z(self.expires_at),
            "used_at": to_utc_z(self.used_at),
            "used_by": self.used_by,
            "status": self.status(),
            "created_at": to_utc_z(self.created_at),
        }
