"""
Invitation tests.

Verifies:
- HQ invites OWNER for an explicit live branch; OWNER invites STAFF for its own branch
- Disallowed inviter/role pairs are refused with 403
- Redemption is single-use and never succeeds after expiry
- Listing is branch-scoped for owners
"""

from datetime import timedelta

import pytest

from franchise_crm.models import Invitation, SecurityEvent
from franchise_crm.services import invitation_service
from franchise_crm.validation import ConflictError, NotFoundError

from conftest import make_invitation, make_profile


def _code_parts(code: str) -> list[str]:
    return code.split("_")


# =============================================================================
# ISSUING
# =============================================================================


class TestCreateInvitation:

    def test_owner_invites_staff_for_own_branch(self, client, db_session, owner_a, branch_a, branch_b, owner_headers):
        # A client-supplied branch_id is ignored for owners
        resp = client.post(
            "/api/invitations",
            json={"email": "New.Staff@Franchise.test", "role": "STAFF", "branch_id": branch_b.id},
            headers=owner_headers,
        )

        assert resp.status_code == 201
        invitation = resp.json["invitation"]
        assert invitation["email"] == "new.staff@franchise.test"
        assert invitation["role"] == "STAFF"
        assert invitation["branch_id"] == branch_a.id
        assert invitation["invited_by"] == owner_a.id
        assert invitation["status"] == "pending"
        assert invitation["used_at"] is None
        assert resp.json["message"] == "Invitation created"

        prefix, millis, suffix = _code_parts(invitation["invite_code"])
        assert prefix == "INV"
        assert millis.isdigit()
        assert len(suffix) == 9
        assert suffix == suffix.upper()

    def test_invitation_expires_in_seven_days(self, app, db_session, owner_a):
        invitation = invitation_service.create_invitation(owner_a, email="x@franchise.test", role="STAFF")

        window = invitation.expires_at - invitation.created_at
        assert timedelta(days=6, hours=23) < window <= timedelta(days=7, seconds=5)

    def test_hq_invites_owner_for_branch(self, client, db_session, hq, branch_b, hq_headers):
        resp = client.post(
            "/api/invitations",
            json={"email": "owner.new@franchise.test", "role": "OWNER", "branch_id": branch_b.id},
            headers=hq_headers,
        )

        assert resp.status_code == 201
        assert resp.json["invitation"]["branch_id"] == branch_b.id
        assert resp.json["invitation"]["role"] == "OWNER"

    def test_hq_must_name_branch(self, client, db_session, hq, hq_headers):
        resp = client.post(
            "/api/invitations",
            json={"email": "owner.new@franchise.test", "role": "OWNER"},
            headers=hq_headers,
        )

        assert resp.status_code == 400
        assert db_session.query(Invitation).count() == 0

    def test_hq_unknown_branch(self, client, db_session, hq, hq_headers):
        resp = client.post(
            "/api/invitations",
            json={"email": "owner.new@franchise.test", "role": "OWNER", "branch_id": 9999},
            headers=hq_headers,
        )

        assert resp.status_code == 404
        assert resp.json["error"] == "Branch not found"

    def test_hq_deleted_branch(self, client, db_session, hq, branch_b, hq_headers):
        client.delete(f"/api/branches/{branch_b.id}", headers=hq_headers)

        resp = client.post(
            "/api/invitations",
            json={"email": "owner.new@franchise.test", "role": "OWNER", "branch_id": branch_b.id},
            headers=hq_headers,
        )

        assert resp.status_code == 404

    @pytest.mark.parametrize("role,message", [
        ("OWNER", "Owners cannot invite owners"),
        ("HQ", "OWNER cannot invite HQ"),
    ])
    def test_owner_disallowed_roles(self, client, db_session, owner_a, owner_headers, role, message):
        resp = client.post(
            "/api/invitations",
            json={"email": "someone@franchise.test", "role": role},
            headers=owner_headers,
        )

        assert resp.status_code == 403
        assert resp.json["error"] == message
        assert resp.json["redirect"] == "/dashboard"
        assert db_session.query(Invitation).count() == 0

    def test_hq_cannot_invite_staff(self, client, db_session, hq, branch_a, hq_headers):
        resp = client.post(
            "/api/invitations",
            json={"email": "someone@franchise.test", "role": "STAFF", "branch_id": branch_a.id},
            headers=hq_headers,
        )

        assert resp.status_code == 403

    def test_staff_cannot_invite(self, client, db_session, staff_a, staff_headers):
        resp = client.post(
            "/api/invitations",
            json={"email": "someone@franchise.test", "role": "STAFF"},
            headers=staff_headers,
        )

        assert resp.status_code == 403
        assert resp.json["redirect"] == "/dashboard"

    def test_bad_email_rejected(self, client, db_session, owner_a, owner_headers):
        resp = client.post(
            "/api/invitations",
            json={"email": "nope", "role": "STAFF"},
            headers=owner_headers,
        )

        assert resp.status_code == 400


# =============================================================================
# LISTING AND DELETION
# =============================================================================


class TestListAndDelete:

    def test_owner_sees_only_own_branch(self, client, db_session, hq, owner_a, branch_a, branch_b, owner_headers):
        mine = make_invitation(owner_a, "a1@franchise.test", branch=branch_a)
        make_invitation(hq, "b1@franchise.test", branch=branch_b, role="OWNER")

        resp = client.get("/api/invitations", headers=owner_headers)

        assert resp.status_code == 200
        assert resp.json["count"] == 1
        assert resp.json["invitations"][0]["id"] == mine.id

    def test_hq_sees_all_newest_first(self, client, db_session, hq, owner_a, branch_a, branch_b, hq_headers):
        first = make_invitation(owner_a, "a1@franchise.test", branch=branch_a)
        second = make_invitation(hq, "b1@franchise.test", branch=branch_b, role="OWNER")

        resp = client.get("/api/invitations", headers=hq_headers)

        assert resp.status_code == 200
        ids = [row["id"] for row in resp.json["invitations"]]
        assert ids == [second.id, first.id]

    def test_listing_reports_status(self, client, db_session, owner_a, staff_a, branch_a, owner_headers):
        make_invitation(owner_a, "used@franchise.test", branch=branch_a, used_by=staff_a)
        make_invitation(owner_a, "old@franchise.test", branch=branch_a, expires_in=timedelta(days=-1))

        resp = client.get("/api/invitations", headers=owner_headers)

        statuses = {row["email"]: row["status"] for row in resp.json["invitations"]}
        assert statuses == {"used@franchise.test": "used", "old@franchise.test": "expired"}

    def test_hq_deletes_unused_invitation(self, client, db_session, hq, owner_a, branch_a, hq_headers):
        invitation = make_invitation(owner_a, "a1@franchise.test", branch=branch_a)
        invitation_id = invitation.id

        resp = client.delete(f"/api/invitations/{invitation_id}", headers=hq_headers)

        assert resp.status_code == 200
        assert resp.json == {"ok": True}
        db_session.expire_all()
        assert db_session.get(Invitation, invitation_id) is None
        assert db_session.query(SecurityEvent).filter_by(event_type="INVITATION_DELETED").count() == 1

    def test_used_invitation_cannot_be_deleted(self, client, db_session, hq, owner_a, staff_a, branch_a, hq_headers):
        invitation = make_invitation(owner_a, "a1@franchise.test", branch=branch_a, used_by=staff_a)

        resp = client.delete(f"/api/invitations/{invitation.id}", headers=hq_headers)

        assert resp.status_code == 409

    def test_owner_cannot_delete(self, client, db_session, owner_a, branch_a, owner_headers):
        invitation = make_invitation(owner_a, "a1@franchise.test", branch=branch_a)

        resp = client.delete(f"/api/invitations/{invitation.id}", headers=owner_headers)

        assert resp.status_code == 403

    def test_delete_missing(self, client, db_session, hq, hq_headers):
        resp = client.delete("/api/invitations/4242", headers=hq_headers)
        assert resp.status_code == 404


# =============================================================================
# REDEMPTION
# =============================================================================


class TestRedemption:

    def test_second_claim_after_shared_check_conflicts(self, app, db_session, owner_a, branch_a):
        """Two signups both pass the read-only check; only the first claim wins."""
        invitation = make_invitation(owner_a, "racer@franchise.test", branch=branch_a)
        first = make_profile("racer.one@franchise.test", "STAFF")
        second = make_profile("racer.two@franchise.test", "STAFF")

        assert invitation_service.find_redeemable_invitation(invitation.invite_code, "racer@franchise.test")
        assert invitation_service.find_redeemable_invitation(invitation.invite_code, "racer@franchise.test")

        claimed = invitation_service.redeem_invitation(invitation.invite_code, "racer@franchise.test", first.id)
        assert claimed.used_by == first.id
        assert claimed.branch_id == branch_a.id

        with pytest.raises(ConflictError, match="already been used"):
            invitation_service.redeem_invitation(invitation.invite_code, "racer@franchise.test", second.id)

        db_session.expire_all()
        assert db_session.get(Invitation, invitation.id).used_by == first.id

    def test_expired_unused_never_redeems(self, app, db_session, owner_a, branch_a):
        invitation = make_invitation(
            owner_a, "late@franchise.test", branch=branch_a, expires_in=timedelta(seconds=-1)
        )
        profile = make_profile("late.user@franchise.test", "STAFF")

        assert invitation_service.find_redeemable_invitation(invitation.invite_code, "late@franchise.test") is None
        with pytest.raises(NotFoundError, match="expired"):
            invitation_service.redeem_invitation(invitation.invite_code, "late@franchise.test", profile.id)

    def test_expired_and_used_never_redeems(self, app, db_session, owner_a, staff_a, branch_a):
        invitation = make_invitation(
            owner_a, "late@franchise.test", branch=branch_a,
            expires_in=timedelta(seconds=-1), used_by=staff_a,
        )

        with pytest.raises(NotFoundError):
            invitation_service.redeem_invitation(invitation.invite_code, "late@franchise.test", staff_a.id)

    def test_email_must_match(self, app, db_session, owner_a, branch_a):
        invitation = make_invitation(owner_a, "right@franchise.test", branch=branch_a)
        profile = make_profile("wrong@franchise.test", "STAFF")

        with pytest.raises(NotFoundError, match="Invalid invitation code"):
            invitation_service.redeem_invitation(invitation.invite_code, "wrong@franchise.test", profile.id)

    def test_email_match_is_case_insensitive(self, app, db_session, owner_a, branch_a):
        invitation = make_invitation(owner_a, "right@franchise.test", branch=branch_a)
        profile = make_profile("right@franchise.test", "STAFF")

        claimed = invitation_service.redeem_invitation(invitation.invite_code, " RIGHT@Franchise.test", profile.id)
        assert claimed.used_at is not None

    def test_unknown_code(self, app, db_session):
        with pytest.raises(NotFoundError):
            invitation_service.redeem_invitation("INV_1_AAAAAAAAA", "x@franchise.test", 1)
