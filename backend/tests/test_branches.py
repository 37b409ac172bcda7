"""
Branch management tests (HQ only).
"""

import pytest

from franchise_crm.models import Branch
from franchise_crm.services import branch_service
from franchise_crm.validation import ConflictError

from conftest import make_branch


class TestBranchCrud:

    def test_create_branch(self, client, db_session, hq, hq_headers):
        resp = client.post(
            "/api/branches",
            json={"code": " BR001 ", "name": "Downtown", "address": "2 Side St"},
            headers=hq_headers,
        )

        assert resp.status_code == 201
        assert resp.json["code"] == "BR001"
        assert resp.json["created_by"] == hq.id
        assert resp.json["deleted_at"] is None

    @pytest.mark.parametrize("payload", [
        {"name": "No code"},
        {"code": "BR009"},
        {"code": "  ", "name": "Blank code"},
    ])
    def test_create_requires_code_and_name(self, client, db_session, hq, hq_headers, payload):
        resp = client.post("/api/branches", json=payload, headers=hq_headers)
        assert resp.status_code == 400

    def test_duplicate_code_conflicts(self, client, db_session, hq, branch_a, hq_headers):
        resp = client.post("/api/branches", json={"code": "GN01", "name": "Again"}, headers=hq_headers)

        assert resp.status_code == 409
        assert resp.json["error"] == "Branch code already exists: GN01"

    def test_update_branch(self, client, db_session, hq, branch_a, hq_headers):
        resp = client.put(
            f"/api/branches/{branch_a.id}",
            json={"name": "Gangnam Station", "phone": "02-123-4567"},
            headers=hq_headers,
        )

        assert resp.status_code == 200
        assert resp.json["name"] == "Gangnam Station"
        assert resp.json["phone"] == "02-123-4567"
        assert resp.json["code"] == "GN01"

    def test_update_to_taken_code(self, client, db_session, hq, branch_a, branch_b, hq_headers):
        resp = client.put(f"/api/branches/{branch_a.id}", json={"code": "HD01"}, headers=hq_headers)
        assert resp.status_code == 409

    def test_update_missing_branch(self, client, db_session, hq, hq_headers):
        resp = client.put("/api/branches/9999", json={"name": "x"}, headers=hq_headers)
        assert resp.status_code == 404

    def test_assign_and_clear_owner(self, client, db_session, hq, owner_a, branch_a, hq_headers):
        resp = client.put(f"/api/branches/{branch_a.id}", json={"owner_id": owner_a.id}, headers=hq_headers)
        assert resp.status_code == 200
        assert resp.json["owner_id"] == owner_a.id

        resp = client.put(f"/api/branches/{branch_a.id}", json={"owner_id": None}, headers=hq_headers)
        assert resp.status_code == 200
        assert resp.json["owner_id"] is None

    @pytest.mark.parametrize("owner_id,status", [
        ("not-an-id", 400),
        (1.5, 400),
        (True, 400),
        (987654, 404),
    ])
    def test_update_rejects_bad_owner(self, client, db_session, hq, branch_a, hq_headers, owner_id, status):
        branch_id = branch_a.id

        resp = client.put(f"/api/branches/{branch_id}", json={"owner_id": owner_id}, headers=hq_headers)

        assert resp.status_code == status
        db_session.expire_all()
        assert db_session.get(Branch, branch_id).owner_id is None

    def test_owner_must_be_owner_role(self, client, db_session, hq, staff_a, branch_a, hq_headers):
        resp = client.put(f"/api/branches/{branch_a.id}", json={"owner_id": staff_a.id}, headers=hq_headers)

        assert resp.status_code == 400
        assert resp.json["error"] == "owner_id must reference an OWNER profile"

    def test_create_with_owner(self, client, db_session, hq, owner_a, hq_headers):
        resp = client.post(
            "/api/branches",
            json={"code": "BR002", "name": "Second", "owner_id": str(owner_a.id)},
            headers=hq_headers,
        )

        assert resp.status_code == 201
        assert resp.json["owner_id"] == owner_a.id

    def test_create_with_unknown_owner(self, client, db_session, hq, hq_headers):
        resp = client.post(
            "/api/branches",
            json={"code": "BR003", "name": "Third", "owner_id": 987654},
            headers=hq_headers,
        )

        assert resp.status_code == 404
        assert resp.json["error"] == "Owner not found"
        assert db_session.query(Branch).filter_by(code="BR003").count() == 0

    def test_list_and_search(self, client, db_session, hq, branch_a, branch_b, hq_headers):
        resp = client.get("/api/branches", headers=hq_headers)
        assert resp.status_code == 200
        assert [b["code"] for b in resp.json["branches"]] == ["GN01", "HD01"]
        assert resp.json["total"] == 2

        resp = client.get("/api/branches?search=hong", headers=hq_headers)
        assert [b["code"] for b in resp.json["branches"]] == ["HD01"]

        resp = client.get("/api/branches?limit=1&offset=1", headers=hq_headers)
        assert [b["code"] for b in resp.json["branches"]] == ["HD01"]
        assert resp.json["total"] == 2


class TestSoftDelete:

    def test_delete_hides_branch_but_keeps_row(self, client, db_session, hq, branch_a, hq_headers):
        branch_id = branch_a.id

        resp = client.delete(f"/api/branches/{branch_id}", headers=hq_headers)

        assert resp.status_code == 200
        assert resp.json["deleted_at"] is not None

        listed = client.get("/api/branches", headers=hq_headers)
        assert listed.json["total"] == 0

        with_deleted = client.get("/api/branches?include_deleted=true", headers=hq_headers)
        assert with_deleted.json["total"] == 1

        assert client.get(f"/api/branches/{branch_id}", headers=hq_headers).status_code == 200
        db_session.expire_all()
        assert db_session.get(Branch, branch_id) is not None

    def test_deleted_code_is_reusable(self, client, db_session, hq, branch_a, hq_headers):
        client.delete(f"/api/branches/{branch_a.id}", headers=hq_headers)

        resp = client.post("/api/branches", json={"code": "GN01", "name": "Gangnam II"}, headers=hq_headers)

        assert resp.status_code == 201

    def test_restore(self, client, db_session, hq, branch_a, hq_headers):
        client.delete(f"/api/branches/{branch_a.id}", headers=hq_headers)

        resp = client.post(f"/api/branches/{branch_a.id}/restore", headers=hq_headers)

        assert resp.status_code == 200
        assert resp.json["deleted_at"] is None

    def test_restore_live_branch_conflicts(self, client, db_session, hq, branch_a, hq_headers):
        resp = client.post(f"/api/branches/{branch_a.id}/restore", headers=hq_headers)
        assert resp.status_code == 409

    def test_restore_blocked_when_code_reused(self, app, db_session, branch_a):
        branch_service.soft_delete_branch(branch_a.id)
        make_branch("GN01", "Replacement")

        with pytest.raises(ConflictError, match="already exists"):
            branch_service.restore_branch(branch_a.id)

    def test_delete_twice(self, client, db_session, hq, branch_a, hq_headers):
        client.delete(f"/api/branches/{branch_a.id}", headers=hq_headers)
        assert client.delete(f"/api/branches/{branch_a.id}", headers=hq_headers).status_code == 404


def test_placeholder_codes_are_hq_prefixed(app):
    code = branch_service.generate_placeholder_code()
    assert code.startswith("HQ_")
    assert int(code[3:]) > 0
