"""
CLI command tests.
"""

from datetime import timedelta

from franchise_crm.models import ApprovalHistory, Invitation, Profile
from franchise_crm.services import security_service

from conftest import make_invitation, make_profile


def test_create_hq(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=[
        "users", "create-hq",
        "--email", "Boss@Franchise.test",
        "--password", "secret123",
        "--name", "Boss",
        "--phone", "010-0000-0000",
    ])

    assert result.exit_code == 0, result.output
    assert "PASS Created HQ user: boss@franchise.test" in result.output
    db_session.expire_all()
    profile = db_session.query(Profile).filter_by(email="boss@franchise.test").one()
    assert profile.role == "HQ"
    assert profile.approved is True
    assert profile.branch_id is None


def test_create_hq_duplicate_fails(app, db_session, hq):
    result = app.test_cli_runner().invoke(args=[
        "users", "create-hq",
        "--email", hq.email,
        "--password", "secret123",
        "--name", "Again",
        "--phone", "010-0000-0000",
    ])

    assert result.exit_code == 1
    assert "FAIL" in result.output


def test_list_pending(app, db_session, hq, pending_owner):
    result = app.test_cli_runner().invoke(args=["users", "list", "--pending"])

    assert result.exit_code == 0
    assert pending_owner.email in result.output
    assert hq.email not in result.output


def test_approve_records_history(app, db_session, hq, pending_owner):
    pending_id = pending_owner.id

    result = app.test_cli_runner().invoke(args=["users", "approve", "PENDING.OWNER@franchise.test"])

    assert result.exit_code == 0, result.output
    db_session.expire_all()
    assert db_session.get(Profile, pending_id).approved is True
    history = db_session.query(ApprovalHistory).filter_by(user_id=pending_id).one()
    assert history.approved_by == hq.id
    assert history.reason == "Approved via CLI"
    assert db_session.get(Profile, pending_id).approved_by == hq.id


def test_approve_with_named_approver(app, db_session, hq, pending_owner):
    second = make_profile("second.hq@franchise.test", "HQ", approved=True)
    second_id, pending_id = second.id, pending_owner.id

    result = app.test_cli_runner().invoke(args=[
        "users", "approve", pending_owner.email, "--approver", "Second.HQ@franchise.test",
    ])

    assert result.exit_code == 0, result.output
    db_session.expire_all()
    assert db_session.query(ApprovalHistory).one().approved_by == second_id
    assert db_session.get(Profile, pending_id).approved_by == second_id


def test_approve_without_hq_refused(app, db_session, pending_owner):
    pending_id = pending_owner.id

    result = app.test_cli_runner().invoke(args=["users", "approve", pending_owner.email])

    assert result.exit_code == 1
    assert "No approved HQ user" in result.output
    db_session.expire_all()
    assert db_session.get(Profile, pending_id).approved is False
    assert db_session.query(ApprovalHistory).count() == 0


def test_approve_with_unapproved_approver_refused(app, db_session, hq, pending_owner):
    make_profile("new.hq@franchise.test", "HQ")

    result = app.test_cli_runner().invoke(args=[
        "users", "approve", pending_owner.email, "--approver", "new.hq@franchise.test",
    ])

    assert result.exit_code == 1
    assert db_session.query(ApprovalHistory).count() == 0


def test_approve_branchless_owner_refused(app, db_session, hq):
    make_profile("orphan@franchise.test", "OWNER")

    result = app.test_cli_runner().invoke(args=["users", "approve", "orphan@franchise.test"])

    assert result.exit_code == 1
    assert "need a branch" in result.output
    assert db_session.query(ApprovalHistory).count() == 0


def test_cleanup_sessions(app, db_session):
    result = app.test_cli_runner().invoke(args=["maintenance", "cleanup-sessions"])

    assert result.exit_code == 0
    assert "Deleted 0" in result.output


def test_cleanup_security_events_keeps_recent(app, db_session, staff_a):
    security_service.log_security_event(actor_id=staff_a.id, event_type="ACCESS_DENIED", success=False)

    result = app.test_cli_runner().invoke(args=["maintenance", "cleanup-security-events", "--retention-days", "1"])

    assert result.exit_code == 0
    assert "Deleted 0 security events" in result.output


def test_cleanup_security_events_by_type(app, db_session, staff_a):
    security_service.log_security_event(actor_id=staff_a.id, event_type="ACCESS_DENIED", success=False)
    security_service.log_security_event(actor_id=staff_a.id, event_type="ROLE_CHANGED", success=True)

    result = app.test_cli_runner().invoke(args=[
        "maintenance", "cleanup-security-events", "--retention-days", "0", "--event-type", "ACCESS_DENIED",
    ])

    assert result.exit_code == 0
    assert "Deleted 1 security events" in result.output


def test_cleanup_invitations_keeps_used_and_recent(app, db_session, owner_a, staff_a, branch_a):
    make_invitation(owner_a, "stale@franchise.test", branch=branch_a, expires_in=timedelta(days=-40))
    make_invitation(owner_a, "recent@franchise.test", branch=branch_a, expires_in=timedelta(days=-1))
    make_invitation(owner_a, "used@franchise.test", branch=branch_a, expires_in=timedelta(days=-40), used_by=staff_a)

    result = app.test_cli_runner().invoke(args=["maintenance", "cleanup-invitations"])

    assert result.exit_code == 0
    assert "Deleted 1 expired invitations" in result.output
    db_session.expire_all()
    remaining = {row.email for row in db_session.query(Invitation).all()}
    assert remaining == {"recent@franchise.test", "used@franchise.test"}
