# Overview: Flask API routes for HQ administration; parses input and returns JSON responses.

"""
Admin routes (HQ only).

Provides endpoints for:
- User approval (single and batch), pending count, approval history
- User management (list, detail, role change, deactivation)
- Statistics and the security event log

Every endpoint goes through hq_required: non-HQ callers get 403 with a
/dashboard redirect hint, unapproved HQ callers get /pending-approval.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import hq_required
from ..roles import Role
from ..services import approval_service, security_service, user_admin_service
from ..time_utils import parse_iso_datetime
from ..validation import (
    AuthorizationError,
    NotFoundError,
    ValidationError,
    parse_bool,
    parse_int,
)

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _log_admin_event(event_type: str, resource: str, action: str, branch_id: int | None = None):
    security_service.log_security_event(
        actor_id=g.current_profile.id,
        event_type=event_type,
        success=True,
        resource=resource,
        action=action,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
        branch_id=branch_id,
    )


# =============================================================================
# APPROVALS
# =============================================================================

@admin_bp.post("/approve-user")
@hq_required
def approve_user():
    """
    Request body:
    - user_id: int (required)
    - approved: bool (default true; false rejects)
    - reason: str (optional, stored in approval history)
    """
    data = request.get_json(silent=True) or {}
    if data.get("user_id") is None:
        return jsonify({"error": "user_id is required"}), 400

    try:
        profile = approval_service.set_approval(
            g.current_profile,
            data.get("user_id"),
            approved=data.get("approved", True),
            reason=data.get("reason"),
        )
        return jsonify({"ok": True, "profile": profile.to_dict(include_branch=True)}), 200
    except (ValidationError, NotFoundError, AuthorizationError) as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to set approval")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/approve-users-batch")
@hq_required
def approve_users_batch():
    """
    Request body:
    - user_ids: list[int] (required, non-empty)
    - approved: bool (required)
    - reason: str (optional)

    Each user is decided independently; failures are reported per id.
    """
    data = request.get_json(silent=True) or {}
    try:
        result = approval_service.set_approval_batch(
            g.current_profile,
            data.get("user_ids"),
            data.get("approved"),
            reason=data.get("reason"),
        )
        return jsonify(result), 200
    except (ValidationError, AuthorizationError) as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to apply batch approval")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/pending-count")
@hq_required
def pending_count():
    return jsonify({"count": approval_service.pending_count()}), 200


@admin_bp.get("/approval-history")
@hq_required
def approval_history():
    """
    Query params:
    - user_id: int, approved_by: int
    - since: ISO-8601 datetime
    - limit: int (default 100), offset: int (default 0)
    """
    try:
        user_id = parse_int(request.args.get("user_id"), "user_id")
        approved_by = parse_int(request.args.get("approved_by"), "approved_by")
        limit = parse_int(request.args.get("limit"), "limit", default=100, minimum=1)
        offset = parse_int(request.args.get("offset"), "offset", default=0, minimum=0)
        since = parse_iso_datetime(request.args.get("since"))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    rows, total = approval_service.list_approval_history(
        user_id=user_id,
        approved_by=approved_by,
        since=since,
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "history": [row.to_dict() for row in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
    }), 200


# =============================================================================
# USER MANAGEMENT
# =============================================================================

@admin_bp.get("/users")
@hq_required
def list_users():
    """
    Query params:
    - search: matches name, email or phone
    - approved: bool
    - role: HQ | OWNER | STAFF
    - limit: int (default 50), offset: int (default 0)
    """
    try:
        approved = parse_bool(request.args.get("approved"), "approved")
        role = Role.parse(request.args["role"]) if request.args.get("role") else None
        limit = parse_int(request.args.get("limit"), "limit", default=50, minimum=1)
        offset = parse_int(request.args.get("offset"), "offset", default=0, minimum=0)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    profiles, total = user_admin_service.list_users(
        search=request.args.get("search"),
        approved=approved,
        role=role,
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "users": [profile.to_dict(include_branch=True) for profile in profiles],
        "total": total,
        "limit": limit,
        "offset": offset,
    }), 200


@admin_bp.get("/users/<int:user_id>")
@hq_required
def get_user(user_id: int):
    profile = user_admin_service.get_user(user_id)
    if not profile:
        return jsonify({"error": "User not found"}), 404

    history, _ = approval_service.list_approval_history(user_id=user_id, limit=20)
    user_dict = profile.to_dict(include_branch=True)
    user_dict["approver"] = profile.approver.summary() if profile.approver else None
    user_dict["approval_history"] = [row.to_dict() for row in history]
    return jsonify({"user": user_dict}), 200


@admin_bp.put("/users/<int:user_id>/role")
@hq_required
def change_user_role(user_id: int):
    """
    Request body:
    - role: HQ | OWNER | STAFF (required)
    - branch_id: int (OWNER/STAFF; defaults to the user's current branch)
    """
    data = request.get_json(silent=True) or {}
    if not data.get("role"):
        return jsonify({"error": "role is required"}), 400

    kwargs = {"branch_id": data["branch_id"]} if "branch_id" in data else {}
    try:
        profile, change = user_admin_service.change_role(user_id, data.get("role"), **kwargs)
    except (ValidationError, NotFoundError) as e:
        return jsonify({"error": str(e)}), e.status_code

    _log_admin_event(
        "ROLE_CHANGED",
        f"/api/admin/users/{user_id}/role",
        f"{change['old']['role']} -> {change['new']['role']} (branch {change['new']['branch_id']})",
        branch_id=profile.branch_id,
    )
    return jsonify({"ok": True, "profile": profile.to_dict(include_branch=True), "change": change}), 200


@admin_bp.delete("/users/<int:user_id>")
@hq_required
def deactivate_user(user_id: int):
    """Un-approve the user and revoke their sessions. The profile row is kept."""
    data = request.get_json(silent=True) or {}
    try:
        profile = user_admin_service.deactivate_user(g.current_profile, user_id, reason=data.get("reason"))
    except (ValidationError, NotFoundError) as e:
        return jsonify({"error": str(e)}), e.status_code

    _log_admin_event(
        "USER_DEACTIVATED",
        f"/api/admin/users/{user_id}",
        f"Deactivated user: {profile.email}",
        branch_id=profile.branch_id,
    )
    return jsonify({"ok": True, "profile": profile.to_dict()}), 200


# =============================================================================
# STATISTICS AND AUDIT
# =============================================================================

@admin_bp.get("/statistics")
@hq_required
def statistics():
    return jsonify(user_admin_service.get_statistics()), 200


@admin_bp.get("/security-events")
@hq_required
def security_events():
    try:
        limit = parse_int(request.args.get("limit"), "limit", default=100, minimum=1)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    events = security_service.list_security_events(
        event_type=request.args.get("event_type"),
        limit=limit,
    )
    return jsonify({"events": [event.to_dict() for event in events], "count": len(events)}), 200
