# Overview: Flask API routes for issuing, listing and deleting invitations.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import hq_required, owner_or_above_required
from ..services import invitation_service, security_service
from ..validation import AuthorizationError, ConflictError, NotFoundError, ValidationError


invitations_bp = Blueprint("invitations", __name__, url_prefix="/api/invitations")


@invitations_bp.post("")
@owner_or_above_required
def create_invitation():
    """
    Request body:
    - email: str (required)
    - role: "OWNER" (HQ only) | "STAFF" (OWNER only)
    - branch_id: int (required for HQ, ignored for OWNER)

    The invite code is returned to the caller; no email is sent.
    """
    data = request.get_json(silent=True) or {}
    try:
        invitation = invitation_service.create_invitation(
            g.current_profile,
            email=data.get("email"),
            role=data.get("role"),
            branch_id=data.get("branch_id"),
        )
        return jsonify({
            "invitation": invitation.to_dict(),
            "message": "Invitation created",
        }), 201
    except AuthorizationError as e:
        return jsonify({"error": str(e), "redirect": e.redirect}), e.status_code
    except (ValidationError, NotFoundError, ConflictError) as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create invitation")
        return jsonify({"error": "Internal server error"}), 500


@invitations_bp.get("")
@owner_or_above_required
def list_invitations():
    invitations = invitation_service.list_invitations(g.current_profile)
    return jsonify({
        "invitations": [invitation.to_dict() for invitation in invitations],
        "count": len(invitations),
    }), 200


@invitations_bp.delete("/<int:invitation_id>")
@hq_required
def delete_invitation(invitation_id: int):
    try:
        invitation = invitation_service.delete_invitation(invitation_id)
    except (NotFoundError, ConflictError) as e:
        return jsonify({"error": str(e)}), e.status_code

    security_service.log_security_event(
        actor_id=g.current_profile.id,
        event_type="INVITATION_DELETED",
        success=True,
        resource=f"/api/invitations/{invitation_id}",
        action=f"Deleted invitation for {invitation.email}",
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
        branch_id=invitation.branch_id,
    )
    return jsonify({"ok": True}), 200
