# Overview: Flask API routes for signup, login and the pending-approval screen.

"""
Authentication API routes

- POST /signup is public and runs the registration saga
- POST /login issues a session even for unapproved users, so they can
  reach the pending-approval page; everything else stays closed to them
- /me, /approval-status and /logout need a session but not approval
- /menu needs an approved profile
"""

from flask import Blueprint, current_app, g, jsonify, make_response, request

from ..decorators import any_role_required, get_request_token, require_auth
from ..roles import role_menu
from ..services import approval_service, auth_service, registration_service, session_service
from ..validation import ConflictError, NotFoundError, ValidationError, require_fields


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _set_session_cookie(response, token: str):
    config = current_app.config
    response.set_cookie(
        config["AUTH_COOKIE_NAME"],
        token,
        max_age=config["SESSION_ABSOLUTE_TIMEOUT_HOURS"] * 3600,
        httponly=True,
        secure=config["AUTH_COOKIE_SECURE"],
        samesite="Lax",
    )
    return response


@auth_bp.post("/signup")
def signup_route():
    """
    Self-registration.

    Request body:
    {
        "role": "HQ" | "OWNER" | "STAFF",
        "email", "password", "name", "phone",
        "branch_code": "BR001",          // OWNER, STAFF
        "invite_code": "INV_...",        // STAFF (optional for OWNER)
        "new_branch_name": "...",        // HQ
        "new_branch_address", "new_branch_phone"   // HQ, optional
    }

    201 with the unapproved profile and a redirect hint to /login.
    """
    try:
        result = registration_service.register(request.get_json(silent=True))
        return jsonify(result.to_dict()), 201
    except (ValidationError, NotFoundError, ConflictError) as e:
        return jsonify({"error": str(e)}), e.status_code
    except registration_service.RegistrationError as e:
        return jsonify({"error": str(e), "step": e.step.value if e.step else None}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    """
    Authenticate by email and password and create a session.

    The token is set as an HttpOnly cookie and also returned in the body
    for Bearer use. redirect is /dashboard once approved, otherwise
    /pending-approval.
    """
    try:
        data = request.get_json(silent=True) or {}
        try:
            require_fields(data, "email", "password")
        except ValidationError:
            return jsonify({"error": "email and password required"}), 400

        identity = auth_service.authenticate(data.get("email"), data.get("password"))
        if not identity:
            return jsonify({"error": "Invalid credentials"}), 401

        profile = identity.profile
        if profile is None:
            return jsonify({"error": "Profile not found"}), 401

        session, token = session_service.create_session(
            identity_id=identity.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        response = make_response(jsonify({
            "profile": profile.to_dict(include_branch=True),
            "token": token,
            "session": session.to_dict(),
            "redirect": "/dashboard" if profile.approved else "/pending-approval",
            "message": "Login successful",
        }), 200)
        return _set_session_cookie(response, token)

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        session_service.revoke_session(get_request_token(request), reason="User logout")
        response = make_response(jsonify({"message": "Logout successful"}), 200)
        response.delete_cookie(current_app.config["AUTH_COOKIE_NAME"])
        return response
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({
        "identity": g.current_identity.to_dict(),
        "profile": g.current_profile.to_dict(include_branch=True),
    }), 200


@auth_bp.get("/approval-status")
@require_auth
def approval_status_route():
    """Polled by the pending-approval page until approved flips to true."""
    return jsonify(approval_service.approval_status(g.current_profile)), 200


@auth_bp.get("/menu")
@any_role_required
def menu_route():
    profile = g.current_profile
    return jsonify({
        "role": profile.role,
        "items": [item.to_dict() for item in role_menu(profile.role)],
    }), 200
