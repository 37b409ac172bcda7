# Overview: Role guard and the request decorators built on it.

from functools import wraps

from flask import current_app, g, jsonify, request

from .roles import Role
from .services import security_service, session_service
from .validation import ApprovalPendingError, AuthenticationError, AuthorizationError


def get_request_token(req) -> str | None:
    """
    Session token for a request.

    The auth cookie takes precedence; the Authorization: Bearer header is
    only consulted when no cookie is present.
    """
    cookie_token = req.cookies.get(current_app.config["AUTH_COOKIE_NAME"])
    if cookie_token:
        return cookie_token

    auth_header = req.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1].strip()
        return token or None
    return None


def resolve_session(req) -> session_service.SessionContext:
    """
    Resolve the caller's session and profile.

    Raises AuthenticationError if there is no valid session or no profile row.
    """
    token = get_request_token(req)
    if not token:
        raise AuthenticationError("Authentication required")

    context = session_service.validate_session(token)
    if not context:
        raise AuthenticationError("Invalid or expired session")

    if context.profile is None:
        raise AuthenticationError("Profile not found")

    return context


def require_role(req, allowed_roles, *, require_approved: bool = True):
    """
    The single authorization chokepoint.

    Returns the caller's Profile, or raises:
    - AuthenticationError (401): no session, bad token, or no profile
    - AuthorizationError (403): role not in allowed_roles
    - ApprovalPendingError (403): profile not approved yet

    Denials are written to security_events.
    """
    context = resolve_session(req)
    profile = context.profile
    allowed = {Role.parse(role) for role in allowed_roles}

    if profile.role_enum not in allowed:
        security_service.log_security_event(
            actor_id=profile.id,
            event_type="ACCESS_DENIED",
            success=False,
            resource=req.path,
            action=req.method,
            reason=f"Role {profile.role} not in {sorted(r.value for r in allowed)}",
            ip_address=req.remote_addr,
            user_agent=req.headers.get("User-Agent"),
            branch_id=profile.branch_id,
        )
        raise AuthorizationError("Access denied")

    if require_approved and not profile.approved:
        security_service.log_security_event(
            actor_id=profile.id,
            event_type="APPROVAL_REQUIRED",
            success=False,
            resource=req.path,
            action=req.method,
            reason="Profile pending approval",
            ip_address=req.remote_addr,
            user_agent=req.headers.get("User-Agent"),
            branch_id=profile.branch_id,
        )
        raise ApprovalPendingError("Account is pending approval")

    g.session_context = context
    g.current_identity = context.identity
    g.current_profile = profile
    return profile


def auth_error_response(exc: Exception):
    """JSON response for guard failures."""
    body = {"error": str(exc)}
    if isinstance(exc, ApprovalPendingError):
        body["pending_approval"] = True
    if isinstance(exc, AuthorizationError):
        body["redirect"] = exc.redirect
    return jsonify(body), exc.status_code


def require_auth(f):
    """
    Require a valid session with a profile; approval NOT required.

    Only for the few endpoints an unapproved user may reach: who am I,
    approval status polling, logout.

    Sets g.session_context, g.current_identity and g.current_profile.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            context = resolve_session(request)
        except AuthenticationError as e:
            return auth_error_response(e)

        g.session_context = context
        g.current_identity = context.identity
        g.current_profile = context.profile
        return f(*args, **kwargs)

    return decorated_function


def role_required(*roles):
    """
    Require an approved profile whose role is one of roles.

    Wraps require_role(); every protected endpoint goes through here.
    """
    allowed = tuple(Role.parse(role) for role in roles)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                require_role(request, allowed)
            except (AuthenticationError, AuthorizationError) as e:
                return auth_error_response(e)
            return f(*args, **kwargs)

        return decorated_function
    return decorator


hq_required = role_required(Role.HQ)
owner_or_above_required = role_required(Role.HQ, Role.OWNER)
any_role_required = role_required(*Role)
