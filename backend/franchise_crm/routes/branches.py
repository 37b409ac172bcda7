# Overview: Flask API routes for branch management (HQ only).

from flask import Blueprint, g, jsonify, request

from ..decorators import hq_required
from ..services import branch_service
from ..validation import ConflictError, NotFoundError, ValidationError, parse_bool, parse_int


branches_bp = Blueprint("branches", __name__, url_prefix="/api/branches")

_EDITABLE_FIELDS = ("code", "name", "address", "phone", "owner_id")


@branches_bp.get("")
@hq_required
def list_branches():
    """
    Query params:
    - search: matches code or name
    - include_deleted: bool (default false)
    - limit: int (default 50), offset: int (default 0)
    """
    try:
        limit = parse_int(request.args.get("limit"), "limit", default=50, minimum=1)
        offset = parse_int(request.args.get("offset"), "offset", default=0, minimum=0)
        include_deleted = parse_bool(request.args.get("include_deleted"), "include_deleted", default=False)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    branches, total = branch_service.list_branches(
        search=request.args.get("search"),
        include_deleted=include_deleted,
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "branches": [branch.to_dict() for branch in branches],
        "total": total,
        "limit": limit,
        "offset": offset,
    }), 200


@branches_bp.post("")
@hq_required
def create_branch():
    data = request.get_json(silent=True) or {}
    try:
        branch = branch_service.create_branch(
            code=data.get("code"),
            name=data.get("name"),
            address=data.get("address"),
            phone=data.get("phone"),
            owner_id=data.get("owner_id"),
            created_by=g.current_profile.id,
        )
        return jsonify(branch.to_dict()), 201
    except (ValidationError, NotFoundError, ConflictError) as e:
        return jsonify({"error": str(e)}), e.status_code


@branches_bp.get("/<int:branch_id>")
@hq_required
def get_branch(branch_id: int):
    branch = branch_service.get_branch(branch_id, include_deleted=True)
    if not branch:
        return jsonify({"error": "Branch not found"}), 404
    return jsonify(branch.to_dict()), 200


@branches_bp.put("/<int:branch_id>")
@hq_required
def update_branch(branch_id: int):
    data = request.get_json(silent=True) or {}
    fields = {key: data[key] for key in _EDITABLE_FIELDS if key in data}
    try:
        branch = branch_service.update_branch(branch_id, fields)
        return jsonify(branch.to_dict()), 200
    except (ValidationError, NotFoundError, ConflictError) as e:
        return jsonify({"error": str(e)}), e.status_code


@branches_bp.delete("/<int:branch_id>")
@hq_required
def delete_branch(branch_id: int):
    """Soft delete: the row stays and its code becomes reusable."""
    try:
        branch = branch_service.soft_delete_branch(branch_id)
        return jsonify(branch.to_dict()), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@branches_bp.post("/<int:branch_id>/restore")
@hq_required
def restore_branch(branch_id: int):
    try:
        branch = branch_service.restore_branch(branch_id)
        return jsonify(branch.to_dict()), 200
    except (NotFoundError, ConflictError) as e:
        return jsonify({"error": str(e)}), e.status_code
