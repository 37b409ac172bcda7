from __future__ import annotations

from ..extensions import db
from ..models import Branch, Profile
from ..roles import Role
from ..time_utils import epoch_millis, utcnow
from ..validation import ConflictError, NotFoundError, ValidationError, clean_str, parse_int
from .concurrency import lock_for_update, run_with_retry


def generate_placeholder_code() -> str:
    """Temporary code for a branch created during HQ self-registration."""
    return f"HQ_{epoch_millis()}"


def get_branch(branch_id: int, *, include_deleted: bool = False) -> Branch | None:
    query = db.session.query(Branch).filter_by(id=branch_id)
    if not include_deleted:
        query = query.filter(Branch.deleted_at.is_(None))
    return query.first()


def get_branch_by_code(code: str) -> Branch | None:
    """Live branch with this code, or None."""
    code = clean_str(code)
    if not code:
        return None
    return db.session.query(Branch).filter(
        Branch.code == code,
        Branch.deleted_at.is_(None),
    ).first()


def require_branch(branch_id: int) -> Branch:
    branch = get_branch(branch_id)
    if not branch:
        raise NotFoundError("Branch not found")
    return branch


def _ensure_code_available(code: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Branch.id).filter(
        Branch.code == code,
        Branch.deleted_at.is_(None),
    )
    if exclude_id is not None:
        query = query.filter(Branch.id != exclude_id)
    if query.first():
        raise ConflictError(f"Branch code already exists: {code}")


def _resolve_owner_id(owner_id) -> int | None:
    """None clears the owner; anything else must be an existing OWNER profile."""
    owner_id = parse_int(owner_id, "owner_id")
    if owner_id is None:
        return None
    owner = db.session.get(Profile, owner_id)
    if not owner:
        raise NotFoundError("Owner not found")
    if owner.role_enum != Role.OWNER:
        raise ValidationError("owner_id must reference an OWNER profile")
    return owner.id


def build_branch(
    *,
    code: str,
    name: str,
    address: str | None = None,
    phone: str | None = None,
    owner_id: int | None = None,
    created_by: int | None = None,
) -> Branch:
    """
    Validate and add a branch to the current session without committing.

    Registration uses this inside its own transaction; create_branch()
    wraps it for the branch management API.
    """
    code = clean_str(code)
    name = clean_str(name)
    if not code:
        raise ValidationError("Branch code is required")
    if not name:
        raise ValidationError("Branch name is required")

    owner_id = _resolve_owner_id(owner_id)
    _ensure_code_available(code)

    branch = Branch(
        code=code,
        name=name,
        address=clean_str(address),
        phone=clean_str(phone),
        owner_id=owner_id,
        created_by=created_by,
    )
    db.session.add(branch)
    db.session.flush()
    return branch


def create_branch(
    *,
    code: str,
    name: str,
    address: str | None = None,
    phone: str | None = None,
    owner_id: int | None = None,
    created_by: int | None = None,
) -> Branch:
    def _op():
        branch = build_branch(
            code=code,
            name=name,
            address=address,
            phone=phone,
            owner_id=owner_id,
            created_by=created_by,
        )
        db.session.commit()
        return branch

    return run_with_retry(_op)


def update_branch(branch_id: int, fields: dict) -> Branch:
    """
    Update code/name/address/phone/owner_id. Only keys present in fields
    are touched; address and phone may be cleared with null.
    """
    def _op():
        branch = lock_for_update(
            db.session.query(Branch).filter(Branch.id == branch_id, Branch.deleted_at.is_(None))
        ).first()
        if not branch:
            raise NotFoundError("Branch not found")

        if "code" in fields:
            code = clean_str(fields["code"])
            if not code:
                raise ValidationError("Branch code is required")
            if code != branch.code:
                _ensure_code_available(code, exclude_id=branch.id)
                branch.code = code

        if "name" in fields:
            name = clean_str(fields["name"])
            if not name:
                raise ValidationError("Branch name is required")
            branch.name = name

        if "address" in fields:
            branch.address = clean_str(fields["address"])
        if "phone" in fields:
            branch.phone = clean_str(fields["phone"])
        if "owner_id" in fields:
            branch.owner_id = _resolve_owner_id(fields["owner_id"])

        db.session.commit()
        return branch

    return run_with_retry(_op)


def soft_delete_branch(branch_id: int) -> Branch:
    """Set deleted_at. The code becomes reusable; rows are never removed."""
    def _op():
        branch = lock_for_update(db.session.query(Branch).filter_by(id=branch_id)).first()
        if not branch or branch.is_deleted:
            raise NotFoundError("Branch not found")
        branch.deleted_at = utcnow()
        db.session.commit()
        return branch

    return run_with_retry(_op)


def restore_branch(branch_id: int) -> Branch:
    def _op():
        branch = lock_for_update(db.session.query(Branch).filter_by(id=branch_id)).first()
        if not branch:
            raise NotFoundError("Branch not found")
        if not branch.is_deleted:
            raise ConflictError("Branch is not deleted")
        _ensure_code_available(branch.code, exclude_id=branch.id)
        branch.deleted_at = None
        db.session.commit()
        return branch

    return run_with_retry(_op)


def list_branches(
    *,
    search: str | None = None,
    include_deleted: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Branch], int]:
    """Branches ordered by code, plus the total before paging."""
    query = db.session.query(Branch)
    if not include_deleted:
        query = query.filter(Branch.deleted_at.is_(None))

    search = clean_str(search)
    if search:
        pattern = f"%{search}%"
        query = query.filter(db.or_(Branch.code.ilike(pattern), Branch.name.ilike(pattern)))

    total = query.count()
    branches = query.order_by(Branch.code.asc(), Branch.id.asc()).limit(limit).offset(offset).all()
    return branches, total
