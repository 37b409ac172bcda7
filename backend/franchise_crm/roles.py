# Overview: Role definitions and the static role -> sidebar menu table.

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .validation import ValidationError


class Role(str, Enum):
    """
    Closed set of profile roles.

    HQ: franchise headquarters, unrestricted across branches.
    OWNER: branch manager, scoped to their own branch.
    STAFF: branch operator, most restricted.

    Role-dependent behavior dispatches through tables keyed by Role
    (see ROLE_MENUS here, registration handlers, invitation rules), and the
    test suite checks every table covers every member.
    """
    HQ = "HQ"
    OWNER = "OWNER"
    STAFF = "STAFF"

    @classmethod
    def parse(cls, value) -> "Role":
        if isinstance(value, Role):
            return value
        if not isinstance(value, str):
            raise ValidationError("role must be one of HQ, OWNER, STAFF")
        try:
            return cls(value.strip().upper())
        except ValueError:
            raise ValidationError(f"Invalid role: {value}")

    @property
    def is_branch_scoped(self) -> bool:
        return self in BRANCH_SCOPED_ROLES


BRANCH_SCOPED_ROLES = frozenset({Role.OWNER, Role.STAFF})

ROLE_LABELS = {
    Role.HQ: "Headquarters",
    Role.OWNER: "Owner",
    Role.STAFF: "Staff",
}


@dataclass(frozen=True)
class MenuItem:
    href: str
    label: str
    section: str = "main"

    def to_dict(self) -> dict:
        return {"href": self.href, "label": self.label, "section": self.section}


_DASHBOARD = MenuItem("/dashboard", "Dashboard")
_APPOINTMENTS = MenuItem("/appointments", "Appointments")
_PRODUCTS = MenuItem("/products", "Products")
_CUSTOMERS = MenuItem("/customers", "Customers")
_STAFF = MenuItem("/staff", "Staff")
_FINANCE = MenuItem("/finance", "Finance")
_SETTINGS = MenuItem("/settings", "Settings")

ROLE_MENUS: dict[Role, tuple[MenuItem, ...]] = {
    Role.HQ: (
        _DASHBOARD,
        MenuItem("/branches", "Branches"),
        MenuItem("/analytics", "Analytics"),
        _APPOINTMENTS,
        _PRODUCTS,
        _CUSTOMERS,
        _STAFF,
        _FINANCE,
        _SETTINGS,
        MenuItem("/admin", "User Approval", "admin"),
        MenuItem("/users", "User Management", "admin"),
        MenuItem("/admin/approval-history", "Approval History", "admin"),
        MenuItem("/admin/statistics", "Statistics", "admin"),
        MenuItem("/invitations", "Invitations", "admin"),
    ),
    Role.OWNER: (
        _DASHBOARD,
        _APPOINTMENTS,
        _PRODUCTS,
        _CUSTOMERS,
        _STAFF,
        _FINANCE,
        MenuItem("/invitations", "Invitations"),
        _SETTINGS,
    ),
    Role.STAFF: (
        _DASHBOARD,
        _APPOINTMENTS,
        _PRODUCTS,
        _CUSTOMERS,
        _SETTINGS,
    ),
}


def role_menu(role) -> list[MenuItem]:
    """Sidebar items for a role."""
    return list(ROLE_MENUS[Role.parse(role)])
