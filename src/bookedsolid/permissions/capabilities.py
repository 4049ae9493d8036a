"""Admin capabilities, role tiers and permission checks.

Every admin role carries its own explicit capability list. Tiers are ordered
by privilege for display and invitation rules, but a higher tier does not
implicitly include a lower tier's capabilities: BUSINESS_PARTNER can view
financial reports while SUPPORT_STAFF cannot, and SUPPORT_STAFF can edit
users while BUSINESS_PARTNER cannot.

Custom override maps may only add capabilities. Anything that is not an
explicit ``True`` for a known capability key is ignored, and a non-admin
actor has no capabilities at all.
"""

import enum
from typing import Any, Mapping, Optional, Protocol

from bookedsolid.common.exceptions import InvalidPermissionError


class Capability(str, enum.Enum):
    # User management
    VIEW_USERS = "view_users"
    CREATE_USERS = "create_users"
    EDIT_USERS = "edit_users"
    DELETE_USERS = "delete_users"
    RESET_PASSWORDS = "reset_passwords"
    LOCK_UNLOCK_ACCOUNTS = "lock_unlock_accounts"

    # Business management
    VIEW_BUSINESSES = "view_businesses"
    CREATE_BUSINESSES = "create_businesses"
    EDIT_BUSINESSES = "edit_businesses"
    DELETE_BUSINESSES = "delete_businesses"
    SUSPEND_BUSINESSES = "suspend_businesses"

    # System configuration
    VIEW_SYSTEM_SETTINGS = "view_system_settings"
    EDIT_SYSTEM_SETTINGS = "edit_system_settings"
    MANAGE_API_KEYS = "manage_api_keys"
    MANAGE_INTEGRATIONS = "manage_integrations"

    # Analytics & reports
    VIEW_ANALYTICS = "view_analytics"
    VIEW_FINANCIAL_REPORTS = "view_financial_reports"
    EXPORT_DATA = "export_data"

    # Admin management
    VIEW_ADMINS = "view_admins"
    INVITE_ADMINS = "invite_admins"
    EDIT_ADMIN_ROLES = "edit_admin_roles"
    REMOVE_ADMINS = "remove_admins"

    # System monitoring
    VIEW_LOGS = "view_logs"
    VIEW_AUDIT_TRAIL = "view_audit_trail"
    VIEW_SYSTEM_HEALTH = "view_system_health"
    MANAGE_ERRORS = "manage_errors"

    # Advanced
    EXECUTE_SQL = "execute_sql"
    ACCESS_PRODUCTION_DB = "access_production_db"
    MANAGE_BACKUPS = "manage_backups"


class AdminRole(str, enum.Enum):
    SUPPORT_STAFF = "SUPPORT_STAFF"
    BUSINESS_PARTNER = "BUSINESS_PARTNER"
    DEVELOPER = "DEVELOPER"
    SUPER_ADMIN = "SUPER_ADMIN"


ROLE_PRIVILEGE: dict[AdminRole, int] = {
    AdminRole.SUPPORT_STAFF: 1,
    AdminRole.BUSINESS_PARTNER: 2,
    AdminRole.DEVELOPER: 3,
    AdminRole.SUPER_ADMIN: 3,
}

PERMISSION_CATEGORIES: dict[str, tuple[Capability, ...]] = {
    "User Management": (
        Capability.VIEW_USERS, Capability.CREATE_USERS, Capability.EDIT_USERS,
        Capability.DELETE_USERS, Capability.RESET_PASSWORDS,
        Capability.LOCK_UNLOCK_ACCOUNTS,
    ),
    "Business Management": (
        Capability.VIEW_BUSINESSES, Capability.CREATE_BUSINESSES,
        Capability.EDIT_BUSINESSES, Capability.DELETE_BUSINESSES,
        Capability.SUSPEND_BUSINESSES,
    ),
    "System Configuration": (
        Capability.VIEW_SYSTEM_SETTINGS, Capability.EDIT_SYSTEM_SETTINGS,
        Capability.MANAGE_API_KEYS, Capability.MANAGE_INTEGRATIONS,
    ),
    "Analytics & Reports": (
        Capability.VIEW_ANALYTICS, Capability.VIEW_FINANCIAL_REPORTS,
        Capability.EXPORT_DATA,
    ),
    "Admin Management": (
        Capability.VIEW_ADMINS, Capability.INVITE_ADMINS,
        Capability.EDIT_ADMIN_ROLES, Capability.REMOVE_ADMINS,
    ),
    "System Monitoring": (
        Capability.VIEW_LOGS, Capability.VIEW_AUDIT_TRAIL,
        Capability.VIEW_SYSTEM_HEALTH, Capability.MANAGE_ERRORS,
    ),
    "Advanced": (
        Capability.EXECUTE_SQL, Capability.ACCESS_PRODUCTION_DB,
        Capability.MANAGE_BACKUPS,
    ),
}

_FULL_ACCESS = frozenset(Capability)

ROLE_CAPABILITIES: dict[AdminRole, frozenset[Capability]] = {
    AdminRole.DEVELOPER: _FULL_ACCESS,
    AdminRole.SUPER_ADMIN: _FULL_ACCESS,
    AdminRole.BUSINESS_PARTNER: frozenset({
        Capability.VIEW_USERS,
        Capability.VIEW_BUSINESSES,
        Capability.VIEW_ANALYTICS,
        Capability.VIEW_FINANCIAL_REPORTS,
        Capability.EXPORT_DATA,
        Capability.VIEW_LOGS,
    }),
    AdminRole.SUPPORT_STAFF: frozenset({
        Capability.VIEW_USERS,
        Capability.EDIT_USERS,
        Capability.RESET_PASSWORDS,
        Capability.LOCK_UNLOCK_ACCOUNTS,
        Capability.VIEW_BUSINESSES,
        Capability.EDIT_BUSINESSES,
        Capability.VIEW_ANALYTICS,
        Capability.VIEW_LOGS,
        Capability.VIEW_AUDIT_TRAIL,
    }),
}

_ROLE_LABELS = {
    AdminRole.DEVELOPER: "Developer",
    AdminRole.BUSINESS_PARTNER: "Business Partner",
    AdminRole.SUPPORT_STAFF: "Support Staff",
    AdminRole.SUPER_ADMIN: "Super Admin",
}

_ROLE_DESCRIPTIONS = {
    AdminRole.DEVELOPER: "Full system access, API management, and database operations",
    AdminRole.BUSINESS_PARTNER: "Access to business analytics and financial reports",
    AdminRole.SUPPORT_STAFF: "User management and password reset capabilities",
    AdminRole.SUPER_ADMIN: "Complete platform control with all permissions",
}


class ActorLike(Protocol):
    is_admin: bool
    admin_role: Optional[str]
    admin_permissions: Any


def parse_role(value: Any) -> AdminRole | None:
    """Coerce a stored role value to AdminRole, or None if unknown."""
    if isinstance(value, AdminRole):
        return value
    try:
        return AdminRole(value)
    except ValueError:
        return None


def parse_overrides(raw: Any, strict: bool = False) -> dict[Capability, bool]:
    """Validate an override map against the closed capability set.

    Strict mode raises InvalidPermissionError on unknown keys or non-bool
    values (API input). Lenient mode drops them (stored data).
    """
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        if strict:
            raise InvalidPermissionError("Permission overrides must be an object")
        return {}

    parsed: dict[Capability, bool] = {}
    unknown: list[str] = []
    for key, value in raw.items():
        try:
            capability = Capability(key)
        except ValueError:
            unknown.append(str(key))
            continue
        if not isinstance(value, bool):
            if strict:
                raise InvalidPermissionError(
                    f"Permission override for {key} must be true or false"
                )
            continue
        parsed[capability] = value

    if unknown and strict:
        raise InvalidPermissionError(
            f"Unknown permissions: {', '.join(sorted(unknown))}"
        )
    return parsed


def role_capabilities(role: AdminRole | str) -> frozenset[Capability]:
    parsed = parse_role(role)
    if parsed is None:
        return frozenset()
    return ROLE_CAPABILITIES[parsed]


def has_permission(actor: ActorLike | None, capability: Capability | str) -> bool:
    """Return True if the actor may perform ``capability``. Never raises."""
    if actor is None:
        return False
    if getattr(actor, "is_admin", False) is not True:
        return False

    role = parse_role(getattr(actor, "admin_role", None))
    if role is None:
        return False

    try:
        capability = Capability(capability)
    except ValueError:
        return False

    if capability in ROLE_CAPABILITIES[role]:
        return True

    overrides = parse_overrides(getattr(actor, "admin_permissions", None))
    return overrides.get(capability) is True


def effective_permissions(actor: ActorLike | None) -> frozenset[Capability]:
    """All capabilities the actor holds: role set plus true overrides."""
    return frozenset(c for c in Capability if has_permission(actor, c))


def default_permission_map(role: AdminRole | str) -> dict[str, bool]:
    """Role defaults as a stored override map (every role capability True)."""
    return {c.value: True for c in role_capabilities(role)}


def is_admin(actor: ActorLike | None) -> bool:
    return (
        actor is not None
        and getattr(actor, "is_admin", False) is True
        and getattr(actor, "admin_role", None) is not None
    )


def can_perform_bulk_operations(actor: ActorLike | None) -> bool:
    return (
        has_permission(actor, Capability.DELETE_USERS)
        or has_permission(actor, Capability.SUSPEND_BUSINESSES)
    )


def can_access_sensitive_data(actor: ActorLike | None) -> bool:
    return (
        has_permission(actor, Capability.VIEW_FINANCIAL_REPORTS)
        or has_permission(actor, Capability.EXECUTE_SQL)
        or has_permission(actor, Capability.ACCESS_PRODUCTION_DB)
    )


def can_manage_admins(actor: ActorLike | None) -> bool:
    return (
        has_permission(actor, Capability.INVITE_ADMINS)
        and has_permission(actor, Capability.EDIT_ADMIN_ROLES)
    )


def role_label(role: AdminRole | str) -> str:
    parsed = parse_role(role)
    return _ROLE_LABELS[parsed] if parsed else str(role)


def role_description(role: AdminRole | str) -> str:
    parsed = parse_role(role)
    return _ROLE_DESCRIPTIONS[parsed] if parsed else ""


def permission_categories() -> dict[str, list[str]]:
    return {
        name: [c.value for c in caps]
        for name, caps in PERMISSION_CATEGORIES.items()
    }
