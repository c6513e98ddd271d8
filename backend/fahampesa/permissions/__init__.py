# Overview: Permission system package.
# Re-exports all public APIs.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    INVENTORY_PERMISSIONS,
    TRANSFER_PERMISSIONS,
    PURCHASING_PERMISSIONS,
    CATALOG_PERMISSIONS,
    SALES_PERMISSIONS,
    STAFF_PERMISSIONS,
    REPORT_PERMISSIONS,
    BILLING_PERMISSIONS,
    SYSTEM_PERMISSIONS,
)
from .roles import (
    DEFAULT_ROLE_PERMISSIONS,
    PLATFORM_ONLY_PERMISSIONS,
    ROLE_SUPER_ADMIN,
    ROLE_OWNER,
    ROLE_MANAGER,
    ROLE_CASHIER,
    STAFF_ROLES,
)
from .helpers import (
    get_all_permission_codes,
    get_permissions_by_category,
    get_permission_definition,
    get_role_permissions,
    validate_permission_code,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "INVENTORY_PERMISSIONS",
    "TRANSFER_PERMISSIONS",
    "PURCHASING_PERMISSIONS",
    "CATALOG_PERMISSIONS",
    "SALES_PERMISSIONS",
    "STAFF_PERMISSIONS",
    "REPORT_PERMISSIONS",
    "BILLING_PERMISSIONS",
    "SYSTEM_PERMISSIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "PLATFORM_ONLY_PERMISSIONS",
    "ROLE_SUPER_ADMIN",
    "ROLE_OWNER",
    "ROLE_MANAGER",
    "ROLE_CASHIER",
    "STAFF_ROLES",
    "get_all_permission_codes",
    "get_permissions_by_category",
    "get_permission_definition",
    "get_role_permissions",
    "validate_permission_code",
]
