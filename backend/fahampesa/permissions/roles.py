# Overview: Default permission sets for each role.
# Lists are explicit; there are no wildcard codes.

from .definitions import PERMISSION_DEFINITIONS


ROLE_SUPER_ADMIN = "super_admin"
ROLE_OWNER = "owner"
ROLE_MANAGER = "manager"
ROLE_CASHIER = "cashier"

STAFF_ROLES = (ROLE_CASHIER, ROLE_MANAGER, ROLE_OWNER)

# Platform-only codes an account owner never holds
PLATFORM_ONLY_PERMISSIONS = {"subscriptions:manage", "admin:manage"}

DEFAULT_ROLE_PERMISSIONS = {
    ROLE_SUPER_ADMIN: [perm[0] for perm in PERMISSION_DEFINITIONS],
    ROLE_OWNER: [perm[0] for perm in PERMISSION_DEFINITIONS if perm[0] not in PLATFORM_ONLY_PERMISSIONS],
    ROLE_MANAGER: [
        "inventory:read",
        "inventory:adjust",
        "inventory:audit",
        "transfers:create",
        "transfers:approve",
        "transfers:ship",
        "transfers:receive",
        "suppliers:manage",
        "purchase_orders:create",
        "purchase_orders:approve",
        "purchase_orders:send",
        "purchase_orders:receive",
        "products:manage",
        "sales:create",
        "debtors:manage",
        "staff:read",
        "reports:read",
        "subscriptions:read",
    ],
    ROLE_CASHIER: [
        "inventory:read",
        "transfers:receive",
        "sales:create",
        "debtors:manage",
    ],
}
