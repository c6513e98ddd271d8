# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- INVENTORY --

INVENTORY_PERMISSIONS = [
    (
        "inventory:read",
        "View Inventory",
        "View stock levels, movements, alerts and the inventory dashboard",
        PermissionCategory.INVENTORY,
    ),
    (
        "inventory:adjust",
        "Adjust Inventory",
        "Initialize stock and post manual adjustments",
        PermissionCategory.INVENTORY,
    ),
    (
        "inventory:audit",
        "Run Stock Audits",
        "Plan stock audits and reconcile physical counts",
        PermissionCategory.INVENTORY,
    ),
]


# -- TRANSFERS --

TRANSFER_PERMISSIONS = [
    (
        "transfers:create",
        "Request Transfers",
        "Create and view branch transfers",
        PermissionCategory.TRANSFERS,
    ),
    (
        "transfers:approve",
        "Approve Transfers",
        "Approve, partially approve or reject requested transfers",
        PermissionCategory.TRANSFERS,
    ),
    (
        "transfers:ship",
        "Ship Transfers",
        "Dispatch approved transfers from the source branch",
        PermissionCategory.TRANSFERS,
    ),
    (
        "transfers:receive",
        "Receive Transfers",
        "Record received quantities at the destination branch",
        PermissionCategory.TRANSFERS,
    ),
]


# -- PURCHASING --

PURCHASING_PERMISSIONS = [
    (
        "suppliers:manage",
        "Manage Suppliers",
        "Create, view and archive suppliers",
        PermissionCategory.PURCHASING,
    ),
    (
        "purchase_orders:create",
        "Create Purchase Orders",
        "Draft, submit and view purchase orders",
        PermissionCategory.PURCHASING,
    ),
    (
        "purchase_orders:approve",
        "Approve Purchase Orders",
        "Approve or reject purchase orders raised by someone else",
        PermissionCategory.PURCHASING,
    ),
    (
        "purchase_orders:send",
        "Send Purchase Orders",
        "Mark approved purchase orders as sent to the supplier",
        PermissionCategory.PURCHASING,
    ),
    (
        "purchase_orders:receive",
        "Receive Purchase Orders",
        "Receive delivered goods into stock",
        PermissionCategory.PURCHASING,
    ),
]


# -- CATALOG --

CATALOG_PERMISSIONS = [
    (
        "products:manage",
        "Manage Products",
        "Create and view products",
        PermissionCategory.CATALOG,
    ),
    (
        "branches:manage",
        "Manage Branches",
        "Create, view and deactivate branches",
        PermissionCategory.CATALOG,
    ),
]


# -- SALES --

SALES_PERMISSIONS = [
    (
        "sales:create",
        "Record Sales",
        "Record completed sales",
        PermissionCategory.SALES,
    ),
    (
        "debtors:manage",
        "Manage Debtors",
        "Create credit customers",
        PermissionCategory.SALES,
    ),
]


# -- STAFF --

STAFF_PERMISSIONS = [
    (
        "staff:read",
        "View Staff",
        "View staff members",
        PermissionCategory.STAFF,
    ),
    (
        "staff:manage",
        "Manage Staff",
        "Add, activate and deactivate staff members",
        PermissionCategory.STAFF,
    ),
]


# -- REPORTS --

REPORT_PERMISSIONS = [
    (
        "reports:read",
        "View Reports",
        "View inventory value and other reports",
        PermissionCategory.REPORTS,
    ),
]


# -- BILLING --

BILLING_PERMISSIONS = [
    (
        "subscriptions:read",
        "View Subscription",
        "View the tenant's subscriptions and start a checkout",
        PermissionCategory.BILLING,
    ),
    (
        "subscriptions:manage",
        "Manage Subscriptions",
        "Activate, extend and revoke any tenant's subscription",
        PermissionCategory.BILLING,
    ),
]


# -- SYSTEM --

SYSTEM_PERMISSIONS = [
    (
        "admin:manage",
        "Platform Administration",
        "Cross-tenant administration",
        PermissionCategory.SYSTEM,
    ),
]


PERMISSION_DEFINITIONS = (
    INVENTORY_PERMISSIONS
    + TRANSFER_PERMISSIONS
    + PURCHASING_PERMISSIONS
    + CATALOG_PERMISSIONS
    + SALES_PERMISSIONS
    + STAFF_PERMISSIONS
    + REPORT_PERMISSIONS
    + BILLING_PERMISSIONS
    + SYSTEM_PERMISSIONS
)
