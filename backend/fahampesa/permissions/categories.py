# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    INVENTORY = "INVENTORY"
    TRANSFERS = "TRANSFERS"
    PURCHASING = "PURCHASING"
    CATALOG = "CATALOG"
    SALES = "SALES"
    STAFF = "STAFF"
    REPORTS = "REPORTS"
    BILLING = "BILLING"
    SYSTEM = "SYSTEM"
