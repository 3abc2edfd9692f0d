"""
Permission System Constants and Definitions

WHY: Centralized permission definitions ensure consistency across the application.
All permission codes and role mappings defined here.

DESIGN PRINCIPLES:
- Permissions are granular (one action per permission)
- Customers hold no permissions: owning an order is checked separately
- Admin has all permissions by default
"""

# =============================================================================
# PERMISSION CATEGORIES
# =============================================================================

class PermissionCategory:
    """Permission categories for organization."""
    ORDERS = "ORDERS"
    USERS = "USERS"


# =============================================================================
# PERMISSION CODES
# =============================================================================

VIEW_ORDERS = "VIEW_ORDERS"
MANAGE_ORDERS = "MANAGE_ORDERS"
MANAGE_USERS = "MANAGE_USERS"

# Each permission is defined as: (code, name, description, category)
PERMISSION_DEFINITIONS = [
    (
        VIEW_ORDERS,
        "View Orders",
        "List and inspect every customer's orders and payment evidence",
        PermissionCategory.ORDERS
    ),
    (
        MANAGE_ORDERS,
        "Manage Orders",
        "Change order status: verify payments, ship, deliver, cancel, return",
        PermissionCategory.ORDERS
    ),
    (
        MANAGE_USERS,
        "Manage Users",
        "Create accounts and assign roles",
        PermissionCategory.USERS
    ),
]


# =============================================================================
# DEFAULT ROLES
# =============================================================================

DEFAULT_ROLES = [
    ("admin", "Full console access"),
    ("operator", "Order review and fulfilment"),
    ("customer", "Shopper account"),
]

DEFAULT_ROLE_PERMISSIONS = {
    "admin": [VIEW_ORDERS, MANAGE_ORDERS, MANAGE_USERS],
    "operator": [VIEW_ORDERS, MANAGE_ORDERS],
    "customer": [],
}


def get_all_permission_codes() -> list[str]:
    return [code for code, _, _, _ in PERMISSION_DEFINITIONS]
