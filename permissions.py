"""
Role -> permission lookup table shared by every permission check.

Roles are matched case-insensitively. ``"*"`` grants every permission.
"""
from typing import FrozenSet, Iterable, Optional

WILDCARD = "*"

# Dashboard
VIEW_DASHBOARD = "view_dashboard"
# Products
VIEW_PRODUCTS = "view_products"
CREATE_PRODUCTS = "create_products"
EDIT_PRODUCTS = "edit_products"
DELETE_PRODUCTS = "delete_products"
MANAGE_PRODUCT_CATEGORIES = "manage_product_categories"
MANAGE_PRODUCT_BRANDS = "manage_product_brands"
# Orders
VIEW_ORDERS = "view_orders"
CREATE_ORDERS = "create_orders"
EDIT_ORDERS = "edit_orders"
DELETE_ORDERS = "delete_orders"
PROCESS_ORDERS = "process_orders"
# Users
VIEW_USERS = "view_users"
CREATE_USERS = "create_users"
EDIT_USERS = "edit_users"
DELETE_USERS = "delete_users"
MANAGE_USER_ROLES = "manage_user_roles"
# Inventory
VIEW_INVENTORY = "view_inventory"
MANAGE_INVENTORY = "manage_inventory"
VIEW_SUPPLIERS = "view_suppliers"
MANAGE_SUPPLIERS = "manage_suppliers"
# POS
ACCESS_POS = "access_pos"
PROCESS_SALES = "process_sales"
MANAGE_CASH_REGISTER = "manage_cash_register"
# Reports
VIEW_REPORTS = "view_reports"
VIEW_ANALYTICS = "view_analytics"
EXPORT_DATA = "export_data"
# Settings
MANAGE_SITE_SETTINGS = "manage_site_settings"
MANAGE_BANNERS = "manage_banners"
MANAGE_HOME_SETTINGS = "manage_home_settings"
# Reviews
VIEW_REVIEWS = "view_reviews"
MODERATE_REVIEWS = "moderate_reviews"
# System
MANAGE_ROLES = "manage_roles"
MANAGE_PERMISSIONS = "manage_permissions"
VIEW_SYSTEM_LOGS = "view_system_logs"

ROLE_PERMISSIONS = {
    "SUPER_ADMIN": frozenset({WILDCARD}),
    "ADMIN": frozenset({
        VIEW_DASHBOARD,
        VIEW_PRODUCTS, CREATE_PRODUCTS, EDIT_PRODUCTS, DELETE_PRODUCTS,
        MANAGE_PRODUCT_CATEGORIES, MANAGE_PRODUCT_BRANDS,
        VIEW_ORDERS, CREATE_ORDERS, EDIT_ORDERS, PROCESS_ORDERS,
        VIEW_USERS, CREATE_USERS, EDIT_USERS,
        VIEW_INVENTORY, MANAGE_INVENTORY, VIEW_SUPPLIERS, MANAGE_SUPPLIERS,
        ACCESS_POS, PROCESS_SALES,
        VIEW_REPORTS, VIEW_ANALYTICS, EXPORT_DATA,
        MANAGE_SITE_SETTINGS, MANAGE_BANNERS, MANAGE_HOME_SETTINGS,
        VIEW_REVIEWS, MODERATE_REVIEWS,
    }),
    "MANAGER": frozenset({
        VIEW_DASHBOARD,
        VIEW_PRODUCTS, CREATE_PRODUCTS, EDIT_PRODUCTS,
        VIEW_ORDERS, EDIT_ORDERS, PROCESS_ORDERS,
        VIEW_USERS,
        VIEW_INVENTORY, MANAGE_INVENTORY, VIEW_SUPPLIERS,
        ACCESS_POS, PROCESS_SALES, MANAGE_CASH_REGISTER,
        VIEW_REPORTS, VIEW_ANALYTICS,
        VIEW_REVIEWS, MODERATE_REVIEWS,
    }),
    "EMPLOYEE": frozenset({
        VIEW_DASHBOARD, VIEW_PRODUCTS, VIEW_ORDERS, VIEW_INVENTORY,
        ACCESS_POS, PROCESS_SALES, VIEW_REVIEWS,
    }),
    "CASHIER": frozenset({ACCESS_POS, PROCESS_SALES, VIEW_PRODUCTS, VIEW_INVENTORY}),
    "CUSTOMER": frozenset(),
}

# Older accounts were created with the two-role scheme
ROLE_ALIASES = {"USER": "CUSTOMER"}

ADMIN_ROLES = frozenset({"SUPER_ADMIN", "ADMIN"})


def normalize_role(role: Optional[str]) -> str:
    if not role:
        return ""
    key = role.strip().upper().replace("-", "_").replace(" ", "_")
    return ROLE_ALIASES.get(key, key)


def is_known_role(role: Optional[str]) -> bool:
    return normalize_role(role) in ROLE_PERMISSIONS


def permissions_for(role: Optional[str]) -> FrozenSet[str]:
    return ROLE_PERMISSIONS.get(normalize_role(role), frozenset())


def has_permission(role: Optional[str], permission: str) -> bool:
    granted = permissions_for(role)
    return WILDCARD in granted or permission in granted


def has_any_permission(role: Optional[str], *permissions: str) -> bool:
    return any(has_permission(role, p) for p in permissions)


def has_all_permissions(role: Optional[str], permissions: Iterable[str]) -> bool:
    return all(has_permission(role, p) for p in permissions)


def is_admin_role(role: Optional[str]) -> bool:
    return normalize_role(role) in ADMIN_ROLES
