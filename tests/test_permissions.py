from permissions import (
    ACCESS_POS,
    DELETE_USERS,
    MANAGE_CASH_REGISTER,
    MODERATE_REVIEWS,
    PROCESS_SALES,
    VIEW_ORDERS,
    has_all_permissions,
    has_any_permission,
    has_permission,
    is_admin_role,
    is_known_role,
    normalize_role,
    permissions_for,
)


def test_super_admin_has_every_permission():
    assert has_permission("super_admin", "anything_at_all")
    assert has_permission("SUPER_ADMIN", DELETE_USERS)


def test_roles_are_case_insensitive_and_legacy_user_maps_to_customer():
    assert normalize_role("super-admin") == "SUPER_ADMIN"
    assert normalize_role("user") == "CUSTOMER"
    assert permissions_for("Admin") == permissions_for("ADMIN")


def test_admin_and_manager_tables():
    assert has_permission("admin", MODERATE_REVIEWS)
    assert not has_permission("admin", DELETE_USERS)
    assert has_permission("manager", MANAGE_CASH_REGISTER)
    assert not has_permission("admin", MANAGE_CASH_REGISTER)


def test_cashier_and_customer():
    assert has_all_permissions("cashier", [ACCESS_POS, PROCESS_SALES])
    assert not has_permission("cashier", VIEW_ORDERS)
    assert permissions_for("customer") == frozenset()
    assert not has_any_permission("customer", ACCESS_POS, VIEW_ORDERS)


def test_unknown_role_has_nothing():
    assert not is_known_role("pirate")
    assert permissions_for("pirate") == frozenset()
    assert permissions_for(None) == frozenset()


def test_admin_roles():
    assert is_admin_role("admin")
    assert is_admin_role("super_admin")
    assert not is_admin_role("manager")
