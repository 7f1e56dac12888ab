"""
Role based permission classes for the billing API.
"""
from rest_framework.permissions import BasePermission, SAFE_METHODS

ADMIN_ROLES = {"admin"}
CASHIER_ROLES = {"admin", "cashier"}
CLINICAL_ROLES = {"admin", "reception", "doctor"}
DISCHARGE_ROLES = {"admin", "cashier", "reception", "doctor"}


def _has_role(request, roles) -> bool:
    user = getattr(request, "user", None)
    if not (user and user.is_authenticated):
        return False
    return getattr(user, "role", None) in roles or bool(getattr(user, "is_superuser", False))


class IsAdminRole(BasePermission):
    """Manage invoice ranges."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _has_role(request, ADMIN_ROLES)


class IsCashierRole(BasePermission):
    """Take payments and issue invoices."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _has_role(request, CASHIER_ROLES)


class IsClinicalRole(BasePermission):
    """Admit patients and manage stays."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _has_role(request, CLINICAL_ROLES)


class CanDischarge(BasePermission):
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _has_role(request, DISCHARGE_ROLES)


class ReadOnly(BasePermission):
    """Allow read-only access (GET, HEAD, OPTIONS)."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return request.method in SAFE_METHODS
