"""
Custom permission classes for role based access control.
"""
from rest_framework.permissions import BasePermission, SAFE_METHODS

from .authentication import PAYMENT_GATEWAY_AUTH

CLINIC_ROLES = {"ADMIN", "DOCTOR", "STAFF"}


def _role(request):
    user = getattr(request, "user", None)
    if not (user and user.is_authenticated):
        return None
    return getattr(user, "role", None)


class IsAdminRole(BasePermission):
    """Allow access only to administrators."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) == "ADMIN"


class IsClinicStaff(BasePermission):
    """Administrators, doctors and staff."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) in CLINIC_ROLES


class IsDoctorOrAdmin(BasePermission):
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) in {"ADMIN", "DOCTOR"}


class ClinicStaffOrReadOnly(BasePermission):
    """Any authenticated user may read; only clinic staff may write."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        role = _role(request)
        if role is None:
            return False
        return request.method in SAFE_METHODS or role in CLINIC_ROLES


class HasPaymentApiKey(BasePermission):
    """Request was authenticated by the payment gateway API key."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return getattr(request, "auth", None) == PAYMENT_GATEWAY_AUTH
