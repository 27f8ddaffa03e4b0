"""
Role checks for staff-only endpoints.

Staff are principals whose profile role is admin or designer; Django
superusers are always staff.
"""
from rest_framework.permissions import BasePermission


def is_staff_principal(user) -> bool:
    if user is None or not user.is_authenticated:
        return False
    if user.is_superuser:
        return True
    profile = getattr(user, 'profile', None)
    return profile is not None and profile.is_staff_role


class IsStaffPrincipal(BasePermission):
    """Allow access only to admin and designer principals."""
    message = 'Staff role (admin or designer) required.'

    def has_permission(self, request, view):
        return is_staff_principal(request.user)
