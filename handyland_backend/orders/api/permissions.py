# orders/api/permissions.py

from rest_framework.permissions import BasePermission


class IsOrderAdmin(BasePermission):
    """Staff accounts manage every order; customers only their own."""

    message = "Order administration requires a staff account."

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        return bool(
            user
            and user.is_authenticated
            and (getattr(user, "is_staff", False) or getattr(user, "is_superuser", False))
        )
