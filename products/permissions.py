# apps/products/permissions.py
"""Permissions для products."""

from rest_framework import permissions


class IsAdminOrStaff(permissions.BasePermission):
    """Администраторы и сотрудники."""

    def has_permission(self, request, view):
        return (
                request.user and
                request.user.is_authenticated and
                request.user.role in ('admin', 'staff')
        )
