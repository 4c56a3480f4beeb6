# apps/orders/permissions.py
"""Permissions для orders."""

from rest_framework import permissions


class IsAdmin(permissions.BasePermission):
    """Только администраторы."""

    def has_permission(self, request, view):
        return (
                request.user and
                request.user.is_authenticated and
                request.user.role == 'admin'
        )


class IsCustomer(permissions.BasePermission):
    """Только покупатели."""

    def has_permission(self, request, view):
        return (
                request.user and
                request.user.is_authenticated and
                request.user.role == 'customer'
        )


class CanReviewOrders(permissions.BasePermission):
    """Администраторы и держатели права orders.view_order."""

    def has_permission(self, request, view):
        return bool(
            request.user and
            request.user.is_authenticated and
            (request.user.role == 'admin' or request.user.has_perm('orders.view_order'))
        )
