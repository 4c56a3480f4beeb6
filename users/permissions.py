# apps/users/permissions.py
from rest_framework.permissions import BasePermission


class IsAdminUser(BasePermission):
    """
    Только администраторы (роль admin).

    Django-флаг is_staff здесь не учитывается: сотрудники (staff)
    не управляют блокировками входа.
    """

    def has_permission(self, request, view):
        return bool(
            request.user and
            request.user.is_authenticated and
            request.user.role == 'admin'
        )
