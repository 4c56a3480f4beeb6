# apps/users/managers.py
"""Менеджер пользователей."""

from django.contrib.auth.models import BaseUserManager


class UserManager(BaseUserManager):
    """
    Менеджер пользователей.

    Email обязателен для всех ролей, member_id - только для членов кооператива.
    """

    def create_user(
        self,
        email: str,
        password: str = None,
        **extra_fields
    ):
        """
        Создает пользователя.

        Args:
            email: Email пользователя
            password: Пароль
            **extra_fields: name, role, member_id, ...

        Returns:
            User: Созданный пользователь

        Raises:
            ValueError: Если обязательные поля не указаны
        """
        if not email:
            raise ValueError('Email обязателен')

        if extra_fields.get('role') == 'member' and not extra_fields.get('member_id'):
            raise ValueError('Для члена кооператива обязателен member_id')

        email = self.normalize_email(email)

        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)

        return user

    def create_superuser(
        self,
        email: str,
        password: str = None,
        **extra_fields
    ):
        """Создает суперпользователя (администратора)."""
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('role', 'admin')

        if extra_fields.get('is_staff') is not True:
            raise ValueError('Суперпользователь должен иметь is_staff=True')
        if extra_fields.get('is_superuser') is not True:
            raise ValueError('Суперпользователь должен иметь is_superuser=True')

        return self.create_user(email, password, **extra_fields)
