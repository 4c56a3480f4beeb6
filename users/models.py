# apps/users/models.py
"""
Модели пользователей и журнала попыток входа.

МОДЕЛИ:
- User: Пользователь с ролью (admin / staff / member / logistic / customer)
- LoginAttempt: Состояние блокировки входа по ключу (identifier, user_type, ip)
"""

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models
from django.utils import timezone

from .managers import UserManager


class UserRole(models.TextChoices):
    """Роли пользователей."""
    ADMIN = 'admin', 'Администратор'
    STAFF = 'staff', 'Сотрудник'
    MEMBER = 'member', 'Член кооператива'
    LOGISTIC = 'logistic', 'Логистика'
    CUSTOMER = 'customer', 'Покупатель'


class LoginUserType(models.TextChoices):
    """
    Портал входа.

    Портал определяет, по какому полю ищется пользователь
    и какие роли допускаются.
    """
    ADMIN = 'admin', 'Админ-панель'
    MEMBER = 'member', 'Портал членов'
    LOGISTIC = 'logistic', 'Портал логистики'
    CUSTOMER = 'customer', 'Магазин'


class User(AbstractBaseUser, PermissionsMixin):
    """Пользователь системы."""

    email = models.EmailField(
        max_length=254,
        unique=True,
        verbose_name='Email'
    )

    # Члены кооператива входят по своему номеру
    member_id = models.CharField(
        max_length=32,
        unique=True,
        null=True,
        blank=True,
        verbose_name='Номер члена'
    )

    name = models.CharField(max_length=150, verbose_name='Имя')
    contact_number = models.CharField(max_length=20, blank=True, verbose_name='Телефон')

    role = models.CharField(
        max_length=10,
        choices=UserRole.choices,
        default=UserRole.CUSTOMER,
        verbose_name='Роль'
    )

    is_active = models.BooleanField(default=True, verbose_name='Активен')
    is_staff = models.BooleanField(default=False, verbose_name='Доступ к Django Admin')

    created_at = models.DateTimeField(auto_now_add=True, verbose_name='Дата создания')
    updated_at = models.DateTimeField(auto_now=True, verbose_name='Дата обновления')

    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['name']

    class Meta:
        db_table = 'users'
        verbose_name = 'Пользователь'
        verbose_name_plural = 'Пользователи'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['role', 'is_active']),
        ]

    def __str__(self):
        return f"{self.name} ({self.email})"

    def get_full_name(self):
        return self.name

    def get_short_name(self):
        return self.name

    def save(self, *args, **kwargs):
        # Администраторы автоматически получают доступ к Django Admin
        if self.role == UserRole.ADMIN:
            self.is_staff = True
        super().save(*args, **kwargs)


class LoginAttempt(models.Model):
    """
    Состояние блокировки входа.

    Одна строка на ключ (identifier, user_type, ip_address).
    Меняется только через LoginLockoutService под select_for_update.
    """

    identifier = models.CharField(
        max_length=254,
        verbose_name='Логин (email / номер члена)'
    )

    user_type = models.CharField(
        max_length=10,
        choices=LoginUserType.choices,
        verbose_name='Портал'
    )

    ip_address = models.GenericIPAddressField(verbose_name='IP адрес')

    failed_attempts = models.PositiveIntegerField(default=0, verbose_name='Неудачных попыток')
    lock_level = models.PositiveIntegerField(default=0, verbose_name='Уровень блокировки')
    lock_expires_at = models.DateTimeField(null=True, blank=True, verbose_name='Заблокирован до')
    last_attempt_at = models.DateTimeField(default=timezone.now, verbose_name='Последняя попытка')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True, db_index=True)

    class Meta:
        db_table = 'login_attempts'
        verbose_name = 'Попытка входа'
        verbose_name_plural = 'Попытки входа'
        ordering = ['-last_attempt_at']
        constraints = [
            models.UniqueConstraint(
                fields=['identifier', 'user_type', 'ip_address'],
                name='login_attempt_unique_key',
            ),
        ]
        indexes = [
            models.Index(fields=['identifier', 'user_type']),
        ]

    def __str__(self):
        return f"{self.identifier} [{self.user_type}] {self.ip_address} - {self.failed_attempts}"

    @property
    def is_locked(self) -> bool:
        return self.lock_expires_at is not None and self.lock_expires_at > timezone.now()
