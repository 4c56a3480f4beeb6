# apps/users/services.py
"""
Сервисы входа.

LoginLockoutService - защита от подбора пароля:
- Ключ: (логин, портал, IP)
- Порог неудачных попыток -> блокировка с растущим уровнем
- Проверяется ДО сравнения пароля

AuthenticationService - вход через портал с проверкой блокировки.

RoleLookupService - поиск получателей уведомлений по роли и праву.
"""

import logging
from datetime import timedelta
from typing import Optional, Tuple

from django.conf import settings
from django.contrib.auth.hashers import make_password
from django.db import transaction
from django.db.models import Q, QuerySet

from core.clock import Clock, system_clock
from core.counters import TimedCounter
from core.exceptions import AccountLocked, InvalidCredentials

from .lockout import LockoutPolicy, LockoutState, LockoutStatus
from .models import LoginAttempt, LoginUserType, User, UserRole

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 30


# =============================================================================
# LOGIN LOCKOUT
# =============================================================================

class LoginLockoutService:
    """
    Блокировка входа по ключу (identifier, user_type, ip_address).

    Args:
        policy: Порог и длительности (по умолчанию из settings.LOGIN_LOCKOUT)
        clock: Источник времени
    """

    def __init__(self, policy: Optional[LockoutPolicy] = None, clock: Optional[Clock] = None):
        self.policy = policy or LockoutPolicy.from_settings()
        self.clock = clock or system_clock

    @staticmethod
    def normalize_identifier(identifier: str) -> str:
        return (identifier or '').strip().lower()

    def _key(self, identifier: str, user_type: str, ip_address: str) -> dict:
        return {
            'identifier': self.normalize_identifier(identifier),
            'user_type': user_type,
            'ip_address': ip_address,
        }

    @staticmethod
    def _state(attempt: Optional[LoginAttempt]) -> LockoutState:
        if attempt is None:
            return LockoutState()
        return LockoutState(
            failed_attempts=attempt.failed_attempts,
            lock_level=attempt.lock_level,
            lock_expires_at=attempt.lock_expires_at,
        )

    def _load(self, identifier: str, user_type: str, ip_address: str) -> Tuple[LockoutState, Optional[LoginAttempt]]:
        attempt = LoginAttempt.objects.filter(**self._key(identifier, user_type, ip_address)).first()
        return self._state(attempt), attempt

    def check_login_allowed(self, identifier: str, user_type: str, ip_address: str) -> LockoutStatus:
        """
        Проверить, разрешён ли вход.

        Raises:
            AccountLocked: Если ключ заблокирован
        """
        now = self.clock.now()
        state, _ = self._load(identifier, user_type, ip_address)
        status = LockoutStatus.build(self.policy, state, now)

        if status.is_locked:
            logger.info(
                f"Вход отклонён (блокировка) | {self.normalize_identifier(identifier)} [{user_type}] "
                f"{ip_address} | Level: {status.lock_level} | Remaining: {status.remaining_seconds}s"
            )
            raise AccountLocked(
                remaining_seconds=status.remaining_seconds,
                failed_attempts=status.failed_attempts,
                lock_level=status.lock_level,
                lock_expires_at=status.lock_expires_at,
            )

        return status

    @transaction.atomic
    def record_failed_attempt(self, identifier: str, user_type: str, ip_address: str) -> LockoutStatus:
        """
        Зафиксировать неудачную попытку.

        Строка ключа блокируется select_for_update: две параллельные
        неудачи не прочитают одно и то же значение счётчика.
        """
        now = self.clock.now()
        attempt, _ = LoginAttempt.objects.select_for_update().get_or_create(
            **self._key(identifier, user_type, ip_address),
            defaults={'last_attempt_at': now},
        )

        before = self._state(attempt)
        after = self.policy.register_failure(before, now)

        if after != before:
            attempt.failed_attempts = after.failed_attempts
            attempt.lock_level = after.lock_level
            attempt.lock_expires_at = after.lock_expires_at
            attempt.last_attempt_at = now
            attempt.save(update_fields=[
                'failed_attempts', 'lock_level', 'lock_expires_at', 'last_attempt_at', 'updated_at'
            ])

        status = LockoutStatus.build(self.policy, after, now)

        if status.is_locked and not before.is_locked(now):
            logger.warning(
                f"Ключ входа заблокирован | {attempt.identifier} [{user_type}] {ip_address} | "
                f"Attempts: {status.failed_attempts} | Level: {status.lock_level} | "
                f"Until: {status.lock_expires_at.isoformat()}"
            )
        else:
            logger.info(
                f"Неудачная попытка входа | {attempt.identifier} [{user_type}] {ip_address} | "
                f"Attempts: {status.failed_attempts} | Remaining: {status.attempts_remaining}"
            )

        return status

    def clear_failed_attempts(self, identifier: str, user_type: str, ip_address: str) -> None:
        """Успешный вход: сброс счётчика и уровня."""
        reset = self.policy.register_success()
        LoginAttempt.objects.filter(**self._key(identifier, user_type, ip_address)).update(
            failed_attempts=reset.failed_attempts,
            lock_level=reset.lock_level,
            lock_expires_at=reset.lock_expires_at,
            updated_at=self.clock.now(),
        )

    def get_lockout_status(self, identifier: str, user_type: str, ip_address: str) -> LockoutStatus:
        """Статус ключа для обратного отсчёта."""
        state, _ = self._load(identifier, user_type, ip_address)
        return LockoutStatus.build(self.policy, state, self.clock.now())

    def unlock(self, identifier: str, user_type: str, ip_address: Optional[str] = None) -> int:
        """
        Ручная разблокировка администратором.

        Без ip_address снимаются блокировки со всех IP.

        Returns:
            Количество сброшенных ключей
        """
        filters = {
            'identifier': self.normalize_identifier(identifier),
            'user_type': user_type,
        }
        if ip_address:
            filters['ip_address'] = ip_address

        count = LoginAttempt.objects.filter(**filters).update(
            failed_attempts=0,
            lock_level=0,
            lock_expires_at=None,
            updated_at=self.clock.now(),
        )

        logger.info(f"Разблокировка | {filters['identifier']} [{user_type}] | Keys: {count}")
        return count

    def cleanup(self, retention_days: Optional[int] = None) -> int:
        """Удалить ключи без активности дольше retention_days."""
        if retention_days is None:
            retention_days = getattr(settings, 'LOGIN_LOCKOUT', {}).get(
                'RETENTION_DAYS', DEFAULT_RETENTION_DAYS
            )

        counter = TimedCounter(LoginAttempt, key_field='identifier', time_field='updated_at')
        deleted = counter.prune(self.clock.now() - timedelta(days=retention_days))

        logger.info(f"Очистка попыток входа | Deleted: {deleted}")
        return deleted


# =============================================================================
# AUTHENTICATION
# =============================================================================

# Поле поиска и допустимые роли для каждого портала
PORTAL_RULES = {
    LoginUserType.ADMIN: ('email', (UserRole.ADMIN, UserRole.STAFF)),
    LoginUserType.MEMBER: ('member_id', (UserRole.MEMBER,)),
    LoginUserType.LOGISTIC: ('email', (UserRole.LOGISTIC,)),
    LoginUserType.CUSTOMER: ('email', (UserRole.CUSTOMER,)),
}


class AuthenticationService:
    """Вход через портал."""

    @classmethod
    def authenticate(
            cls,
            identifier: str,
            password: str,
            portal: str,
            ip_address: str,
            lockout: Optional[LoginLockoutService] = None
    ) -> User:
        """
        Проверить логин и пароль.

        Порядок:
        1. Блокировка ключа (до любого сравнения пароля)
        2. Поиск пользователя по полю портала, проверка пароля и роли
        3. Неудача -> счётчик; успех -> сброс

        Raises:
            AccountLocked: Ключ заблокирован (или стал заблокирован этой попыткой)
            InvalidCredentials: Неверные данные / чужой портал / аккаунт отключён
        """
        lockout = lockout or LoginLockoutService()
        lookup_field, allowed_roles = PORTAL_RULES[portal]

        try:
            lockout.check_login_allowed(identifier, portal, ip_address)
        except AccountLocked:
            # Время ответа не должно отличаться от неверного пароля
            make_password(password)
            raise

        user = cls._find_user(lookup_field, identifier)

        if user is None:
            make_password(password)
            cls._fail(lockout, identifier, portal, ip_address)

        if not user.check_password(password) or user.role not in allowed_roles:
            cls._fail(lockout, identifier, portal, ip_address)

        if not user.is_active:
            logger.info(f"Вход отклонён (аккаунт отключён) | User: {user.id} [{portal}]")
            raise InvalidCredentials('Your account has been deactivated.')

        lockout.clear_failed_attempts(identifier, portal, ip_address)

        user.last_login = lockout.clock.now()
        user.save(update_fields=['last_login'])

        logger.info(f"Успешный вход | User: {user.id} [{portal}] {ip_address}")
        return user

    @staticmethod
    def _find_user(lookup_field: str, identifier: str) -> Optional[User]:
        identifier = (identifier or '').strip()
        if not identifier:
            return None
        if lookup_field == 'email':
            return User.objects.filter(email__iexact=identifier).first()
        return User.objects.filter(**{lookup_field: identifier}).first()

    @staticmethod
    def _fail(lockout: LoginLockoutService, identifier: str, portal: str, ip_address: str):
        status = lockout.record_failed_attempt(identifier, portal, ip_address)

        if status.is_locked:
            raise AccountLocked(
                remaining_seconds=status.remaining_seconds,
                failed_attempts=status.failed_attempts,
                lock_level=status.lock_level,
                lock_expires_at=status.lock_expires_at,
            )

        raise InvalidCredentials(attempts_remaining=status.attempts_remaining)


# =============================================================================
# ROLE LOOKUP
# =============================================================================

class RoleLookupService:
    """Поиск пользователей по роли или праву Django."""

    @staticmethod
    def users_with_role_or_permission(role: str, permission: str) -> QuerySet[User]:
        """
        Активные пользователи с ролью role ИЛИ правом permission.

        Право ищется напрямую у пользователя и через его группы.

        Args:
            role: Роль ('admin')
            permission: Право в формате 'app_label.codename'
        """
        app_label, codename = permission.split('.', 1)

        has_permission = (
            Q(user_permissions__content_type__app_label=app_label,
              user_permissions__codename=codename) |
            Q(groups__permissions__content_type__app_label=app_label,
              groups__permissions__codename=codename)
        )

        return User.objects.filter(
            Q(role=role) | has_permission,
            is_active=True,
        ).distinct()
