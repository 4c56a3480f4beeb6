"""
Ошибки контрольного слоя (остатки, лимиты, блокировки, детектор).

Все "жёсткие" ошибки - наследники APIException: стандартный
rest_framework.views.exception_handler отдаёт их клиенту как есть,
с нужным HTTP кодом и структурой detail.

Значения в detail не приводятся к строкам (в отличие от базового
APIException), чтобы фронтенд мог строить обратный отсчёт по числам.
"""

import math
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from rest_framework import status
from rest_framework.exceptions import APIException


def _pluralize(count: int, unit: str) -> str:
    return f'{count} {unit}' if count == 1 else f'{count} {unit}s'


def humanize_wait(seconds: float) -> str:
    """
    Человекочитаемое время ожидания.

    До минуты - секунды, дальше - минуты с округлением вверх:
    1 -> "1 second", 45 -> "45 seconds", 60 -> "1 minute", 61 -> "2 minutes"
    """
    seconds = max(0, math.ceil(seconds))
    if seconds < 60:
        return _pluralize(seconds, 'second')
    return _pluralize(math.ceil(seconds / 60), 'minute')


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class IntegrityControlError(APIException):
    """Базовая ошибка контрольного слоя."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Request rejected.'
    default_code = 'integrity_control'

    def __init__(self, message: Optional[str] = None, **payload: Any):
        self.message = message or str(self.default_detail)
        self.payload = payload
        super().__init__(detail=self.message, code=self.default_code)
        # Сохраняем типы (int, None) вместо ErrorDetail-строк
        self.detail = self.as_dict()

    def as_dict(self) -> Dict[str, Any]:
        return {
            'error': self.message,
            'code': self.default_code,
            **self.payload,
        }

    def __str__(self) -> str:
        return self.message


# =============================================================================
# ОСТАТКИ
# =============================================================================

class InsufficientStock(IntegrityControlError):
    """Строку корзины нельзя полностью покрыть партиями."""

    status_code = status.HTTP_409_CONFLICT
    default_code = 'insufficient_stock'

    def __init__(
            self,
            *,
            product_id: int,
            product_name: str,
            category: str,
            requested: Decimal,
            available: Decimal
    ):
        self.product_id = product_id
        self.category = category
        self.requested = requested
        self.available = available
        super().__init__(
            f'Not enough stock for {product_name} ({category})',
            product_id=product_id,
            product_name=product_name,
            category=category,
            requested=str(requested),
            available=str(available),
        )


class MinimumOrderNotMet(IntegrityControlError):
    """Сумма заказа меньше минимальной."""

    default_code = 'minimum_order_not_met'

    def __init__(self, *, minimum: Decimal, total: Decimal):
        self.minimum = minimum
        self.total = total
        super().__init__(
            f'Minimum order requirement is ₱{minimum:.2f}. '
            f'Your current total is ₱{total:.2f}. '
            f'Please add more items to your cart.',
            minimum=str(minimum),
            total=str(total),
        )


# =============================================================================
# ЛИМИТ ОФОРМЛЕНИЙ
# =============================================================================

class RateLimitExceeded(IntegrityControlError):
    """Превышен лимит оформлений заказа в скользящем окне."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_code = 'rate_limit_exceeded'

    def __init__(self, *, limit: int, reset_at: datetime, retry_after: int):
        self.remaining = 0
        self.reset_at = reset_at
        # exception_handler DRF выставит заголовок Retry-After
        self.wait = retry_after
        super().__init__(
            f'Too many checkout attempts. You can place up to {_pluralize(limit, "order")} '
            f'at a time; please try again in {humanize_wait(retry_after)}.',
            limit=limit,
            remaining=0,
            reset_at=_iso(reset_at),
            retry_after=retry_after,
        )


# =============================================================================
# БЛОКИРОВКА ВХОДА
# =============================================================================

class AccountLocked(IntegrityControlError):
    """Ключ входа заблокирован после серии неудачных попыток."""

    status_code = status.HTTP_423_LOCKED
    default_code = 'account_locked'

    def __init__(
            self,
            *,
            remaining_seconds: int,
            failed_attempts: int,
            lock_level: int,
            lock_expires_at: Optional[datetime] = None
    ):
        self.remaining_seconds = remaining_seconds
        self.failed_attempts = failed_attempts
        self.lock_level = lock_level
        self.wait = remaining_seconds
        super().__init__(
            f'Too many failed login attempts. '
            f'Please try again in {humanize_wait(remaining_seconds)}.',
            remaining_seconds=remaining_seconds,
            failed_attempts=failed_attempts,
            lock_level=lock_level,
            lock_expires_at=_iso(lock_expires_at),
        )


class InvalidCredentials(IntegrityControlError):
    """Неверная пара логин/пароль (или вход не через свой портал)."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_code = 'invalid_credentials'
    default_detail = 'These credentials do not match our records.'


# =============================================================================
# ДЕТЕКТОР ПОДОЗРИТЕЛЬНЫХ ЗАКАЗОВ
# =============================================================================

class DetectionFailure(Exception):
    """
    Ошибка детектора подозрительных заказов.

    Никогда не доходит до клиента: детектор логирует её и продолжает,
    заказ остаётся созданным в статусе pending.
    """

    def __init__(self, order_id: int, cause: Exception):
        self.order_id = order_id
        self.cause = cause
        super().__init__(f'Suspicion check failed for order #{order_id}: {cause}')
