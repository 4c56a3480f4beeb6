# apps/orders/throttles.py
"""
Лимит оформлений заказа.

Скользящее окно: не больше MAX_ATTEMPTS успешных оформлений
за последние WINDOW_MINUTES на одного покупателя.

ПРАВИЛА:
- Оформление считается, пока now - WINDOW_MINUTES <= t (ровно на границе окна ещё считается)
- reset_at = самое старое оформление в окне + окно; слот свободен сразу после reset_at
- retry_after - целые секунды до первого момента после reset_at
- Неудачное оформление (нет остатка, пустая корзина) слот не занимает:
  record() вызывается только после успешного создания заказа
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional

from django.conf import settings

from core.clock import Clock, system_clock
from core.counters import TimedCounter
from core.exceptions import RateLimitExceeded

from .models import CheckoutAttempt

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_WINDOW_MINUTES = 10


@dataclass(frozen=True)
class RateLimitPolicy:
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    window: timedelta = timedelta(minutes=DEFAULT_WINDOW_MINUTES)

    @classmethod
    def from_settings(cls) -> 'RateLimitPolicy':
        config = getattr(settings, 'CHECKOUT_RATE_LIMIT', {})
        return cls(
            max_attempts=config.get('MAX_ATTEMPTS', DEFAULT_MAX_ATTEMPTS),
            window=timedelta(minutes=config.get('WINDOW_MINUTES', DEFAULT_WINDOW_MINUTES)),
        )


@dataclass(frozen=True)
class RateLimitStatus:
    """Состояние лимита покупателя на момент now."""
    allowed: bool
    limit: int
    used: int
    remaining: int
    reset_at: Optional[datetime]
    retry_after: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            'allowed': self.allowed,
            'limit': self.limit,
            'used': self.used,
            'remaining': self.remaining,
            'reset_at': self.reset_at.isoformat() if self.reset_at else None,
            'retry_after': self.retry_after,
        }


def evaluate_rate_limit(
        timestamps: Iterable[datetime],
        now: datetime,
        policy: RateLimitPolicy
) -> RateLimitStatus:
    """
    Чистая функция: времена оформлений -> состояние лимита.

    Args:
        timestamps: Времена успешных оформлений покупателя (любой порядок)
        now: Текущее время
        policy: Лимит и окно
    """
    window_start = now - policy.window
    in_window = sorted(t for t in timestamps if window_start <= t <= now)

    used = len(in_window)
    remaining = max(0, policy.max_attempts - used)
    allowed = used < policy.max_attempts

    reset_at = None
    retry_after = 0
    if in_window:
        reset_at = in_window[0] + policy.window
    if not allowed:
        # Слот освободится, когда из окна выйдет достаточно старых оформлений
        release = in_window[used - policy.max_attempts] + policy.window
        reset_at = release
        retry_after = math.floor((release - now).total_seconds()) + 1

    return RateLimitStatus(
        allowed=allowed,
        limit=policy.max_attempts,
        used=used,
        remaining=remaining,
        reset_at=reset_at,
        retry_after=retry_after,
    )


class CheckoutRateLimiter:
    """
    Лимит оформлений поверх журнала CheckoutAttempt.

    check() и record() должны выполняться в транзакции оформления
    под блокировкой строки покупателя: так два параллельных
    оформления не увидят одно и то же значение счётчика.
    """

    def __init__(
            self,
            policy: Optional[RateLimitPolicy] = None,
            counter: Optional[TimedCounter] = None,
            clock: Optional[Clock] = None
    ):
        self.policy = policy or RateLimitPolicy.from_settings()
        self.counter = counter or TimedCounter(CheckoutAttempt, key_field='user')
        self.clock = clock or system_clock

    def status(self, user) -> RateLimitStatus:
        now = self.clock.now()
        timestamps = self.counter.timestamps_since(user, now - self.policy.window)
        return evaluate_rate_limit(timestamps, now, self.policy)

    def check(self, user) -> RateLimitStatus:
        """
        Raises:
            RateLimitExceeded: Лимит исчерпан
        """
        status = self.status(user)

        if not status.allowed:
            logger.warning(
                f"Лимит оформлений исчерпан | User: {user.id} | "
                f"Used: {status.used}/{status.limit} | Retry after: {status.retry_after}s"
            )
            raise RateLimitExceeded(
                limit=status.limit,
                reset_at=status.reset_at,
                retry_after=status.retry_after,
            )

        return status

    def record(self, user) -> None:
        """Зафиксировать успешное оформление."""
        now = self.clock.now()
        self.counter.append(user, now)
        self.prune(before=now - 2 * self.policy.window)

    def prune(self, before: Optional[datetime] = None) -> int:
        """Удалить записи старше двух окон (или before)."""
        if before is None:
            before = self.clock.now() - 2 * self.policy.window
        return self.counter.prune(before)
