# apps/users/lockout.py
"""
Машина состояний блокировки входа.

Состояния: Unlocked -> Locked(level, expires_at).

ПРАВИЛА:
1. Неудачная попытка увеличивает счётчик
2. Счётчик >= порога -> Locked(level + 1), срок = duration(level + 1)
3. Пока блокировка действует - попытки не считаются
4. После истечения блокировки новая неудача начинает новый цикл
   (счётчик = 1), уровень сохраняется - следующая блокировка длиннее
5. Успешный вход сбрасывает всё: счётчик 0, уровень 0

Функции чистые: текущее время передаётся явно,
база данных и часы здесь не используются.
"""

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Sequence

from django.conf import settings

DEFAULT_MAX_FAILED_ATTEMPTS = 3
DEFAULT_DURATIONS_MINUTES = (1, 3, 5, 1440)


@dataclass(frozen=True)
class LockoutState:
    """Снимок состояния ключа входа."""
    failed_attempts: int = 0
    lock_level: int = 0
    lock_expires_at: Optional[datetime] = None

    def is_locked(self, now: datetime) -> bool:
        return self.lock_expires_at is not None and self.lock_expires_at > now

    def remaining_seconds(self, now: datetime) -> int:
        if not self.is_locked(now):
            return 0
        # 0.2 секунды ожидания - это ещё 1 секунда
        return math.ceil((self.lock_expires_at - now).total_seconds())


@dataclass(frozen=True)
class LockoutPolicy:
    """
    Порог и длительности блокировок.

    durations[i] - длительность блокировки уровня i + 1.
    Уровни выше последнего используют последнюю длительность.
    """
    max_attempts: int = DEFAULT_MAX_FAILED_ATTEMPTS
    durations: Sequence[timedelta] = tuple(timedelta(minutes=m) for m in DEFAULT_DURATIONS_MINUTES)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError('max_attempts должен быть >= 1')
        if not self.durations:
            raise ValueError('Нужна хотя бы одна длительность блокировки')

    @classmethod
    def from_settings(cls) -> 'LockoutPolicy':
        config = getattr(settings, 'LOGIN_LOCKOUT', {})
        minutes = config.get('DURATIONS_MINUTES', DEFAULT_DURATIONS_MINUTES)
        return cls(
            max_attempts=config.get('MAX_FAILED_ATTEMPTS', DEFAULT_MAX_FAILED_ATTEMPTS),
            durations=tuple(timedelta(minutes=m) for m in minutes),
        )

    def duration_for(self, level: int) -> timedelta:
        index = min(max(level, 1), len(self.durations)) - 1
        return self.durations[index]

    def register_failure(self, state: LockoutState, now: datetime) -> LockoutState:
        """Неудачная попытка входа -> новое состояние."""
        if state.is_locked(now):
            return state

        if state.lock_expires_at is not None:
            # Блокировка истекла: новый цикл, уровень помним
            attempts = 1
        else:
            attempts = state.failed_attempts + 1

        if attempts >= self.max_attempts:
            level = state.lock_level + 1
            return LockoutState(
                failed_attempts=attempts,
                lock_level=level,
                lock_expires_at=now + self.duration_for(level),
            )

        return replace(state, failed_attempts=attempts, lock_expires_at=None)

    def register_success(self) -> LockoutState:
        """Успешный вход -> полный сброс."""
        return LockoutState()

    def attempts_remaining(self, state: LockoutState, now: datetime) -> int:
        if state.is_locked(now):
            return 0
        if state.lock_expires_at is not None:
            # Блокировка истекла, следующий цикл начнётся с нуля
            return self.max_attempts
        return max(0, self.max_attempts - state.failed_attempts)


@dataclass(frozen=True)
class LockoutStatus:
    """Статус ключа для обратного отсчёта в интерфейсе."""
    is_locked: bool
    failed_attempts: int
    lock_level: int
    remaining_seconds: int
    attempts_remaining: int
    lock_expires_at: Optional[datetime]
    server_time: datetime

    @classmethod
    def build(cls, policy: LockoutPolicy, state: LockoutState, now: datetime) -> 'LockoutStatus':
        locked = state.is_locked(now)
        return cls(
            is_locked=locked,
            failed_attempts=state.failed_attempts,
            lock_level=state.lock_level,
            remaining_seconds=state.remaining_seconds(now),
            attempts_remaining=policy.attempts_remaining(state, now),
            lock_expires_at=state.lock_expires_at if locked else None,
            server_time=now,
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            'is_locked': self.is_locked,
            'failed_attempts': self.failed_attempts,
            'lock_level': self.lock_level,
            'remaining_seconds': self.remaining_seconds,
            'attempts_remaining': self.attempts_remaining,
            'lock_expires_at': self.lock_expires_at.isoformat() if self.lock_expires_at else None,
            'server_time': self.server_time.isoformat(),
        }
