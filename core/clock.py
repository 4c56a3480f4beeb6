"""
Источник текущего времени для контрольных механизмов.

Сервисы лимитов, блокировок и детектора получают Clock через конструктор,
поэтому в тестах время задаётся явно, без patch и sleep.
"""

from datetime import datetime

from django.utils import timezone


class Clock:
    """Системные часы (aware datetime в UTC)."""

    def now(self) -> datetime:
        return timezone.now()


class FixedClock(Clock):
    """Часы с ручным управлением (тесты, воспроизведение инцидентов)."""

    def __init__(self, moment: datetime):
        self.moment = moment

    def now(self) -> datetime:
        return self.moment

    def advance(self, delta) -> datetime:
        self.moment = self.moment + delta
        return self.moment


system_clock = Clock()
