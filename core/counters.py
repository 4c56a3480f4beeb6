"""
Счётчик событий во временном окне поверх журнальной модели.

Журнал только дополняется (append-only), запись никогда не обновляется.
Количество событий в окне восстанавливается запросом count_since,
старые записи удаляются через prune.

Используется:
- CheckoutRateLimiter (orders.CheckoutAttempt)
- LoginLockoutService для очистки устаревших LoginAttempt
"""

from datetime import datetime
from typing import Any, Optional, Type

from django.db import models


class TimedCounter:
    """
    Обёртка над моделью-журналом.

    Args:
        model: Модель журнала
        key_field: Поле ключа (например, 'user')
        time_field: Поле времени события
    """

    def __init__(
            self,
            model: Type[models.Model],
            key_field: str,
            time_field: str = 'created_at'
    ):
        self.model = model
        self.key_field = key_field
        self.time_field = time_field

    def _for_key(self, key: Any) -> models.QuerySet:
        return self.model.objects.filter(**{self.key_field: key})

    def append(self, key: Any, at: datetime) -> models.Model:
        """Добавить событие (атомарный INSERT)."""
        return self.model.objects.create(**{
            self.key_field: key,
            self.time_field: at,
        })

    def count_since(self, key: Any, since: datetime) -> int:
        """Количество событий ключа с момента since (включительно)."""
        return self._for_key(key).filter(
            **{f'{self.time_field}__gte': since}
        ).count()

    def timestamps_since(self, key: Any, since: datetime) -> list:
        """Времена событий ключа с момента since, от старых к новым."""
        return list(
            self._for_key(key).filter(
                **{f'{self.time_field}__gte': since}
            ).order_by(self.time_field).values_list(self.time_field, flat=True)
        )

    def oldest_since(self, key: Any, since: datetime) -> Optional[datetime]:
        """Самое старое событие ключа в окне."""
        timestamps = self.timestamps_since(key, since)
        return timestamps[0] if timestamps else None

    def prune(self, before: datetime) -> int:
        """Удалить записи старше before. Возвращает количество удалённых."""
        deleted, _ = self.model.objects.filter(
            **{f'{self.time_field}__lt': before}
        ).delete()
        return deleted
