# apps/notifications/services.py
"""
Сервисы для работы с уведомлениями.

dispatch() - единая точка отправки: сохраняет уведомление и,
при необходимости, ставит email в очередь Celery после коммита.
Ошибки доставки логируются и не пробрасываются вызывающему коду.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone

from .models import Notification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationPayload:
    """Готовое содержимое уведомления."""
    notification_type: str
    title: str
    message: str
    related_object_type: Optional[str] = None
    related_object_id: Optional[int] = None
    send_email: bool = False


class NotificationService:
    """
    Сервис для создания и управления уведомлениями.
    """

    @classmethod
    def dispatch(cls, user, payload: NotificationPayload) -> Optional[Notification]:
        """
        Отправить уведомление пользователю.

        Args:
            user: Получатель
            payload: Содержимое

        Returns:
            Notification или None при ошибке доставки
        """
        try:
            with transaction.atomic():
                notification = Notification.objects.create(
                    user=user,
                    notification_type=payload.notification_type,
                    title=payload.title,
                    message=payload.message,
                    related_object_type=payload.related_object_type,
                    related_object_id=payload.related_object_id,
                )
        except Exception as e:
            logger.error(f"Ошибка отправки уведомления пользователю {user.id}: {e}")
            return None

        if payload.send_email:
            transaction.on_commit(lambda: cls._queue_email(notification))

        logger.info(f"Создано уведомление #{notification.id} для пользователя {user.id}")
        return notification

    @classmethod
    def _queue_email(cls, notification: Notification) -> None:
        from .tasks import send_email_notification_task

        try:
            send_email_notification_task.delay(notification.id)
        except Exception as e:
            logger.error(f"Не удалось поставить email #{notification.id} в очередь: {e}")

    @classmethod
    def get_user_notifications(
            cls,
            user,
            unread_only: bool = False,
            notification_type: Optional[str] = None
    ) -> QuerySet[Notification]:
        """
        Получить уведомления пользователя.

        Args:
            user: Пользователь
            unread_only: Только непрочитанные
            notification_type: Фильтр по типу

        Returns:
            QuerySet уведомлений
        """
        queryset = Notification.objects.filter(user=user)

        if unread_only:
            queryset = queryset.filter(is_read=False)

        if notification_type:
            queryset = queryset.filter(notification_type=notification_type)

        return queryset.order_by('-created_at')

    @classmethod
    def get_unread_count(cls, user) -> int:
        """Количество непрочитанных уведомлений."""
        return Notification.objects.filter(user=user, is_read=False).count()

    @classmethod
    @transaction.atomic
    def mark_as_read(cls, notification_id: int, user) -> Optional[Notification]:
        """Отметить уведомление как прочитанное."""
        try:
            notification = Notification.objects.get(id=notification_id, user=user)
        except Notification.DoesNotExist:
            return None
        notification.mark_as_read()
        return notification

    @classmethod
    @transaction.atomic
    def mark_all_as_read(cls, user) -> int:
        """Отметить все уведомления как прочитанные."""
        count = Notification.objects.filter(
            user=user,
            is_read=False
        ).update(
            is_read=True,
            read_at=timezone.now()
        )

        logger.info(f"Отмечено как прочитанные {count} уведомлений для пользователя {user.id}")
        return count
