# notifications/tasks.py
"""
Celery задачи для уведомлений.

- Отправка email по сохранённому уведомлению
- Очистка старых прочитанных уведомлений
"""

import logging
from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def send_email_notification_task(self, notification_id: int):
    """
    Отправить уведомление на email получателя.

    Args:
        notification_id: ID уведомления в базе
    """
    from django.conf import settings
    from django.core.mail import send_mail
    from .models import Notification

    try:
        notification = Notification.objects.select_related('user').get(id=notification_id)
    except Notification.DoesNotExist:
        logger.error(f"Уведомление #{notification_id} не найдено")
        return

    if not notification.user.email:
        logger.warning(f"У пользователя {notification.user_id} нет email")
        return

    try:
        send_mail(
            subject=notification.title,
            message=notification.message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[notification.user.email],
            fail_silently=False,
        )
    except Exception as exc:
        logger.error(f"Ошибка отправки email #{notification_id}: {exc}")
        raise self.retry(exc=exc)

    notification.is_emailed = True
    notification.save(update_fields=['is_emailed'])

    logger.info(f"Email уведомления #{notification_id} отправлен пользователю {notification.user_id}")


@shared_task
def cleanup_old_notifications(days: int = 30):
    """
    Удалить старые прочитанные уведомления.

    Запускается периодически через Celery Beat.
    """
    from datetime import timedelta
    from django.utils import timezone
    from .models import Notification

    threshold = timezone.now() - timedelta(days=days)

    deleted, _ = Notification.objects.filter(
        is_read=True,
        created_at__lt=threshold
    ).delete()

    logger.info(f"Удалено {deleted} старых уведомлений")
    return deleted
