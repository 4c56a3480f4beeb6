# apps/notifications/models.py
"""
Модели уведомлений.

ТИПЫ УВЕДОМЛЕНИЙ:
- Подозрительные заказы (админам и держателям права orders.view_order)
- Заказ оформлен (покупателю)
- Изменился статус заказа (покупателю)
"""

from django.conf import settings
from django.db import models
from django.utils import timezone


class NotificationType(models.TextChoices):
    """Типы уведомлений."""
    SUSPICIOUS_ORDER = 'suspicious_order', 'Подозрительный заказ'
    ORDER_PLACED = 'order_placed', 'Заказ оформлен'
    ORDER_STATUS_CHANGED = 'order_status_changed', 'Изменился статус заказа'


class Notification(models.Model):
    """Уведомление пользователя."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='notifications',
        verbose_name='Получатель'
    )

    notification_type = models.CharField(
        max_length=30,
        choices=NotificationType.choices,
        verbose_name='Тип уведомления'
    )

    title = models.CharField(max_length=200, verbose_name='Заголовок')
    message = models.TextField(verbose_name='Сообщение')

    # Связь с объектом (заказ и т.д.)
    related_object_type = models.CharField(
        max_length=50,
        blank=True,
        null=True,
        verbose_name='Тип связанного объекта'
    )

    related_object_id = models.PositiveIntegerField(
        blank=True,
        null=True,
        verbose_name='ID связанного объекта'
    )

    is_read = models.BooleanField(default=False, verbose_name='Прочитано')
    is_emailed = models.BooleanField(default=False, verbose_name='Email отправлен')

    created_at = models.DateTimeField(auto_now_add=True, verbose_name='Создано')
    read_at = models.DateTimeField(blank=True, null=True, verbose_name='Прочитано в')

    class Meta:
        db_table = 'notifications'
        verbose_name = 'Уведомление'
        verbose_name_plural = 'Уведомления'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', '-created_at']),
            models.Index(fields=['user', 'is_read']),
            models.Index(fields=['notification_type']),
        ]

    def __str__(self):
        return f"{self.user} - {self.title}"

    def mark_as_read(self):
        """Отметить как прочитанное."""
        if not self.is_read:
            self.is_read = True
            self.read_at = timezone.now()
            self.save(update_fields=['is_read', 'read_at'])
