# apps/users/tasks.py
"""Celery задачи для пользователей."""

import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task
def cleanup_login_attempts(retention_days: int = None):
    """
    Удалить ключи блокировки без активности дольше retention_days.

    Запускается ежедневно через django-celery-beat.
    """
    from .services import LoginLockoutService

    deleted = LoginLockoutService().cleanup(retention_days)
    return {'deleted': deleted}
