# apps/orders/tasks.py
"""Celery задачи для заказов."""

import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task
def prune_checkout_attempts():
    """
    Удалить записи оформлений старше двух окон лимита.

    Запускается ежечасно через django-celery-beat.
    """
    from .throttles import CheckoutRateLimiter

    deleted = CheckoutRateLimiter().prune()
    logger.info(f"Удалено {deleted} старых записей оформлений")
    return {'deleted': deleted}
