# config/celery.py
"""
Celery для проекта Agricart.

Фоновые задачи:
- email уведомления покупателям
- очистка журнала оформлений и ключей блокировки входа
- очистка старых прочитанных уведомлений

Расписание - CELERY_BEAT_SCHEDULE в settings (django-celery-beat).
"""

import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('agricart')

# Настройки Celery в settings начинаются с CELERY_
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()
