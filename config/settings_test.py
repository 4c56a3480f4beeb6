"""
Настройки для pytest.

SQLite в памяти, кэш в памяти, Celery без брокера.
"""

from .settings import *  # noqa: F401,F403

DEBUG = False

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
    }
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'

SECURE_SSL_REDIRECT = False

STORAGES = {
    'default': {
        'BACKEND': 'django.core.files.storage.FileSystemStorage',
    },
    'staticfiles': {
        'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage',
    },
}

# Без глобальных throttle: тесты делают много анонимных запросов
REST_FRAMEWORK = {
    **REST_FRAMEWORK,  # noqa: F405
    'DEFAULT_THROTTLE_CLASSES': [],
}

CHECKOUT_RATE_LIMIT = {'MAX_ATTEMPTS': 3, 'WINDOW_MINUTES': 10}
LOGIN_LOCKOUT = {'MAX_FAILED_ATTEMPTS': 3, 'DURATIONS_MINUTES': [1, 3, 5, 1440], 'RETENTION_DAYS': 30}
SUSPICIOUS_ORDERS = {'WINDOW_MINUTES': 10, 'MIN_ORDERS': 2}
MINIMUM_ORDER_AMOUNT = '75.00'

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {
        'console': {'class': 'logging.StreamHandler'},
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
}
