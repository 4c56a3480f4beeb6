# apps/users/throttles.py
"""
Throttle классы для эндпоинтов входа.

LoginThrottle - грубый лимит запросов с одного IP поверх блокировки
по ключу (LoginLockoutService). Блокировка считает неудачи по логину,
throttle режет перебор множества логинов с одного адреса.
"""

from rest_framework.throttling import AnonRateThrottle


class LoginThrottle(AnonRateThrottle):
    """
    Throttle для эндпоинта логина.

    30 запросов в минуту с одного IP.
    """
    scope = 'login'
    rate = '30/minute'


class LockoutStatusThrottle(AnonRateThrottle):
    """
    Throttle для статуса блокировки.

    Интерфейс опрашивает статус во время обратного отсчёта.
    """
    scope = 'lockout_status'
    rate = '120/minute'
