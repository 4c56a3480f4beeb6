from datetime import datetime, timezone as dt_timezone
from decimal import Decimal

import pytest
from rest_framework import status
from rest_framework.views import exception_handler

from core.exceptions import (
    AccountLocked,
    InsufficientStock,
    InvalidCredentials,
    MinimumOrderNotMet,
    RateLimitExceeded,
    humanize_wait,
)


@pytest.mark.parametrize('seconds, expected', [
    (0, '0 seconds'),
    (1, '1 second'),
    (0.2, '1 second'),
    (45, '45 seconds'),
    (59.5, '1 minute'),
    (60, '1 minute'),
    (61, '2 minutes'),
    (600, '10 minutes'),
    (86400, '1440 minutes'),
])
def test_humanize_wait(seconds, expected):
    assert humanize_wait(seconds) == expected


def test_rate_limit_detail_keeps_numbers():
    reset_at = datetime(2026, 3, 2, 9, 10, tzinfo=dt_timezone.utc)
    exc = RateLimitExceeded(limit=3, reset_at=reset_at, retry_after=420)

    assert exc.status_code == status.HTTP_429_TOO_MANY_REQUESTS
    assert exc.detail['retry_after'] == 420
    assert exc.detail['remaining'] == 0
    assert exc.detail['reset_at'] == reset_at.isoformat()
    assert 'up to 3 orders' in exc.detail['error']
    assert '7 minutes' in exc.detail['error']


def test_exception_handler_sets_retry_after():
    exc = AccountLocked(remaining_seconds=60, failed_attempts=3, lock_level=1)

    response = exception_handler(exc, {})

    assert response.status_code == status.HTTP_423_LOCKED
    assert response['Retry-After'] == '60'
    assert response.data['code'] == 'account_locked'
    assert response.data['lock_level'] == 1
    assert response.data['lock_expires_at'] is None


def test_minimum_order_message():
    exc = MinimumOrderNotMet(minimum=Decimal('75'), total=Decimal('50'))

    assert str(exc) == (
        'Minimum order requirement is ₱75.00. Your current total is ₱50.00. '
        'Please add more items to your cart.'
    )
    assert exc.status_code == status.HTTP_400_BAD_REQUEST


def test_insufficient_stock_payload():
    exc = InsufficientStock(
        product_id=7, product_name='Tomato', category='Kilo',
        requested=Decimal('12'), available=Decimal('10.5'),
    )

    assert exc.status_code == status.HTTP_409_CONFLICT
    assert exc.detail == {
        'error': 'Not enough stock for Tomato (Kilo)',
        'code': 'insufficient_stock',
        'product_id': 7,
        'product_name': 'Tomato',
        'category': 'Kilo',
        'requested': '12',
        'available': '10.5',
    }


def test_invalid_credentials_default_message():
    exc = InvalidCredentials(attempts_remaining=2)

    assert exc.detail['error'] == 'These credentials do not match our records.'
    assert exc.detail['attempts_remaining'] == 2
