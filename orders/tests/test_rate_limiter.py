from datetime import timedelta
from decimal import Decimal

import pytest

from core.exceptions import InsufficientStock, RateLimitExceeded
from orders.models import CheckoutAttempt
from orders.services import CartService, CheckoutService
from orders.throttles import CheckoutRateLimiter, RateLimitPolicy, evaluate_rate_limit
from products.models import Stock

POLICY = RateLimitPolicy(max_attempts=3, window=timedelta(minutes=10))


def minutes(start, *offsets):
    return [start + timedelta(minutes=m) for m in offsets]


def test_fourth_checkout_is_denied(start):
    status = evaluate_rate_limit(minutes(start, 0, 1, 2), start + timedelta(minutes=3), POLICY)

    assert not status.allowed
    assert status.used == 3
    assert status.remaining == 0
    assert status.reset_at == start + timedelta(minutes=10)
    assert status.retry_after == 7 * 60 + 1


def test_checkout_exactly_window_old_still_counts(start):
    status = evaluate_rate_limit(minutes(start, 0, 1, 2), start + timedelta(minutes=10), POLICY)

    assert not status.allowed
    assert status.used == 3
    assert status.reset_at == start + timedelta(minutes=10)
    assert status.retry_after == 1


def test_slot_frees_right_after_reset_at(start):
    now = start + timedelta(minutes=10, microseconds=1)

    status = evaluate_rate_limit(minutes(start, 0, 1, 2), now, POLICY)

    assert status.allowed
    assert status.used == 2
    assert status.remaining == 1
    assert status.reset_at == start + timedelta(minutes=11)


def test_one_second_before_release(start):
    now = start + timedelta(minutes=10) - timedelta(seconds=1)

    status = evaluate_rate_limit(minutes(start, 0, 1, 2), now, POLICY)

    assert not status.allowed
    assert status.retry_after == 2


def test_no_checkouts(start):
    status = evaluate_rate_limit([], start, POLICY)

    assert status.allowed
    assert status.remaining == 3
    assert status.reset_at is None
    assert status.retry_after == 0


@pytest.mark.django_db
def test_limiter_frees_exactly_one_slot(customer, clock, start):
    limiter = CheckoutRateLimiter(policy=POLICY, clock=clock)

    for _ in range(3):
        limiter.check(customer)
        limiter.record(customer)
        clock.advance(timedelta(minutes=1))

    with pytest.raises(RateLimitExceeded) as exc_info:
        limiter.check(customer)
    assert exc_info.value.wait == 7 * 60 + 1

    clock.moment = start + timedelta(minutes=10)
    with pytest.raises(RateLimitExceeded):
        limiter.check(customer)

    clock.moment = start + timedelta(minutes=10, seconds=1)
    limiter.check(customer)
    limiter.record(customer)

    with pytest.raises(RateLimitExceeded):
        limiter.check(customer)


@pytest.mark.django_db
def test_record_prunes_old_attempts(customer, clock):
    limiter = CheckoutRateLimiter(policy=POLICY, clock=clock)
    limiter.record(customer)

    clock.advance(timedelta(minutes=25))
    limiter.record(customer)

    assert CheckoutAttempt.objects.count() == 1


@pytest.mark.django_db
def test_failed_checkout_does_not_use_a_slot(customer, product, make_stock, clock):
    lot = make_stock('5')
    CartService.add_item(customer, product, 'Kilo', '2')
    Stock.objects.filter(pk=lot.pk).update(quantity=Decimal('1'))

    limiter = CheckoutRateLimiter(policy=POLICY, clock=clock)
    with pytest.raises(InsufficientStock):
        CheckoutService.checkout(customer, rate_limiter=limiter, clock=clock)

    assert limiter.status(customer).used == 0
    assert CheckoutAttempt.objects.count() == 0
