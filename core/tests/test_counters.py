from datetime import timedelta

import pytest

from core.counters import TimedCounter
from orders.models import CheckoutAttempt


@pytest.mark.django_db
def test_counter_window_and_prune(customer, other_customer, start):
    counter = TimedCounter(CheckoutAttempt, key_field='user')

    counter.append(customer, start - timedelta(minutes=30))
    counter.append(customer, start - timedelta(minutes=5))
    counter.append(customer, start - timedelta(minutes=1))
    counter.append(other_customer, start - timedelta(minutes=1))

    since = start - timedelta(minutes=10)
    assert counter.count_since(customer, since) == 2
    assert counter.timestamps_since(customer, since) == [
        start - timedelta(minutes=5),
        start - timedelta(minutes=1),
    ]
    assert counter.oldest_since(customer, since) == start - timedelta(minutes=5)
    assert counter.oldest_since(customer, start) is None

    assert counter.prune(start - timedelta(minutes=20)) == 1
    assert CheckoutAttempt.objects.count() == 3
