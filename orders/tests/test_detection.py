from datetime import timedelta
from decimal import Decimal

import pytest

from notifications.models import Notification, NotificationType
from orders.detection import (
    DetectionPolicy,
    OrderSnapshot,
    SuspiciousOrderDetectionService,
    find_suspicious_cluster,
    is_fresh_window,
)
from orders.models import Order, OrderHistory, OrderStatus

POLICY = DetectionPolicy(window=timedelta(minutes=10), min_orders=2)


def snapshot(start, id, minute, status=OrderStatus.PENDING, total='100', **flags):
    return OrderSnapshot(
        id=id,
        created_at=start + timedelta(minutes=minute),
        status=status,
        total_amount=Decimal(total),
        **flags,
    )


# =============================================================================
# РЕШЕНИЕ (БЕЗ БАЗЫ)
# =============================================================================

def test_window_is_inclusive(start):
    trigger = snapshot(start, 2, 10)

    verdict = find_suspicious_cluster(trigger, [snapshot(start, 1, 0)], POLICY)

    assert verdict.order_ids == (1, 2)
    assert verdict.reason == '2 orders placed within 10 minutes (Total: ₱200.00)'


def test_order_outside_window_is_ignored(start):
    trigger = snapshot(start, 2, 10, total='50')
    old = OrderSnapshot(
        id=1, created_at=start - timedelta(seconds=1), status=OrderStatus.PENDING, total_amount=Decimal('100')
    )

    assert find_suspicious_cluster(trigger, [old], POLICY) is None


def test_closed_orders_do_not_count(start):
    trigger = snapshot(start, 3, 5)
    others = [
        snapshot(start, 1, 0, status=OrderStatus.REJECTED),
        snapshot(start, 2, 1, status=OrderStatus.APPROVED),
    ]

    assert find_suspicious_cluster(trigger, others, POLICY) is None


def test_only_pending_trigger_is_checked(start):
    trigger = snapshot(start, 2, 5, status=OrderStatus.DELAYED)

    assert find_suspicious_cluster(trigger, [snapshot(start, 1, 0)], POLICY) is None


def test_order_after_merged_order_flags_only_itself(start):
    trigger = snapshot(start, 9, 4, total='80')
    merged = snapshot(start, 5, 0, status=OrderStatus.APPROVED, total='300', is_merged=True)

    verdict = find_suspicious_cluster(trigger, [merged], POLICY)

    assert verdict.order_ids == (9,)
    assert verdict.linked_merged_order_id == 5
    assert verdict.is_single
    assert verdict.total_amount == Decimal('80')
    assert verdict.reason == 'New order placed 4 minutes after merged & approved order #5'


def test_three_orders_cluster(start):
    trigger = snapshot(start, 3, 8, total='75')
    others = [snapshot(start, 1, 0), snapshot(start, 2, 5, status=OrderStatus.DELAYED)]

    verdict = find_suspicious_cluster(trigger, others, POLICY)

    assert verdict.order_ids == (1, 2, 3)
    assert verdict.total_amount == Decimal('275')
    assert verdict.reason.startswith('3 orders placed within 10 minutes')


def test_fresh_window(start):
    stale = snapshot(start, 1, 0, is_suspicious=True)

    assert is_fresh_window(snapshot(start, 2, 11), [stale], POLICY)
    assert not is_fresh_window(snapshot(start, 2, 9), [stale], POLICY)
    assert not is_fresh_window(snapshot(start, 2, 11), [snapshot(start, 1, 0)], POLICY)


# =============================================================================
# СЕРВИС
# =============================================================================

@pytest.mark.django_db
def test_two_orders_three_minutes_apart_are_flagged(customer, make_stock, place_order, clock):
    make_stock('20')
    first = place_order(customer, '1').order
    clock.advance(timedelta(minutes=3))
    result = place_order(customer, '1.5')

    assert result.suspicion is not None
    for order in (first, result.order):
        order.refresh_from_db()
        assert order.is_suspicious is True
        assert order.suspicious_reason == '2 orders placed within 10 minutes (Total: ₱250.00)'
    assert OrderHistory.objects.filter(comment__startswith='Помечен подозрительным').count() == 2


@pytest.mark.django_db
def test_later_order_starts_a_new_window(customer, make_stock, place_order, clock):
    make_stock('20')
    place_order(customer, '1')
    clock.advance(timedelta(minutes=3))
    place_order(customer, '1')
    clock.advance(timedelta(minutes=15))

    third = place_order(customer, '1').order

    assert third.is_suspicious is False
    assert Order.objects.filter(is_suspicious=True).count() == 2


@pytest.mark.django_db
def test_other_customers_orders_are_not_related(customer, other_customer, make_stock, place_order):
    make_stock('20')
    place_order(customer, '1')

    result = place_order(other_customer, '1')

    assert result.suspicion is None


@pytest.mark.django_db
def test_order_after_merge_links_merged_order(customer, admin_user, make_stock, place_order, clock):
    from orders.services import SuspiciousGroupService

    make_stock('20')
    first = place_order(customer, '1').order
    clock.advance(timedelta(minutes=1))
    second = place_order(customer, '1').order
    primary = SuspiciousGroupService.merge_group([first.id, second.id], admin_user)
    clock.advance(timedelta(minutes=2))

    third = place_order(customer, '1').order

    assert third.is_suspicious is True
    assert third.linked_merged_order_id == primary.id
    primary.refresh_from_db()
    assert primary.is_suspicious is False


@pytest.mark.django_db
def test_clearing_one_order_keeps_sibling_flagged(customer, admin_user, make_stock, place_order, clock):
    make_stock('20')
    first = place_order(customer, '1').order
    clock.advance(timedelta(minutes=3))
    second = place_order(customer, '1').order

    SuspiciousOrderDetectionService.clear_suspicious_flag(first, cleared_by=admin_user)
    history_count = OrderHistory.objects.filter(order=first).count()
    SuspiciousOrderDetectionService.clear_suspicious_flag(first, cleared_by=admin_user)

    first.refresh_from_db()
    second.refresh_from_db()
    assert first.is_suspicious is False
    assert first.suspicious_reason is None
    assert second.is_suspicious is True
    assert OrderHistory.objects.filter(order=first).count() == history_count
    assert list(SuspiciousOrderDetectionService.get_suspicious_orders()) == [second]


@pytest.mark.django_db
def test_reviewers_are_notified(
        customer, admin_user, reviewer, make_stock, place_order, clock,
        django_capture_on_commit_callbacks
):
    make_stock('20')

    with django_capture_on_commit_callbacks(execute=True):
        place_order(customer, '1')
        clock.advance(timedelta(minutes=3))
        second = place_order(customer, '1').order

    for user in (admin_user, reviewer):
        notification = Notification.objects.get(user=user, notification_type=NotificationType.SUSPICIOUS_ORDER)
        assert notification.related_object_id == second.id
        assert '2 orders placed within 10 minutes' in notification.message

    assert not Notification.objects.filter(
        user=customer, notification_type=NotificationType.SUSPICIOUS_ORDER
    ).exists()
    assert Notification.objects.filter(
        user=customer, notification_type=NotificationType.ORDER_PLACED
    ).count() == 2


@pytest.mark.django_db
def test_detector_failure_does_not_cancel_order(customer, make_stock, place_order, caplog, monkeypatch):
    make_stock('20')
    detector = SuspiciousOrderDetectionService()

    def broken(order):
        raise RuntimeError('database went away')

    monkeypatch.setattr(detector, 'check_for_suspicious_pattern', broken)

    result = place_order(customer, '1', detector=detector)

    assert result.suspicion is None
    assert Order.objects.get(pk=result.order.pk).status == OrderStatus.PENDING
    assert f'Suspicion check failed for order #{result.order.id}' in caplog.text


@pytest.mark.django_db
def test_order_after_approved_merge_names_it(customer, admin_user, make_stock, place_order, clock):
    from orders.services import SuspiciousGroupService

    make_stock('20')
    first = place_order(customer, '1').order
    clock.advance(timedelta(minutes=1))
    second = place_order(customer, '1').order
    primary = SuspiciousGroupService.merge_group([first.id, second.id], admin_user)
    SuspiciousGroupService.approve_group([primary.id], admin_user)
    clock.advance(timedelta(minutes=2))

    third = place_order(customer, '1').order

    assert third.is_suspicious is True
    assert third.linked_merged_order_id == primary.id
    assert third.suspicious_reason == (
        f'New order placed 3 minutes after merged & approved order #{primary.id}'
    )


@pytest.mark.django_db(transaction=True)
def test_notification_failure_keeps_verdict(customer, make_stock, place_order, clock, caplog, monkeypatch):
    from users.services import RoleLookupService

    def broken(*args, **kwargs):
        raise RuntimeError('permission lookup failed')

    monkeypatch.setattr(RoleLookupService, 'users_with_role_or_permission', broken)
    make_stock('20')
    first = place_order(customer, '1').order
    clock.advance(timedelta(minutes=3))

    result = place_order(customer, '1')

    assert result.suspicion is not None
    assert result.suspicion.order_ids == (first.id, result.order.id)
    assert Order.objects.filter(is_suspicious=True).count() == 2
    assert 'Suspicion check failed' not in caplog.text
