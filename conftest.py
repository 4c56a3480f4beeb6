"""Общие фикстуры pytest."""

from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal

import pytest
from django.contrib.auth.models import Group, Permission
from django.core.cache import cache
from rest_framework.test import APIClient

from core.clock import FixedClock
from orders.services import CartService, CheckoutService
from products.models import Product
from products.services import StockService
from users.models import User, UserRole

PASSWORD = 'correct-horse-42'


@pytest.fixture(autouse=True)
def clear_cache():
    # Счётчики DRF throttling живут в кэше
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def start():
    return datetime(2026, 3, 2, 9, 0, tzinfo=dt_timezone.utc)


@pytest.fixture
def clock(start):
    return FixedClock(start)


# =============================================================================
# ПОЛЬЗОВАТЕЛИ
# =============================================================================

@pytest.fixture
def customer(db):
    return User.objects.create_user(
        email='juan@example.com', password=PASSWORD, name='Juan Dela Cruz', role=UserRole.CUSTOMER
    )


@pytest.fixture
def other_customer(db):
    return User.objects.create_user(
        email='maria@example.com', password=PASSWORD, name='Maria Santos', role=UserRole.CUSTOMER
    )


@pytest.fixture
def admin_user(db):
    return User.objects.create_user(
        email='admin@agricart.local', password=PASSWORD, name='Admin', role=UserRole.ADMIN
    )


@pytest.fixture
def member(db):
    return User.objects.create_user(
        email='pedro@example.com',
        password=PASSWORD,
        name='Pedro Reyes',
        role=UserRole.MEMBER,
        member_id='M-0001',
    )


@pytest.fixture
def reviewer(db):
    """Сотрудник с правом orders.view_order через группу."""
    user = User.objects.create_user(
        email='staff@agricart.local', password=PASSWORD, name='Reviewer', role=UserRole.STAFF
    )
    group = Group.objects.create(name='Order reviewers')
    group.permissions.add(
        Permission.objects.get(content_type__app_label='orders', codename='view_order')
    )
    user.groups.add(group)
    return user


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def auth_client():
    """Клиент с принудительной аутентификацией: auth_client(user)."""
    def make(user):
        client = APIClient()
        client.force_authenticate(user=user)
        return client
    return make


# =============================================================================
# КАТАЛОГ
# =============================================================================

@pytest.fixture
def product(db):
    return Product.objects.create(
        name='Tomato',
        price_kilo=Decimal('100.00'),
        price_pc=Decimal('10.00'),
    )


@pytest.fixture
def other_product(db):
    return Product.objects.create(name='Eggplant', price_kilo=Decimal('80.00'))


@pytest.fixture
def make_stock(member, product, start):
    """Фабрика партий: make_stock('5', minutes=1) - партия внесена на minutes позже start."""
    def make(quantity, category='Kilo', minutes=0, product_=None, member_=None):
        return StockService.add_stock(
            product=product_ or product,
            member=member_ or member,
            category=category,
            quantity=Decimal(quantity),
            created_at=start - timedelta(days=1) + timedelta(minutes=minutes),
        )
    return make


@pytest.fixture
def place_order(product, clock):
    """Корзина из одной строки + оформление на часах clock."""
    def place(user, quantity='1', category='Kilo', product_=None, **kwargs):
        CartService.add_item(user, product_ or product, category, quantity)
        return CheckoutService.checkout(user, clock=clock, **kwargs)
    return place
