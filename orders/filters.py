# apps/orders/filters.py
"""Фильтры для orders."""

import django_filters

from .models import Order


class OrderFilter(django_filters.FilterSet):
    """
    Фильтр заказов.

    Параметры:
    - status: статус заказа
    - customer: ID покупателя
    - is_suspicious: только подозрительные (true/false)
    - created_from / created_to: период создания
    """

    status = django_filters.CharFilter(field_name="status")
    customer = django_filters.NumberFilter(field_name="customer_id")
    is_suspicious = django_filters.BooleanFilter(field_name="is_suspicious")
    created_from = django_filters.DateTimeFilter(
        field_name="created_at",
        lookup_expr="gte"
    )
    created_to = django_filters.DateTimeFilter(
        field_name="created_at",
        lookup_expr="lte"
    )

    class Meta:
        model = Order
        fields = ("status", "customer", "is_suspicious")
