# apps/orders/serializers.py
"""Сериализаторы корзины и заказов."""

from rest_framework import serializers

from products.models import Product, StockCategory

from .models import CartItem, Order, OrderHistory, OrderItem


# =============================================================================
# КОРЗИНА
# =============================================================================

class CartItemSerializer(serializers.ModelSerializer):
    """Строка корзины."""

    product_name = serializers.CharField(source='product.name', read_only=True)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    subtotal = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = CartItem
        fields = [
            'id',
            'product',
            'product_name',
            'category',
            'quantity',
            'unit_price',
            'subtotal',
        ]
        read_only_fields = fields


class CartAddSerializer(serializers.Serializer):
    """
    Добавление в корзину.

    Body: {"product_id": 1, "category": "Kilo", "quantity": "1.5"}
    """

    product_id = serializers.PrimaryKeyRelatedField(
        queryset=Product.objects.filter(is_active=True),
        source='product'
    )
    category = serializers.ChoiceField(choices=StockCategory.choices)
    quantity = serializers.DecimalField(max_digits=12, decimal_places=4)


class CartUpdateSerializer(serializers.Serializer):
    """Изменение количества строки корзины."""

    quantity = serializers.DecimalField(max_digits=12, decimal_places=4)


# =============================================================================
# ЗАКАЗЫ
# =============================================================================

class OrderItemSerializer(serializers.ModelSerializer):
    """Позиция заказа (списание с партии)."""

    product_name = serializers.CharField(source='product.name', read_only=True)
    member_id = serializers.IntegerField(source='stock.member_id', read_only=True)

    class Meta:
        model = OrderItem
        fields = [
            'id',
            'product',
            'product_name',
            'category',
            'stock',
            'member_id',
            'quantity',
            'unit_price',
            'total',
        ]
        read_only_fields = fields


class OrderHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderHistory
        fields = ['id', 'old_status', 'new_status', 'changed_by', 'comment', 'created_at']
        read_only_fields = fields


class CustomerOrderSerializer(serializers.ModelSerializer):
    """
    Заказ для покупателя.

    Без пометок детектора и заметок админа.
    """

    status_display = serializers.CharField(source='get_status_display', read_only=True)
    items = OrderItemSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = ['id', 'status', 'status_display', 'total_amount', 'items', 'created_at']
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Заказ в списке (админ)."""

    customer_name = serializers.CharField(source='customer.name', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = Order
        fields = [
            'id',
            'customer',
            'customer_name',
            'status',
            'status_display',
            'total_amount',
            'is_suspicious',
            'suspicious_reason',
            'is_merged',
            'linked_merged_order',
            'created_at',
        ]
        read_only_fields = fields


class OrderDetailSerializer(OrderListSerializer):
    """Заказ с позициями и историей."""

    items = OrderItemSerializer(many=True, read_only=True)
    history = OrderHistorySerializer(many=True, read_only=True)

    class Meta(OrderListSerializer.Meta):
        fields = OrderListSerializer.Meta.fields + [
            'admin',
            'admin_notes',
            'merged_into',
            'items',
            'history',
            'updated_at',
        ]
        read_only_fields = fields


# =============================================================================
# ACTIONS
# =============================================================================

class OrderGroupRejectSerializer(serializers.Serializer):
    """Body: {"order_ids": [1, 2], "reason": "..."}"""

    order_ids = serializers.ListField(child=serializers.IntegerField(min_value=1), min_length=1)
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class OrderGroupMergeSerializer(serializers.Serializer):
    """Body: {"order_ids": [1, 2], "notes": "..."}"""

    order_ids = serializers.ListField(child=serializers.IntegerField(min_value=1), min_length=2)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class OrderGroupApproveSerializer(serializers.Serializer):
    """Body: {"order_ids": [1, 2], "notes": "..."}"""

    order_ids = serializers.ListField(child=serializers.IntegerField(min_value=1), min_length=1)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class OrderDecisionSerializer(serializers.Serializer):
    """Body одиночного решения: {"notes": "..."}"""

    notes = serializers.CharField(required=False, allow_blank=True, default='')
