# apps/products/serializers.py
"""Сериализаторы для products."""

from rest_framework import serializers

from .models import Product, Stock, StockCategory
from .services import StockService


class ProductSerializer(serializers.ModelSerializer):
    """
    Товар с остатками по категориям.

    availability: {"Kilo": "12.50", "Pc": "40.00"}
    """

    availability = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = [
            'id',
            'name',
            'description',
            'price_kilo',
            'price_pc',
            'price_tali',
            'availability',
        ]

    def get_availability(self, obj: Product) -> dict:
        return {
            category: str(quantity)
            for category, quantity in StockService.get_availability(obj).items()
        }


class StockSerializer(serializers.ModelSerializer):
    """Партия (для админа и члена кооператива)."""

    product_name = serializers.CharField(source='product.name', read_only=True)
    member_name = serializers.CharField(source='member.name', read_only=True)

    class Meta:
        model = Stock
        fields = [
            'id',
            'product',
            'product_name',
            'member',
            'member_name',
            'category',
            'quantity',
            'initial_quantity',
            'created_at',
        ]
        read_only_fields = fields


class StockCreateSerializer(serializers.Serializer):
    """Внесение партии админом."""

    product_id = serializers.PrimaryKeyRelatedField(
        queryset=Product.objects.filter(is_active=True),
        source='product'
    )
    member_id = serializers.IntegerField()
    category = serializers.ChoiceField(choices=StockCategory.choices)
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
