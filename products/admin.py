# apps/products/admin.py
"""Django Admin для products."""

from django.contrib import admin

from .models import Product, Stock


class StockInline(admin.TabularInline):
    """Инлайн партий товара."""
    model = Stock
    extra = 0
    fields = ['member', 'category', 'quantity', 'initial_quantity', 'created_at']
    readonly_fields = ['quantity', 'initial_quantity', 'created_at']


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    """Admin для товаров."""

    list_display = ['name', 'price_kilo', 'price_pc', 'price_tali', 'is_active', 'created_at']
    list_filter = ['is_active']
    search_fields = ['name']
    inlines = [StockInline]


@admin.register(Stock)
class StockAdmin(admin.ModelAdmin):
    """
    Admin для партий.

    Остаток только для чтения: меняется списанием при оформлении.
    """

    list_display = ['id', 'product', 'category', 'member', 'quantity', 'initial_quantity', 'created_at']
    list_filter = ['category', 'created_at']
    search_fields = ['product__name', 'member__name', 'member__member_id']
    readonly_fields = ['quantity', 'updated_at']
    ordering = ['-created_at']

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('product', 'member')
