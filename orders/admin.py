# apps/orders/admin.py
"""Django Admin для orders."""

from django.contrib import admin

from .detection import SuspiciousOrderDetectionService
from .models import Cart, CartItem, CheckoutAttempt, Order, OrderHistory, OrderItem


class CartItemInline(admin.TabularInline):
    model = CartItem
    extra = 0
    fields = ['product', 'category', 'quantity']


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'updated_at']
    search_fields = ['user__email', 'user__name']
    inlines = [CartItemInline]


class OrderItemInline(admin.TabularInline):
    """Позиции заказа (только чтение: остаток партий меняется только сервисами)."""
    model = OrderItem
    extra = 0
    can_delete = False
    fields = ['product', 'category', 'stock', 'quantity', 'unit_price', 'total']
    readonly_fields = fields


class OrderHistoryInline(admin.TabularInline):
    model = OrderHistory
    extra = 0
    can_delete = False
    fields = ['old_status', 'new_status', 'changed_by', 'comment', 'created_at']
    readonly_fields = fields


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Admin для заказов.

    Подозрительные заказы фильтруются по is_suspicious,
    пометка снимается действием clear_suspicious.
    """

    list_display = [
        'id', 'customer', 'status', 'total_amount', 'is_suspicious', 'is_merged', 'created_at'
    ]
    list_filter = ['status', 'is_suspicious', 'is_merged', 'created_at']
    search_fields = ['id', 'customer__email', 'customer__name', 'suspicious_reason']
    readonly_fields = [
        'customer', 'total_amount', 'is_suspicious', 'suspicious_reason', 'linked_merged_order',
        'is_merged', 'merged_into', 'created_at', 'updated_at'
    ]
    inlines = [OrderItemInline, OrderHistoryInline]
    ordering = ['-created_at']
    actions = ['clear_suspicious']

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('customer')

    def clear_suspicious(self, request, queryset):
        """Снять пометку с выбранных заказов"""
        count = 0
        for order in queryset.filter(is_suspicious=True):
            SuspiciousOrderDetectionService.clear_suspicious_flag(order, cleared_by=request.user)
            count += 1
        self.message_user(request, f'Пометка снята с {count} заказов')

    clear_suspicious.short_description = 'Снять пометку "подозрительный"'


@admin.register(CheckoutAttempt)
class CheckoutAttemptAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'created_at']
    search_fields = ['user__email']
    readonly_fields = ['user', 'created_at']
    ordering = ['-created_at']
