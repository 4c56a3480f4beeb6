# apps/orders/models.py
"""
Модели корзины и заказов.

МОДЕЛИ:
- Cart / CartItem: Корзина покупателя (строка на пару товар + категория)
- Order: Заказ покупателя
- OrderItem: Списание с конкретной партии (след распределения по FIFO)
- OrderHistory: История изменений заказов
- CheckoutAttempt: Журнал успешных оформлений (для лимита оформлений)

WORKFLOW:
1. Покупатель оформляет корзину -> Order(status=PENDING), партии списаны
2. Детектор может пометить заказ подозрительным (is_suspicious)
3. Админ одобряет / отклоняет / объединяет группу подозрительных заказов
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from products.models import StockCategory


# =============================================================================
# СТАТУСЫ ЗАКАЗОВ
# =============================================================================

class OrderStatus(models.TextChoices):
    """
    Статусы заказа.

    MERGED: заказ поглощён другим заказом при объединении (см. merged_into).
    """
    PENDING = 'pending', _('В ожидании')
    APPROVED = 'approved', _('Одобрен')
    REJECTED = 'rejected', _('Отклонён')
    DELAYED = 'delayed', _('Отложен')
    CANCELLED = 'cancelled', _('Отменён')
    DELIVERED = 'delivered', _('Доставлен')
    MERGED = 'merged', _('Объединён')


# Заказы, которые админ ещё может отклонить или объединить
OPEN_STATUSES = (OrderStatus.PENDING, OrderStatus.DELAYED)


# =============================================================================
# КОРЗИНА
# =============================================================================

class Cart(models.Model):
    """Корзина покупателя (одна на пользователя, создаётся лениво)."""

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='cart',
        verbose_name='Покупатель'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'carts'
        verbose_name = 'Корзина'
        verbose_name_plural = 'Корзины'

    def __str__(self) -> str:
        return f"Корзина {self.user}"


class CartItem(models.Model):
    """Строка корзины."""

    cart = models.ForeignKey(
        Cart,
        on_delete=models.CASCADE,
        related_name='items',
        verbose_name='Корзина'
    )

    product = models.ForeignKey(
        'products.Product',
        on_delete=models.CASCADE,
        related_name='cart_items',
        verbose_name='Товар'
    )

    category = models.CharField(
        max_length=8,
        choices=StockCategory.choices,
        verbose_name='Категория'
    )

    quantity = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))],
        verbose_name='Количество'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'cart_items'
        verbose_name = 'Строка корзины'
        verbose_name_plural = 'Строки корзины'
        ordering = ['created_at', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['cart', 'product', 'category'],
                name='cart_item_unique_product_category',
            ),
        ]

    def __str__(self) -> str:
        return f"{self.product.name} ({self.category}) x {self.quantity}"

    @property
    def unit_price(self) -> Decimal:
        return self.product.price_for(self.category) or Decimal('0')

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


# =============================================================================
# ЗАКАЗЫ
# =============================================================================

class Order(models.Model):
    """
    Заказ покупателя.

    ПОДОЗРИТЕЛЬНЫЕ ЗАКАЗЫ:
    - is_suspicious / suspicious_reason ставит детектор
    - Снимается только админом (clear_suspicious_flag / reject / merge)
    - linked_merged_order: объединённый заказ, вслед за которым был сделан этот

    ОБЪЕДИНЕНИЕ:
    - Основной заказ: is_merged=True, позиции остальных перенесены в него
    - Остальные: status=MERGED, merged_into -> основной
    """

    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='orders',
        verbose_name='Покупатель'
    )

    status = models.CharField(
        max_length=16,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
        verbose_name='Статус'
    )

    total_amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=Decimal('0'),
        validators=[MinValueValidator(Decimal('0'))],
        verbose_name='Сумма заказа'
    )

    admin = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='processed_orders',
        verbose_name='Обработал'
    )

    admin_notes = models.TextField(blank=True, verbose_name='Заметки админа')

    # Детектор подозрительных заказов
    is_suspicious = models.BooleanField(default=False, db_index=True, verbose_name='Подозрительный')
    suspicious_reason = models.TextField(null=True, blank=True, verbose_name='Причина подозрения')

    linked_merged_order = models.ForeignKey(
        'self',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='follow_up_orders',
        verbose_name='Связанный объединённый заказ'
    )

    # Объединение
    is_merged = models.BooleanField(default=False, verbose_name='Результат объединения')

    merged_into = models.ForeignKey(
        'self',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='merged_orders',
        verbose_name='Объединён в'
    )

    # Время оформления: окна лимита и детектора считаются от него
    created_at = models.DateTimeField(default=timezone.now, db_index=True, verbose_name='Дата создания')
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'orders'
        ordering = ['-created_at']
        verbose_name = 'Заказ'
        verbose_name_plural = 'Заказы'
        indexes = [
            models.Index(fields=['customer', '-created_at']),
            models.Index(fields=['status', '-created_at']),
            models.Index(fields=['is_suspicious', 'status']),
        ]

    def __str__(self) -> str:
        return f"Заказ #{self.id} - {self.customer} ({self.get_status_display()})"

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    def recalculate_total(self, save: bool = True) -> Decimal:
        """Пересчитать сумму по позициям."""
        total = self.items.aggregate(total=models.Sum('total'))['total'] or Decimal('0')
        self.total_amount = total
        if save:
            self.save(update_fields=['total_amount', 'updated_at'])
        return total


class OrderItem(models.Model):
    """
    Позиция заказа: списание с одной партии.

    Строка корзины, покрытая несколькими партиями, даёт несколько позиций.
    По позициям остаток возвращается в партии при отклонении заказа.
    """

    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name='items',
        verbose_name='Заказ'
    )

    stock = models.ForeignKey(
        'products.Stock',
        on_delete=models.PROTECT,
        related_name='order_items',
        verbose_name='Партия'
    )

    product = models.ForeignKey(
        'products.Product',
        on_delete=models.PROTECT,
        related_name='order_items',
        verbose_name='Товар'
    )

    category = models.CharField(
        max_length=8,
        choices=StockCategory.choices,
        verbose_name='Категория'
    )

    quantity = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))],
        verbose_name='Количество'
    )

    unit_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        verbose_name='Цена за единицу'
    )

    total = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        verbose_name='Сумма'
    )

    class Meta:
        db_table = 'order_items'
        verbose_name = 'Позиция заказа'
        verbose_name_plural = 'Позиции заказа'
        ordering = ['id']

    def __str__(self) -> str:
        return f"{self.product.name} ({self.category}) x {self.quantity} [партия #{self.stock_id}]"

    def save(self, *args, **kwargs) -> None:
        self.total = (self.unit_price * self.quantity).quantize(Decimal('0.01'))
        super().save(*args, **kwargs)


class OrderHistory(models.Model):
    """
    История изменений заказов.

    Логирует все действия: создание, пометку подозрительным,
    снятие пометки, отклонение и объединение.
    """

    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name='history',
        verbose_name='Заказ'
    )

    old_status = models.CharField(max_length=16, blank=True, verbose_name='Старый статус')
    new_status = models.CharField(max_length=16, blank=True, verbose_name='Новый статус')

    changed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='order_changes',
        verbose_name='Кто изменил'
    )

    comment = models.TextField(blank=True, verbose_name='Комментарий')

    created_at = models.DateTimeField(auto_now_add=True, verbose_name='Дата')

    class Meta:
        db_table = 'order_history'
        ordering = ['-created_at']
        verbose_name = 'История заказа'
        verbose_name_plural = 'История заказов'
        indexes = [
            models.Index(fields=['order', '-created_at']),
        ]

    def __str__(self) -> str:
        return f"Заказ #{self.order_id}: {self.old_status} → {self.new_status}"


# =============================================================================
# ЛИМИТ ОФОРМЛЕНИЙ
# =============================================================================

class CheckoutAttempt(models.Model):
    """
    Успешное оформление заказа (журнал, только дополняется).

    Неудачные оформления сюда не пишутся: лимит считает только
    реально созданные заказы.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='checkout_attempts',
        verbose_name='Покупатель'
    )

    created_at = models.DateTimeField(default=timezone.now, verbose_name='Время оформления')

    class Meta:
        db_table = 'checkout_attempts'
        ordering = ['-created_at']
        verbose_name = 'Оформление заказа'
        verbose_name_plural = 'Оформления заказов'
        indexes = [
            models.Index(fields=['user', 'created_at']),
            models.Index(fields=['created_at']),
        ]

    def __str__(self) -> str:
        return f"{self.user} @ {self.created_at:%Y-%m-%d %H:%M:%S}"
