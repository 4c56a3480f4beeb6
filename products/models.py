# apps/products/models.py
"""
Модели каталога и складских партий.

МОДЕЛИ:
- Product: Товар каталога с ценами по категориям (Kilo / Pc / Tali)
- Stock: Партия товара, внесённая одним членом кооператива

ПАРТИИ (Stock):
- Каждый член вносит своё количество товара в своей категории
- При оформлении заказа партии списываются по FIFO (старые первыми)
- Остаток партии никогда не уходит ниже нуля
- Пустая партия не удаляется (нужна для истории продаж члена)
"""

from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone


class StockCategory(models.TextChoices):
    """Категории (единицы продажи) товара."""
    KILO = 'Kilo', 'Килограмм'
    PC = 'Pc', 'Штука'
    TALI = 'Tali', 'Тали (связка)'


# =============================================================================
# ТОВАРЫ
# =============================================================================

class Product(models.Model):
    """
    Товар в каталоге.

    Цена задаётся отдельно для каждой категории.
    Если цена категории не задана - товар в этой категории не продаётся.
    """

    name = models.CharField(
        max_length=200,
        unique=True,
        verbose_name='Название'
    )

    description = models.TextField(
        blank=True,
        verbose_name='Описание'
    )

    price_kilo = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal('0'))],
        verbose_name='Цена за кг'
    )

    price_pc = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal('0'))],
        verbose_name='Цена за шт'
    )

    price_tali = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal('0'))],
        verbose_name='Цена за тали'
    )

    is_active = models.BooleanField(default=True, verbose_name='Активен')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'products'
        verbose_name = 'Товар'
        verbose_name_plural = 'Товары'
        ordering = ['name']
        indexes = [
            models.Index(fields=['is_active']),
            models.Index(fields=['name']),
        ]

    def __str__(self):
        return self.name

    def price_for(self, category: str) -> Optional[Decimal]:
        """Цена за единицу в категории (None если не продаётся)."""
        return {
            StockCategory.KILO: self.price_kilo,
            StockCategory.PC: self.price_pc,
            StockCategory.TALI: self.price_tali,
        }.get(category)


# =============================================================================
# ПАРТИИ
# =============================================================================

class Stock(models.Model):
    """
    Партия товара от члена кооператива.

    quantity - текущий остаток партии. Меняется только:
    - LotLedger.deduct (списание при оформлении заказа)
    - LotLedger.restore (возврат при отклонении заказа)
    """

    product = models.ForeignKey(
        Product,
        on_delete=models.CASCADE,
        related_name='stocks',
        verbose_name='Товар'
    )

    member = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        limit_choices_to={'role': 'member'},
        related_name='stocks',
        verbose_name='Член кооператива'
    )

    category = models.CharField(
        max_length=8,
        choices=StockCategory.choices,
        verbose_name='Категория'
    )

    quantity = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0'),
        validators=[MinValueValidator(Decimal('0'))],
        verbose_name='Остаток'
    )

    initial_quantity = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0'),
        validators=[MinValueValidator(Decimal('0'))],
        verbose_name='Внесено'
    )

    # Ключ FIFO
    created_at = models.DateTimeField(
        default=timezone.now,
        db_index=True,
        verbose_name='Дата внесения'
    )

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'stocks'
        verbose_name = 'Партия'
        verbose_name_plural = 'Партии'
        ordering = ['created_at', 'id']
        indexes = [
            models.Index(fields=['product', 'category', 'created_at']),
            models.Index(fields=['member', '-created_at']),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=0),
                name='stock_quantity_non_negative',
            ),
        ]

    def __str__(self):
        return f"{self.product.name} ({self.category}) x {self.quantity} - {self.member}"

    @property
    def sold_quantity(self) -> Decimal:
        return self.initial_quantity - self.quantity

    @property
    def is_empty(self) -> bool:
        return self.quantity <= Decimal('0')
