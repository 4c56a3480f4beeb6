# apps/products/services.py
"""
Сервисы складских партий.

LotLedger - доступ к партиям:
- lots_for_update: партии (товар, категория) с остатком > 0, FIFO, под блокировкой строк
- deduct / restore: изменение остатка через F() выражения

StockAllocationService - списание корзины по партиям:
1. Для каждой строки берём партии по FIFO (старые первыми)
2. Если суммарного остатка не хватает - InsufficientStock, ничего не списано
3. Иначе списываем min(остаток партии, осталось списать) с каждой партии
4. Всё в одной транзакции: ошибка на любой строке откатывает предыдущие

ВАЖНО: select_for_update блокирует партии до конца транзакции,
поэтому два параллельных оформления не продадут последнюю единицу дважды.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F, QuerySet, Sum

from core.exceptions import InsufficientStock

from .models import Product, Stock, StockCategory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllocationLine:
    """Строка запроса на списание (строка корзины)."""
    product: Product
    category: str
    quantity: Decimal


@dataclass(frozen=True)
class LotDeduction:
    """Списание с одной партии."""
    stock_id: int
    product_id: int
    member_id: int
    category: str
    quantity: Decimal
    remaining: Decimal


# =============================================================================
# LOT LEDGER
# =============================================================================

class LotLedger:
    """
    Журнал партий поверх модели Stock.

    Методы, меняющие остаток, требуют открытой транзакции:
    блокировки select_for_update держатся до её завершения.
    """

    def lots_for_update(self, product: Product, category: str) -> List[Stock]:
        """Непустые партии (товар, категория) от старых к новым, под блокировкой."""
        return list(
            Stock.objects.select_for_update().filter(
                product=product,
                category=category,
                quantity__gt=Decimal('0'),
            ).order_by('created_at', 'id')
        )

    def available_quantity(self, product: Product, category: str) -> Decimal:
        """Суммарный остаток без блокировки (для витрины и корзины)."""
        total = Stock.objects.filter(
            product=product,
            category=category,
            quantity__gt=Decimal('0'),
        ).aggregate(total=Sum('quantity'))['total']
        return total or Decimal('0')

    def deduct(self, stock: Stock, quantity: Decimal) -> Stock:
        """Списать quantity с партии. Партия должна быть заблокирована."""
        if quantity <= Decimal('0'):
            raise ValidationError('Количество списания должно быть больше 0')
        if quantity > stock.quantity:
            raise ValidationError(
                f'Партия #{stock.id}: нельзя списать {quantity}, остаток {stock.quantity}'
            )

        Stock.objects.filter(pk=stock.pk).update(quantity=F('quantity') - quantity)
        stock.refresh_from_db(fields=['quantity'])
        return stock

    def restore(self, stock_id: int, quantity: Decimal) -> None:
        """Вернуть quantity в партию (отклонение заказа)."""
        Stock.objects.filter(pk=stock_id).update(quantity=F('quantity') + quantity)


# =============================================================================
# ALLOCATION
# =============================================================================

class StockAllocationService:
    """
    Списание запрошенного количества по партиям (FIFO).

    Справедливая ротация: первым продаётся товар того члена,
    кто внёс его раньше.
    """

    @classmethod
    @transaction.atomic
    def allocate(
            cls,
            lines: Iterable[AllocationLine],
            ledger: Optional[LotLedger] = None
    ) -> List[LotDeduction]:
        """
        Списать все строки целиком или ничего.

        Args:
            lines: Строки корзины
            ledger: Журнал партий

        Returns:
            Список списаний по партиям (в порядке списания)

        Raises:
            InsufficientStock: Если хотя бы одна строка не покрывается
        """
        ledger = ledger or LotLedger()
        deductions: List[LotDeduction] = []

        for line in lines:
            deductions.extend(cls._allocate_line(line, ledger))

        return deductions

    @classmethod
    def _allocate_line(cls, line: AllocationLine, ledger: LotLedger) -> List[LotDeduction]:
        lots = ledger.lots_for_update(line.product, line.category)
        available = sum((lot.quantity for lot in lots), Decimal('0'))

        if available < line.quantity:
            logger.warning(
                f"Недостаточно остатка | Product: {line.product.id} ({line.category}) | "
                f"Requested: {line.quantity} | Available: {available}"
            )
            raise InsufficientStock(
                product_id=line.product.id,
                product_name=line.product.name,
                category=line.category,
                requested=line.quantity,
                available=available,
            )

        still_needed = line.quantity
        deductions = []

        for lot in lots:
            if still_needed <= Decimal('0'):
                break

            take = min(lot.quantity, still_needed)
            ledger.deduct(lot, take)
            still_needed -= take

            deductions.append(LotDeduction(
                stock_id=lot.id,
                product_id=lot.product_id,
                member_id=lot.member_id,
                category=lot.category,
                quantity=take,
                remaining=lot.quantity,
            ))

        return deductions


# =============================================================================
# STOCK SERVICE
# =============================================================================

class StockService:
    """Внесение партий и остатки для витрины."""

    @classmethod
    @transaction.atomic
    def add_stock(
            cls,
            *,
            product: Product,
            member,
            category: str,
            quantity: Decimal,
            created_at=None
    ) -> Stock:
        """
        Член кооператива вносит партию товара.

        Args:
            product: Товар
            member: Член кооператива
            category: Категория (Kilo / Pc / Tali)
            quantity: Количество
            created_at: Время внесения (по умолчанию - сейчас)

        Returns:
            Stock
        """
        quantity = Decimal(str(quantity))

        if quantity <= Decimal('0'):
            raise ValidationError('Количество должно быть больше 0')

        if category not in StockCategory.values:
            raise ValidationError(f'Неизвестная категория: {category}')

        if getattr(member, 'role', None) != 'member':
            raise ValidationError('Партию может внести только член кооператива')

        fields = {
            'product': product,
            'member': member,
            'category': category,
            'quantity': quantity,
            'initial_quantity': quantity,
        }
        if created_at is not None:
            fields['created_at'] = created_at

        stock = Stock.objects.create(**fields)

        logger.info(
            f"Партия #{stock.id} внесена | Product: {product.id} ({category}) | "
            f"Member: {member.id} | Qty: {quantity}"
        )
        return stock

    @classmethod
    def get_availability(cls, product: Product) -> Dict[str, Decimal]:
        """Остатки товара по категориям (только категории с ценой)."""
        ledger = LotLedger()
        return {
            category: ledger.available_quantity(product, category)
            for category in StockCategory.values
            if product.price_for(category) is not None
        }

    @classmethod
    def get_member_stocks(cls, member) -> QuerySet[Stock]:
        """Партии члена кооператива (новые первыми)."""
        return Stock.objects.filter(member=member).select_related('product').order_by('-created_at')
