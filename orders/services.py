# apps/orders/services.py
"""
Сервисы корзины и заказов.

WORKFLOW ОФОРМЛЕНИЯ (одна транзакция):
1. Блокировка строки покупателя (параллельные оформления одного покупателя идут по очереди)
2. Лимит оформлений -> RateLimitExceeded
3. Пустая корзина / минимальная сумма -> ошибка, ничего не создано
4. Заказ PENDING + списание партий по FIFO -> InsufficientStock откатывает всё
5. Позиции заказа по партиям, очистка корзины, история
6. Запись оформления в журнал лимита (только после успеха)

После коммита детектор проверяет заказ (ошибки детектора не мешают заказу).
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import QuerySet

from core.clock import Clock, system_clock
from core.exceptions import MinimumOrderNotMet
from products.models import Product, StockCategory
from products.services import AllocationLine, LotLedger, StockAllocationService

from .detection import SuspicionVerdict, SuspiciousOrderDetectionService
from .models import (
    OPEN_STATUSES,
    Cart,
    CartItem,
    Order,
    OrderHistory,
    OrderItem,
    OrderStatus,
)
from .throttles import CheckoutRateLimiter, RateLimitStatus

logger = logging.getLogger(__name__)

DEFAULT_MINIMUM_ORDER_AMOUNT = Decimal('75.00')


# =============================================================================
# КОРЗИНА
# =============================================================================

class CartService:
    """
    Корзина покупателя.

    ВАЛИДАЦИЯ КОЛИЧЕСТВА:
    - Kilo: не больше 2 знаков после запятой (0.25 кг)
    - Pc / Tali: только целые числа
    - Количество в корзине не больше текущего остатка партий
    """

    @staticmethod
    def validate_quantity(category: str, quantity) -> Decimal:
        quantity = Decimal(str(quantity))

        if quantity <= Decimal('0'):
            raise ValidationError('Количество должно быть больше 0')

        if category == StockCategory.KILO:
            if quantity != quantity.quantize(Decimal('0.01')):
                raise ValidationError('Вес указывается с точностью до 0.01 кг')
        elif quantity != quantity.to_integral_value():
            raise ValidationError(f'Категория {category} продаётся только целыми единицами')

        return quantity

    @staticmethod
    def _check_available(product: Product, category: str, quantity: Decimal) -> None:
        available = LotLedger().available_quantity(product, category)
        if quantity > available:
            raise ValidationError(
                f'Недостаточно товара "{product.name}" ({category}). '
                f'Доступно: {available}, запрошено: {quantity}'
            )

    @classmethod
    def get_cart(cls, user) -> Cart:
        cart, _ = Cart.objects.get_or_create(user=user)
        return cart

    @classmethod
    def get_items(cls, user) -> QuerySet[CartItem]:
        return CartItem.objects.filter(cart__user=user).select_related('product').order_by('created_at', 'id')

    @classmethod
    def get_total(cls, user) -> Decimal:
        return sum((item.subtotal for item in cls.get_items(user)), Decimal('0'))

    @classmethod
    @transaction.atomic
    def add_item(cls, user, product: Product, category: str, quantity) -> CartItem:
        """
        Добавить товар в корзину.

        Если строка (товар, категория) уже есть - количество суммируется.
        """
        if category not in StockCategory.values:
            raise ValidationError(f'Неизвестная категория: {category}')

        if not product.is_active:
            raise ValidationError(f'Товар "{product.name}" недоступен')

        if product.price_for(category) is None:
            raise ValidationError(f'Товар "{product.name}" не продаётся в категории {category}')

        quantity = cls.validate_quantity(category, quantity)
        cart = cls.get_cart(user)

        item = CartItem.objects.select_for_update().filter(
            cart=cart, product=product, category=category
        ).first()

        new_quantity = quantity + (item.quantity if item else Decimal('0'))
        cls._check_available(product, category, new_quantity)

        if item:
            item.quantity = new_quantity
            item.save(update_fields=['quantity', 'updated_at'])
        else:
            item = CartItem.objects.create(
                cart=cart, product=product, category=category, quantity=new_quantity
            )

        return item

    @classmethod
    @transaction.atomic
    def update_item(cls, user, item_id: int, quantity) -> CartItem:
        """Изменить количество строки корзины."""
        try:
            item = CartItem.objects.select_for_update().select_related('product').get(
                pk=item_id, cart__user=user
            )
        except CartItem.DoesNotExist:
            raise ValidationError('Строка корзины не найдена')

        quantity = cls.validate_quantity(item.category, quantity)
        cls._check_available(item.product, item.category, quantity)

        item.quantity = quantity
        item.save(update_fields=['quantity', 'updated_at'])
        return item

    @classmethod
    def remove_item(cls, user, item_id: int) -> None:
        deleted, _ = CartItem.objects.filter(pk=item_id, cart__user=user).delete()
        if not deleted:
            raise ValidationError('Строка корзины не найдена')

    @classmethod
    def clear_cart(cls, user) -> int:
        deleted, _ = CartItem.objects.filter(cart__user=user).delete()
        return deleted


# =============================================================================
# ОФОРМЛЕНИЕ
# =============================================================================

@dataclass
class CheckoutResult:
    order: Order
    rate_limit: RateLimitStatus
    suspicion: Optional[SuspicionVerdict] = None


class CheckoutService:
    """Оформление корзины в заказ."""

    @staticmethod
    def minimum_order_amount() -> Decimal:
        return Decimal(str(getattr(settings, 'MINIMUM_ORDER_AMOUNT', DEFAULT_MINIMUM_ORDER_AMOUNT)))

    @classmethod
    def checkout(
            cls,
            user,
            rate_limiter: Optional[CheckoutRateLimiter] = None,
            clock: Optional[Clock] = None,
            detector: Optional[SuspiciousOrderDetectionService] = None
    ) -> CheckoutResult:
        """
        Оформить заказ.

        Args:
            user: Покупатель
            rate_limiter: Лимит оформлений
            clock: Источник времени
            detector: Детектор подозрительных заказов

        Returns:
            CheckoutResult

        Raises:
            RateLimitExceeded: Лимит оформлений исчерпан
            InsufficientStock: Строку корзины нельзя покрыть партиями
            MinimumOrderNotMet: Сумма меньше минимальной
            ValidationError: Пустая корзина / товар недоступен
        """
        clock = clock or system_clock
        rate_limiter = rate_limiter or CheckoutRateLimiter(clock=clock)
        detector = detector or SuspiciousOrderDetectionService()

        order, rate_limit = cls._place_order(user, rate_limiter, clock)

        suspicion = detector.evaluate_new_order(order)
        if suspicion is not None:
            order.refresh_from_db()

        return CheckoutResult(order=order, rate_limit=rate_limit, suspicion=suspicion)

    @classmethod
    @transaction.atomic
    def _place_order(cls, user, rate_limiter: CheckoutRateLimiter, clock: Clock):
        get_user_model().objects.select_for_update().get(pk=user.pk)

        rate_limiter.check(user)

        items = list(CartService.get_items(user))
        if not items:
            raise ValidationError('Корзина пуста')

        lines = []
        cart_total = Decimal('0')
        for item in items:
            price = item.product.price_for(item.category)
            if not item.product.is_active or price is None:
                raise ValidationError(f'Товар "{item.product.name}" ({item.category}) больше не продаётся')
            cart_total += price * item.quantity
            lines.append(AllocationLine(product=item.product, category=item.category, quantity=item.quantity))

        minimum = cls.minimum_order_amount()
        if cart_total < minimum:
            raise MinimumOrderNotMet(minimum=minimum, total=cart_total)

        order = Order.objects.create(customer=user, status=OrderStatus.PENDING, created_at=clock.now())

        deductions = StockAllocationService.allocate(lines)

        prices = {(item.product_id, item.category): item.product.price_for(item.category) for item in items}
        order_items = []
        for deduction in deductions:
            unit_price = prices[(deduction.product_id, deduction.category)]
            order_items.append(OrderItem(
                order=order,
                stock_id=deduction.stock_id,
                product_id=deduction.product_id,
                category=deduction.category,
                quantity=deduction.quantity,
                unit_price=unit_price,
                total=(unit_price * deduction.quantity).quantize(Decimal('0.01')),
            ))
        OrderItem.objects.bulk_create(order_items)

        order.recalculate_total()

        CartService.clear_cart(user)

        OrderHistory.objects.create(
            order=order,
            new_status=OrderStatus.PENDING,
            changed_by=user,
            comment=f'Заказ оформлен: {len(items)} строк, {len(deductions)} списаний с партий',
        )

        rate_limiter.record(user)
        rate_limit = rate_limiter.status(user)

        logger.info(
            f"Заказ #{order.id} оформлен | Customer: {user.id} | Total: {order.total_amount} | "
            f"Lots: {[d.stock_id for d in deductions]} | Checkouts left: {rate_limit.remaining}"
        )

        transaction.on_commit(lambda: cls._notify_placed(order))
        return order, rate_limit

    @staticmethod
    def _notify_placed(order: Order) -> None:
        from notifications.models import NotificationType
        from notifications.services import NotificationPayload, NotificationService

        NotificationService.dispatch(order.customer, NotificationPayload(
            notification_type=NotificationType.ORDER_PLACED,
            title=f'Order #{order.id} placed',
            message=f'Your order #{order.id} (₱{order.total_amount:.2f}) is pending approval.',
            related_object_type='order',
            related_object_id=order.id,
        ))


# =============================================================================
# ГРУППЫ ПОДОЗРИТЕЛЬНЫХ ЗАКАЗОВ (АДМИН)
# =============================================================================

class SuspiciousGroupService:
    """
    Решение админа по группе подозрительных заказов.

    Группа - один заказ или несколько заказов одного покупателя
    в статусе pending / delayed.

    - approve_group: одобрить все
    - reject_group: отклонить все, вернуть остаток в партии
    - merge_group: объединить в самый ранний заказ
    """

    @classmethod
    def _load_group(cls, order_ids: Sequence[int], min_size: int = 1) -> List[Order]:
        ids = sorted(set(order_ids))
        if len(ids) < min_size:
            raise ValidationError(f'Нужно выбрать не меньше {min_size} заказов')

        orders = list(
            Order.objects.select_for_update().filter(id__in=ids).order_by('created_at', 'id')
        )

        missing = set(ids) - {o.id for o in orders}
        if missing:
            raise ValidationError(f'Заказы не найдены: {sorted(missing)}')

        if len({o.customer_id for o in orders}) > 1:
            raise ValidationError('Все заказы группы должны принадлежать одному покупателю')

        closed = [o.id for o in orders if o.status not in OPEN_STATUSES]
        if closed:
            raise ValidationError(f'Заказы уже обработаны: {closed}')

        return orders

    @classmethod
    @transaction.atomic
    def approve_group(cls, order_ids: Sequence[int], admin, notes: str = '') -> List[Order]:
        """
        Одобрить группу заказов (или один заказ).

        Заказы переходят в APPROVED, пометка снимается, списанный
        остаток остаётся за заказами.
        """
        orders = cls._load_group(order_ids)

        for order in orders:
            old_status = order.status
            order.status = OrderStatus.APPROVED
            order.is_suspicious = False
            order.suspicious_reason = None
            order.admin = admin
            update_fields = ['status', 'is_suspicious', 'suspicious_reason', 'admin', 'updated_at']
            if notes:
                order.admin_notes = f'{order.admin_notes} | {notes}' if order.admin_notes else notes
                update_fields.append('admin_notes')
            order.save(update_fields=update_fields)

            OrderHistory.objects.create(
                order=order,
                old_status=old_status,
                new_status=OrderStatus.APPROVED,
                changed_by=admin,
                comment=f'Одобрен: {notes}' if notes else 'Одобрен',
            )

        logger.info(
            f"Группа одобрена | Orders: {[o.id for o in orders]} | "
            f"Customer: {orders[0].customer_id} | Admin: {admin.id}"
        )

        ids = ', '.join(f'#{o.id}' for o in orders)
        total = sum((o.total_amount for o in orders), Decimal('0'))
        transaction.on_commit(lambda: cls._notify_customer(
            orders[0],
            f'Orders {ids} approved',
            f'Your orders {ids} (₱{total:.2f}) were approved and are being prepared.',
        ))
        return orders

    @classmethod
    @transaction.atomic
    def reject_group(cls, order_ids: Sequence[int], admin, reason: str = '') -> List[Order]:
        """
        Отклонить группу заказов.

        Остаток каждой позиции возвращается в ту партию, с которой был списан.
        """
        orders = cls._load_group(order_ids)
        ledger = LotLedger()

        for order in orders:
            for item in order.items.all():
                ledger.restore(item.stock_id, item.quantity)

            old_status = order.status
            order.status = OrderStatus.REJECTED
            order.is_suspicious = False
            order.suspicious_reason = None
            order.admin = admin
            if reason:
                order.admin_notes = reason
            order.save(update_fields=[
                'status', 'is_suspicious', 'suspicious_reason', 'admin', 'admin_notes', 'updated_at'
            ])

            OrderHistory.objects.create(
                order=order,
                old_status=old_status,
                new_status=OrderStatus.REJECTED,
                changed_by=admin,
                comment=f'Отклонён в группе: {reason}' if reason else 'Отклонён в группе',
            )

        logger.info(
            f"Группа отклонена | Orders: {[o.id for o in orders]} | "
            f"Customer: {orders[0].customer_id} | Admin: {admin.id}"
        )

        ids = ', '.join(f'#{o.id}' for o in orders)
        transaction.on_commit(lambda: cls._notify_customer(
            orders[0],
            f'Orders {ids} rejected',
            f'Your orders {ids} were rejected.' + (f' Reason: {reason}' if reason else ''),
        ))
        return orders

    @classmethod
    @transaction.atomic
    def merge_group(cls, order_ids: Sequence[int], admin, notes: str = '') -> Order:
        """
        Объединить группу заказов в самый ранний.

        Основной заказ остаётся PENDING, получает позиции остальных
        и пометку is_merged. Остальные -> MERGED.
        """
        orders = cls._load_group(order_ids, min_size=2)
        primary, secondary = orders[0], orders[1:]
        all_ids = ', '.join(str(o.id) for o in orders)

        OrderItem.objects.filter(order__in=secondary).update(order=primary)

        admin_notes = f'Merged from orders: {all_ids}'
        if notes:
            admin_notes += f' | Admin notes: {notes}'

        for order in secondary:
            old_status = order.status
            order.status = OrderStatus.MERGED
            order.merged_into = primary
            order.is_suspicious = False
            order.suspicious_reason = None
            order.admin = admin
            order.save(update_fields=[
                'status', 'merged_into', 'is_suspicious', 'suspicious_reason', 'admin', 'updated_at'
            ])
            OrderHistory.objects.create(
                order=order,
                old_status=old_status,
                new_status=OrderStatus.MERGED,
                changed_by=admin,
                comment=f'Объединён в заказ #{primary.id}',
            )

        old_status = primary.status
        primary.status = OrderStatus.PENDING
        primary.is_merged = True
        primary.is_suspicious = False
        primary.suspicious_reason = None
        primary.admin = admin
        primary.admin_notes = admin_notes
        primary.save(update_fields=[
            'status', 'is_merged', 'is_suspicious', 'suspicious_reason', 'admin', 'admin_notes', 'updated_at'
        ])
        primary.recalculate_total()

        OrderHistory.objects.create(
            order=primary,
            old_status=old_status,
            new_status=OrderStatus.PENDING,
            changed_by=admin,
            comment=admin_notes,
        )

        logger.info(
            f"Группа объединена | Primary: {primary.id} | Orders: [{all_ids}] | "
            f"Total: {primary.total_amount} | Admin: {admin.id}"
        )

        transaction.on_commit(lambda: cls._notify_customer(
            primary,
            f'Orders merged into #{primary.id}',
            f'Your orders {all_ids} were combined into order #{primary.id} '
            f'(₱{primary.total_amount:.2f}).',
        ))
        return primary

    @staticmethod
    def _notify_customer(order: Order, title: str, message: str) -> None:
        from notifications.models import NotificationType
        from notifications.services import NotificationPayload, NotificationService

        NotificationService.dispatch(order.customer, NotificationPayload(
            notification_type=NotificationType.ORDER_STATUS_CHANGED,
            title=title,
            message=message,
            related_object_type='order',
            related_object_id=order.id,
            send_email=True,
        ))
