# apps/orders/detection.py
"""
Детектор подозрительных заказов.

Несколько заказов одного покупателя за короткое окно помечаются
для ручной проверки админом (возможен дубль или злоупотребление).

АЛГОРИТМ (для нового заказа в статусе pending):
1. Заказы в других статусах не проверяются
2. Был объединённый заказ (pending / approved) в окне до нового заказа ->
   помечается только новый заказ со ссылкой на объединённый
3. Последний подозрительный заказ (pending / delayed) старше окна ->
   начинается новое окно, старая пометка не переносится
4. Заказы pending / delayed в окне [new - WINDOW, new] + новый заказ:
   если их >= MIN_ORDERS - все помечаются одним UPDATE
5. После коммита - уведомление админам и держателям права orders.view_order

Решение (find_suspicious_cluster) - чистая функция над снимками заказов.
Сервис загружает снимки, применяет решение и уведомляет.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import QuerySet

from core.exceptions import DetectionFailure

from .models import OPEN_STATUSES, Order, OrderHistory, OrderStatus

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_MINUTES = 10
DEFAULT_MIN_ORDERS = 2

# Право, дающее доступ к уведомлениям о подозрительных заказах
VIEW_ORDERS_PERMISSION = 'orders.view_order'


@dataclass(frozen=True)
class DetectionPolicy:
    window: timedelta = timedelta(minutes=DEFAULT_WINDOW_MINUTES)
    min_orders: int = DEFAULT_MIN_ORDERS

    @classmethod
    def from_settings(cls) -> 'DetectionPolicy':
        config = getattr(settings, 'SUSPICIOUS_ORDERS', {})
        return cls(
            window=timedelta(minutes=config.get('WINDOW_MINUTES', DEFAULT_WINDOW_MINUTES)),
            min_orders=config.get('MIN_ORDERS', DEFAULT_MIN_ORDERS),
        )

    @property
    def window_minutes(self) -> int:
        return int(self.window.total_seconds() // 60)


@dataclass(frozen=True)
class OrderSnapshot:
    """Поля заказа, нужные детектору."""
    id: int
    created_at: datetime
    status: str
    total_amount: Decimal
    is_suspicious: bool = False
    is_merged: bool = False

    @classmethod
    def from_order(cls, order: Order) -> 'OrderSnapshot':
        return cls(
            id=order.id,
            created_at=order.created_at,
            status=order.status,
            total_amount=order.total_amount,
            is_suspicious=order.is_suspicious,
            is_merged=order.is_merged,
        )


@dataclass(frozen=True)
class SuspicionVerdict:
    """Решение детектора: какие заказы пометить и с какой причиной."""
    order_ids: Tuple[int, ...]
    reason: str
    total_amount: Decimal
    linked_merged_order_id: Optional[int] = None

    @property
    def is_single(self) -> bool:
        return self.linked_merged_order_id is not None


def _minutes_between(earlier: datetime, later: datetime) -> int:
    return int((later - earlier).total_seconds() // 60)


def is_fresh_window(
        trigger: OrderSnapshot,
        others: Iterable[OrderSnapshot],
        policy: DetectionPolicy
) -> bool:
    """Последний открытый подозрительный заказ старше окна."""
    suspicious = [
        o for o in others
        if o.id != trigger.id and o.is_suspicious and o.status in OPEN_STATUSES
    ]
    if not suspicious:
        return False
    latest = max(suspicious, key=lambda o: (o.created_at, o.id))
    return trigger.created_at - latest.created_at > policy.window


def find_suspicious_cluster(
        trigger: OrderSnapshot,
        others: Iterable[OrderSnapshot],
        policy: DetectionPolicy
) -> Optional[SuspicionVerdict]:
    """
    Найти кластер подозрительных заказов вокруг trigger.

    Args:
        trigger: Новый заказ
        others: Другие заказы того же покупателя
        policy: Окно и минимальный размер кластера

    Returns:
        SuspicionVerdict или None
    """
    if trigger.status != OrderStatus.PENDING:
        return None

    window_start = trigger.created_at - policy.window
    in_window = [
        o for o in others
        if o.id != trigger.id and window_start <= o.created_at <= trigger.created_at
    ]

    # Объединённый заказ в окне: помечаем только новый заказ
    merged = [
        o for o in in_window
        if o.is_merged and o.status in (OrderStatus.PENDING, OrderStatus.APPROVED)
    ]
    if merged:
        latest = max(merged, key=lambda o: (o.created_at, o.id))
        label = 'merged & approved' if latest.status == OrderStatus.APPROVED else 'merged'
        return SuspicionVerdict(
            order_ids=(trigger.id,),
            reason=(
                f'New order placed {_minutes_between(latest.created_at, trigger.created_at)} '
                f'minutes after {label} order #{latest.id}'
            ),
            total_amount=trigger.total_amount,
            linked_merged_order_id=latest.id,
        )

    related = [o for o in in_window if o.status in OPEN_STATUSES]
    if len(related) + 1 < policy.min_orders:
        return None

    cluster = sorted(related + [trigger], key=lambda o: (o.created_at, o.id))
    total = sum((o.total_amount for o in cluster), Decimal('0'))

    return SuspicionVerdict(
        order_ids=tuple(o.id for o in cluster),
        reason=f'{len(cluster)} orders placed within {policy.window_minutes} minutes (Total: ₱{total:.2f})',
        total_amount=total,
    )


# =============================================================================
# SERVICE
# =============================================================================

class SuspiciousOrderDetectionService:
    """
    Применение детектора к заказам в базе.

    Args:
        policy: Окно и порог (по умолчанию из settings.SUSPICIOUS_ORDERS)
    """

    def __init__(self, policy: Optional[DetectionPolicy] = None):
        self.policy = policy or DetectionPolicy.from_settings()

    def _candidates(self, order: Order) -> List[OrderSnapshot]:
        window_start = order.created_at - self.policy.window

        in_window = Order.objects.filter(
            customer_id=order.customer_id,
            created_at__gte=window_start,
            created_at__lte=order.created_at,
            status__in=[*OPEN_STATUSES, OrderStatus.APPROVED],
        ).exclude(pk=order.pk)

        last_suspicious = Order.objects.filter(
            customer_id=order.customer_id,
            is_suspicious=True,
            status__in=OPEN_STATUSES,
        ).exclude(pk=order.pk).order_by('-created_at', '-id')[:1]

        snapshots = {o.id: OrderSnapshot.from_order(o) for o in in_window}
        for o in last_suspicious:
            snapshots.setdefault(o.id, OrderSnapshot.from_order(o))
        return list(snapshots.values())

    def check_for_suspicious_pattern(self, order: Order) -> Optional[SuspicionVerdict]:
        """Решение детектора для заказа (без изменений в базе)."""
        trigger = OrderSnapshot.from_order(order)
        if trigger.status != OrderStatus.PENDING:
            return None

        others = self._candidates(order)

        if is_fresh_window(trigger, others, self.policy):
            logger.info(
                f"Окно подозрительных заказов истекло, новое окно | "
                f"Customer: {order.customer_id} | Order: {order.id}"
            )

        return find_suspicious_cluster(trigger, others, self.policy)

    @transaction.atomic
    def mark_as_suspicious(self, trigger: Order, verdict: SuspicionVerdict) -> int:
        """
        Пометить заказы кластера одним UPDATE.

        Returns:
            Количество помеченных заказов
        """
        fields = {
            'is_suspicious': True,
            'suspicious_reason': verdict.reason,
        }
        if verdict.linked_merged_order_id is not None:
            fields['linked_merged_order_id'] = verdict.linked_merged_order_id

        orders = list(
            Order.objects.select_for_update().filter(id__in=verdict.order_ids).order_by('id')
        )
        updated = Order.objects.filter(id__in=[o.id for o in orders]).update(**fields)

        OrderHistory.objects.bulk_create([
            OrderHistory(
                order=o,
                old_status=o.status,
                new_status=o.status,
                comment=f'Помечен подозрительным: {verdict.reason}',
            )
            for o in orders
        ])

        logger.warning(
            f"Подозрительные заказы | Customer: {trigger.customer_id} | "
            f"Orders: {list(verdict.order_ids)} | {verdict.reason}"
        )

        # Ошибка уведомления не отменяет уже зафиксированные пометки
        transaction.on_commit(lambda: self._notify(trigger, verdict), robust=True)
        return updated

    def evaluate_new_order(self, order: Order) -> Optional[SuspicionVerdict]:
        """
        Проверить новый заказ и пометить кластер.

        Никогда не бросает исключение: ошибка детектора логируется,
        заказ остаётся созданным.
        """
        try:
            with transaction.atomic():
                # Сериализует проверки одного покупателя
                get_user_model().objects.select_for_update().filter(pk=order.customer_id).first()

                verdict = self.check_for_suspicious_pattern(order)
                if verdict is not None:
                    self.mark_as_suspicious(order, verdict)
                return verdict
        except Exception as e:
            failure = DetectionFailure(order.id, e)
            logger.exception(str(failure))
            return None

    def _notify(self, trigger: Order, verdict: SuspicionVerdict) -> None:
        from notifications.models import NotificationType
        from notifications.services import NotificationPayload, NotificationService
        from users.services import RoleLookupService

        recipients = RoleLookupService.users_with_role_or_permission('admin', VIEW_ORDERS_PERMISSION)

        if verdict.is_single:
            message = f'Order #{trigger.id}: {verdict.reason}'
        else:
            ids = ', '.join(f'#{order_id}' for order_id in verdict.order_ids)
            message = f'Orders {ids} from customer #{trigger.customer_id}: {verdict.reason}'

        payload = NotificationPayload(
            notification_type=NotificationType.SUSPICIOUS_ORDER,
            title='Suspicious orders detected',
            message=message,
            related_object_type='order',
            related_object_id=trigger.id,
        )

        for user in recipients:
            NotificationService.dispatch(user, payload)

    # =========================================================================
    # ADMIN
    # =========================================================================

    @staticmethod
    def get_suspicious_orders() -> QuerySet[Order]:
        """Подозрительные заказы, ожидающие решения админа."""
        return Order.objects.filter(
            is_suspicious=True,
            status__in=OPEN_STATUSES,
        ).select_related('customer', 'linked_merged_order').order_by('-created_at')

    @staticmethod
    @transaction.atomic
    def clear_suspicious_flag(order: Order, cleared_by=None) -> Order:
        """
        Снять пометку с одного заказа.

        Остальные заказы того же кластера не меняются.
        Повторный вызов ничего не меняет.
        """
        order = Order.objects.select_for_update().get(pk=order.pk)

        if not order.is_suspicious and order.suspicious_reason is None:
            return order

        order.is_suspicious = False
        order.suspicious_reason = None
        order.save(update_fields=['is_suspicious', 'suspicious_reason', 'updated_at'])

        OrderHistory.objects.create(
            order=order,
            old_status=order.status,
            new_status=order.status,
            changed_by=cleared_by,
            comment='Пометка "подозрительный" снята',
        )

        logger.info(
            f"Пометка снята | Order: {order.id} | "
            f"By: {cleared_by.id if cleared_by else None}"
        )
        return order
