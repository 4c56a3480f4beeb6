# apps/orders/views.py
"""
Views корзины и заказов.

API ENDPOINTS:
- GET /api/orders/cart/ - корзина + состояние лимита оформлений
- POST /api/orders/cart/ - добавить товар
- PATCH /api/orders/cart/{id}/ - изменить количество
- DELETE /api/orders/cart/{id}/ - удалить строку
- DELETE /api/orders/cart/clear/ - очистить корзину
- POST /api/orders/cart/checkout/ - оформить заказ
- GET /api/orders/cart/rate-limit/ - состояние лимита оформлений
- GET /api/orders/orders/ - заказы (админ - все, покупатель - свои)
- GET /api/orders/orders/suspicious/ - подозрительные заказы
- POST /api/orders/orders/{id}/clear-suspicious/ - снять пометку
- POST /api/orders/orders/{id}/approve/ - одобрить заказ
- POST /api/orders/orders/{id}/reject/ - отклонить заказ
- POST /api/orders/orders/approve-group/ - одобрить группу
- POST /api/orders/orders/reject-group/ - отклонить группу
- POST /api/orders/orders/merge-group/ - объединить группу
"""

from django.core.exceptions import ValidationError
from django.db.models import QuerySet
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response

from .detection import SuspiciousOrderDetectionService
from .filters import OrderFilter
from .models import Order
from .permissions import CanReviewOrders, IsAdmin, IsCustomer
from .serializers import (
    CartAddSerializer,
    CartItemSerializer,
    CartUpdateSerializer,
    CustomerOrderSerializer,
    OrderDecisionSerializer,
    OrderDetailSerializer,
    OrderGroupApproveSerializer,
    OrderGroupMergeSerializer,
    OrderGroupRejectSerializer,
    OrderListSerializer,
)
from .services import CartService, CheckoutService, SuspiciousGroupService
from .throttles import CheckoutRateLimiter


def _error(e: ValidationError) -> Response:
    return Response({'error': e.messages[0]}, status=status.HTTP_400_BAD_REQUEST)


# =============================================================================
# PAGINATION
# =============================================================================

class StandardPagination(PageNumberPagination):
    """Стандартная пагинация."""
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100


# =============================================================================
# CART
# =============================================================================

class CartViewSet(viewsets.ViewSet):
    """
    Корзина покупателя.

    Ошибки оформления приходят структурой:
    - 409 insufficient_stock: product_id, category, requested, available
    - 429 rate_limit_exceeded: limit, remaining, reset_at, retry_after (+ Retry-After)
    - 400 minimum_order_not_met: minimum, total
    """

    permission_classes = [IsAuthenticated, IsCustomer]

    def _cart_response(self, request: Request) -> dict:
        items = CartService.get_items(request.user)
        return {
            'items': CartItemSerializer(items, many=True).data,
            'total': str(CartService.get_total(request.user)),
            'minimum_order_amount': str(CheckoutService.minimum_order_amount()),
            'rate_limit': CheckoutRateLimiter().status(request.user).as_dict(),
        }

    def list(self, request: Request) -> Response:
        return Response(self._cart_response(request))

    def create(self, request: Request) -> Response:
        """
        Добавить товар.

        POST /api/orders/cart/
        Body: {"product_id": 1, "category": "Kilo", "quantity": "1.5"}
        """
        serializer = CartAddSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            item = CartService.add_item(
                request.user,
                serializer.validated_data['product'],
                serializer.validated_data['category'],
                serializer.validated_data['quantity'],
            )
        except ValidationError as e:
            return _error(e)

        return Response(CartItemSerializer(item).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request: Request, pk=None) -> Response:
        serializer = CartUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            item = CartService.update_item(request.user, pk, serializer.validated_data['quantity'])
        except ValidationError as e:
            return _error(e)

        return Response(CartItemSerializer(item).data)

    def destroy(self, request: Request, pk=None) -> Response:
        try:
            CartService.remove_item(request.user, pk)
        except ValidationError as e:
            return _error(e)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=['delete'])
    def clear(self, request: Request) -> Response:
        CartService.clear_cart(request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=['get'], url_path='rate-limit')
    def rate_limit(self, request: Request) -> Response:
        """
        Состояние лимита оформлений.

        GET /api/orders/cart/rate-limit/
        {"allowed": true, "limit": 3, "used": 1, "remaining": 2, "reset_at": "...", "retry_after": 0}
        """
        return Response(CheckoutRateLimiter().status(request.user).as_dict())

    @action(detail=False, methods=['post'])
    def checkout(self, request: Request) -> Response:
        """
        Оформить корзину.

        POST /api/orders/cart/checkout/

        Response 201:
        {
            "order": {...},
            "rate_limit": {"remaining": 2, ...}
        }
        """
        try:
            result = CheckoutService.checkout(request.user)
        except ValidationError as e:
            return _error(e)

        return Response({
            'order': CustomerOrderSerializer(result.order).data,
            'rate_limit': result.rate_limit.as_dict(),
        }, status=status.HTTP_201_CREATED)


# =============================================================================
# ORDERS
# =============================================================================

class OrderViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Заказы.

    ДОСТУП:
    - Админ и держатели orders.view_order: все заказы, подозрительные
    - Админ: снятие пометки, одобрение, отклонение и объединение
    - Покупатель: свои заказы
    """

    permission_classes = [IsAuthenticated]
    pagination_class = StandardPagination
    filter_backends = [DjangoFilterBackend]
    filterset_class = OrderFilter

    def _is_reviewer(self) -> bool:
        return CanReviewOrders().has_permission(self.request, self)

    def get_queryset(self) -> QuerySet[Order]:
        user = self.request.user

        if self._is_reviewer():
            return Order.objects.select_related('customer').prefetch_related(
                'items__product', 'items__stock', 'history'
            ).order_by('-created_at')

        return Order.objects.filter(customer=user).prefetch_related(
            'items__product', 'items__stock'
        ).order_by('-created_at')

    def get_serializer_class(self):
        if not self._is_reviewer():
            return CustomerOrderSerializer
        if self.action in ('list', 'suspicious'):
            return OrderListSerializer
        return OrderDetailSerializer

    @action(detail=False, methods=['get'], permission_classes=[IsAuthenticated, CanReviewOrders])
    def suspicious(self, request: Request) -> Response:
        """
        Подозрительные заказы, ожидающие решения.

        GET /api/orders/orders/suspicious/
        """
        orders = SuspiciousOrderDetectionService.get_suspicious_orders()

        page = self.paginate_queryset(orders)
        if page is not None:
            return self.get_paginated_response(OrderListSerializer(page, many=True).data)

        return Response(OrderListSerializer(orders, many=True).data)

    @action(
        detail=True,
        methods=['post'],
        url_path='clear-suspicious',
        permission_classes=[IsAuthenticated, IsAdmin]
    )
    def clear_suspicious(self, request: Request, pk=None) -> Response:
        """
        Снять пометку с одного заказа.

        POST /api/orders/orders/{id}/clear-suspicious/
        """
        order = self.get_object()
        order = SuspiciousOrderDetectionService.clear_suspicious_flag(order, cleared_by=request.user)

        return Response({
            'message': f'Пометка снята с заказа #{order.id}',
            'order': OrderDetailSerializer(order).data,
        })

    @action(detail=True, methods=['post'], permission_classes=[IsAuthenticated, IsAdmin])
    def approve(self, request: Request, pk=None) -> Response:
        """
        Одобрить заказ.

        POST /api/orders/orders/{id}/approve/
        Body: {"notes": "..."}
        """
        order = self.get_object()
        serializer = OrderDecisionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            SuspiciousGroupService.approve_group(
                [order.id], admin=request.user, notes=serializer.validated_data['notes']
            )
        except ValidationError as e:
            return _error(e)

        order.refresh_from_db()
        return Response({
            'message': f'Заказ #{order.id} одобрен',
            'order': OrderDetailSerializer(order).data,
        })

    @action(detail=True, methods=['post'], permission_classes=[IsAuthenticated, IsAdmin])
    def reject(self, request: Request, pk=None) -> Response:
        """
        Отклонить заказ, остаток вернуть в партии.

        POST /api/orders/orders/{id}/reject/
        Body: {"notes": "Причина"}
        """
        order = self.get_object()
        serializer = OrderDecisionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            SuspiciousGroupService.reject_group(
                [order.id], admin=request.user, reason=serializer.validated_data['notes']
            )
        except ValidationError as e:
            return _error(e)

        order.refresh_from_db()
        return Response({
            'message': f'Заказ #{order.id} отклонён',
            'order': OrderDetailSerializer(order).data,
        })

    @action(
        detail=False,
        methods=['post'],
        url_path='approve-group',
        permission_classes=[IsAuthenticated, IsAdmin]
    )
    def approve_group(self, request: Request) -> Response:
        """
        Одобрить группу заказов.

        POST /api/orders/orders/approve-group/
        Body: {"order_ids": [10, 11], "notes": "Проверено по телефону"}
        """
        serializer = OrderGroupApproveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            orders = SuspiciousGroupService.approve_group(
                serializer.validated_data['order_ids'],
                admin=request.user,
                notes=serializer.validated_data['notes'],
            )
        except ValidationError as e:
            return _error(e)

        return Response({
            'message': f'Одобрено заказов: {len(orders)}',
            'orders': OrderListSerializer(orders, many=True).data,
        })

    @action(
        detail=False,
        methods=['post'],
        url_path='reject-group',
        permission_classes=[IsAuthenticated, IsAdmin]
    )
    def reject_group(self, request: Request) -> Response:
        """
        Отклонить группу заказов.

        POST /api/orders/orders/reject-group/
        Body: {"order_ids": [10, 11], "reason": "Дубликаты"}
        """
        serializer = OrderGroupRejectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            orders = SuspiciousGroupService.reject_group(
                serializer.validated_data['order_ids'],
                admin=request.user,
                reason=serializer.validated_data['reason'],
            )
        except ValidationError as e:
            return _error(e)

        return Response({
            'message': f'Отклонено заказов: {len(orders)}',
            'orders': OrderListSerializer(orders, many=True).data,
        })

    @action(
        detail=False,
        methods=['post'],
        url_path='merge-group',
        permission_classes=[IsAuthenticated, IsAdmin]
    )
    def merge_group(self, request: Request) -> Response:
        """
        Объединить группу заказов в самый ранний.

        POST /api/orders/orders/merge-group/
        Body: {"order_ids": [10, 11], "notes": "Один заказ"}
        """
        serializer = OrderGroupMergeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            primary = SuspiciousGroupService.merge_group(
                serializer.validated_data['order_ids'],
                admin=request.user,
                notes=serializer.validated_data['notes'],
            )
        except ValidationError as e:
            return _error(e)

        return Response({
            'message': f'Заказы объединены в #{primary.id}',
            'order': OrderDetailSerializer(primary).data,
        })
