# apps/products/views.py
"""
Views для products.

API ENDPOINTS:
- GET /api/products/ - каталог с остатками (все)
- GET /api/products/{id}/ - товар
- GET /api/stocks/ - партии (админ/сотрудник - все, член - свои)
- POST /api/stocks/ - внесение партии (админ/сотрудник)
"""

from django.core.exceptions import ValidationError
from django.db.models import QuerySet
from rest_framework import viewsets, status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response

from users.models import User

from .models import Product, Stock
from .permissions import IsAdminOrStaff
from .serializers import ProductSerializer, StockSerializer, StockCreateSerializer
from .services import StockService


class ProductViewSet(viewsets.ReadOnlyModelViewSet):
    """Каталог товаров (только чтение)."""

    serializer_class = ProductSerializer
    permission_classes = [AllowAny]
    queryset = Product.objects.filter(is_active=True).order_by('name')


class StockViewSet(viewsets.ModelViewSet):
    """
    Партии товара.

    ДОСТУП:
    - Админ / сотрудник: все партии, внесение
    - Член кооператива: только свои партии
    """

    permission_classes = [IsAuthenticated]
    serializer_class = StockSerializer
    http_method_names = ['get', 'post', 'head', 'options']

    def get_permissions(self):
        if self.action == 'create':
            return [IsAuthenticated(), IsAdminOrStaff()]
        return super().get_permissions()

    def get_queryset(self) -> QuerySet[Stock]:
        user = self.request.user

        if user.role in ('admin', 'staff'):
            return Stock.objects.select_related('product', 'member').order_by('-created_at')

        if user.role == 'member':
            return StockService.get_member_stocks(user)

        return Stock.objects.none()

    def create(self, request: Request, *args, **kwargs) -> Response:
        """
        Внесение партии.

        POST /api/stocks/
        Body: {"product_id": 1, "member_id": 7, "category": "Kilo", "quantity": "25"}
        """
        serializer = StockCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            member = User.objects.get(pk=serializer.validated_data['member_id'])
        except User.DoesNotExist:
            return Response(
                {'error': 'Член кооператива не найден'},
                status=status.HTTP_400_BAD_REQUEST
            )

        try:
            stock = StockService.add_stock(
                product=serializer.validated_data['product'],
                member=member,
                category=serializer.validated_data['category'],
                quantity=serializer.validated_data['quantity'],
            )
        except ValidationError as e:
            return Response({'error': e.messages[0]}, status=status.HTTP_400_BAD_REQUEST)

        return Response(StockSerializer(stock).data, status=status.HTTP_201_CREATED)
