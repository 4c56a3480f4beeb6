# apps/products/urls.py
"""URL маршруты для products."""

from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import ProductViewSet, StockViewSet

app_name = 'products'

router = DefaultRouter()

# Каталог
router.register(r'products', ProductViewSet, basename='product')

# Партии членов кооператива
router.register(r'stocks', StockViewSet, basename='stock')

urlpatterns = [
    path('', include(router.urls)),
]
