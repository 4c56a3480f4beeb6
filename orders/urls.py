# apps/orders/urls.py
"""
URL маршруты для orders.

ENDPOINTS:
- /api/orders/cart/ - корзина, checkout, rate-limit
- /api/orders/orders/ - заказы, suspicious, clear-suspicious, approve, reject,
  approve-group, reject-group, merge-group
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter

from . import views

app_name = 'orders'

router = DefaultRouter()

router.register(r'cart', views.CartViewSet, basename='cart')
router.register(r'orders', views.OrderViewSet, basename='order')


urlpatterns = [
    path('', include(router.urls)),
]
