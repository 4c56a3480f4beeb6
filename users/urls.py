# apps/users/urls.py
from django.urls import path, include
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenRefreshView, TokenVerifyView

from .views import (
    LoginView,
    LockoutStatusView,
    UserProfileView,
    LoginAttemptViewSet,
)

router = DefaultRouter()
router.register(r'admin/login-attempts', LoginAttemptViewSet, basename='admin-login-attempts')

app_name = 'users'

urlpatterns = [
    # Вход (identifier, password, portal)
    path('login/', LoginView.as_view(), name='login'),
    path('refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('verify/', TokenVerifyView.as_view(), name='token_verify'),

    # Обратный отсчёт блокировки
    path('lockout-status/', LockoutStatusView.as_view(), name='lockout_status'),

    # Профиль (GET, PATCH)
    path('profile/', UserProfileView.as_view(), name='profile'),

    # Админские функции
    path('', include(router.urls)),
]
