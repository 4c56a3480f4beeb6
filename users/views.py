# apps/users/views.py
"""
Views для входа и блокировок.

API ENDPOINTS:
- POST /api/auth/login/ - вход через портал (JWT)
- GET /api/auth/lockout-status/?identifier=...&portal=... - статус блокировки
- GET/PATCH /api/auth/profile/ - профиль
- GET /api/auth/admin/login-attempts/ - ключи блокировки (админ)
- POST /api/auth/admin/login-attempts/{id}/unlock/ - снять блокировку ключа
- POST /api/auth/admin/login-attempts/unlock/ - снять блокировку по логину
"""

import ipaddress
import logging

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters, generics, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework_simplejwt.tokens import RefreshToken

from .models import LoginAttempt
from .permissions import IsAdminUser
from .serializers import (
    LockoutStatusQuerySerializer,
    LoginAttemptSerializer,
    LoginSerializer,
    UnlockSerializer,
    UserProfileSerializer,
)
from .services import AuthenticationService, LoginLockoutService
from .throttles import LockoutStatusThrottle, LoginThrottle

logger = logging.getLogger(__name__)

UNKNOWN_IP = '0.0.0.0'


def get_client_ip(request) -> str:
    """
    IP клиента для ключа блокировки.

    Адрес берётся так же, как его видят throttle классы DRF:
    X-Forwarded-For учитывается только при NUM_PROXIES > 0
    (доверенные прокси), иначе - REMOTE_ADDR.
    """
    ident = BaseThrottle().get_ident(request)
    try:
        return str(ipaddress.ip_address((ident or '').strip()))
    except ValueError:
        logger.warning(f"Некорректный адрес клиента: {ident!r}")
        return UNKNOWN_IP


class LoginView(generics.GenericAPIView):
    """
    Вход в систему.

    POST /api/auth/login/

    Body:
    {
        "identifier": "juan@example.com",
        "password": "secret",
        "portal": "customer"
    }

    ОТВЕТЫ:
    - 200: токены + пользователь
    - 401: неверные данные (attempts_remaining - сколько попыток до блокировки)
    - 423: ключ заблокирован (remaining_seconds, lock_level для обратного отсчёта)
    """

    serializer_class = LoginSerializer
    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = [LoginThrottle]

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = AuthenticationService.authenticate(
            identifier=serializer.validated_data['identifier'],
            password=serializer.validated_data['password'],
            portal=serializer.validated_data['portal'],
            ip_address=get_client_ip(request),
        )

        refresh = RefreshToken.for_user(user)

        return Response({
            'access': str(refresh.access_token),
            'refresh': str(refresh),
            'user': UserProfileSerializer(user).data,
        })


class LockoutStatusView(generics.GenericAPIView):
    """
    Статус блокировки для обратного отсчёта на странице входа.

    GET /api/auth/lockout-status/?identifier=juan@example.com&portal=customer
    """

    serializer_class = LockoutStatusQuerySerializer
    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = [LockoutStatusThrottle]

    def get(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)

        lockout_status = LoginLockoutService().get_lockout_status(
            serializer.validated_data['identifier'],
            serializer.validated_data['portal'],
            get_client_ip(request),
        )
        return Response(lockout_status.as_dict())


class UserProfileView(generics.RetrieveUpdateAPIView):
    """
    Просмотр и редактирование профиля.

    GET /api/auth/profile/
    PATCH /api/auth/profile/
    """

    serializer_class = UserProfileSerializer
    permission_classes = [IsAuthenticated]
    http_method_names = ['get', 'patch', 'head', 'options']

    def get_object(self):
        return self.request.user


class LoginAttemptViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Ключи блокировки входа (только админ).

    GET /api/auth/admin/login-attempts/?user_type=customer&search=juan
    """

    queryset = LoginAttempt.objects.all()
    serializer_class = LoginAttemptSerializer
    permission_classes = [IsAdminUser]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['user_type', 'ip_address']
    search_fields = ['identifier']
    ordering_fields = ['last_attempt_at', 'failed_attempts', 'lock_level']
    ordering = ['-last_attempt_at']

    @action(detail=True, methods=['post'])
    def unlock(self, request, pk=None):
        """Снять блокировку с конкретного ключа."""
        attempt = self.get_object()
        LoginLockoutService().unlock(attempt.identifier, attempt.user_type, attempt.ip_address)
        attempt.refresh_from_db()

        return Response({
            'message': f'Блокировка снята: {attempt.identifier}',
            'attempt': LoginAttemptSerializer(attempt).data,
        })

    @action(detail=False, methods=['post'], url_path='unlock', url_name='unlock-identifier')
    def unlock_identifier(self, request):
        """Снять блокировку по логину (со всех IP, если IP не указан)."""
        serializer = UnlockSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        count = LoginLockoutService().unlock(
            serializer.validated_data['identifier'],
            serializer.validated_data['user_type'],
            serializer.validated_data.get('ip_address'),
        )

        if count == 0:
            return Response(
                {'error': 'Попытки входа для этого логина не найдены'},
                status=status.HTTP_404_NOT_FOUND
            )

        return Response({'message': 'Блокировка снята', 'unlocked': count})
