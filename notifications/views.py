# apps/notifications/views.py
"""
Views для уведомлений.

API ENDPOINTS:
- GET /api/notifications/?unread=true - уведомления текущего пользователя
- GET /api/notifications/unread-count/ - количество непрочитанных
- POST /api/notifications/{id}/read/ - отметить прочитанным
- POST /api/notifications/read-all/ - отметить все прочитанными
"""

from rest_framework import serializers, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from .models import Notification
from .services import NotificationService


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = [
            'id',
            'notification_type',
            'title',
            'message',
            'related_object_type',
            'related_object_id',
            'is_read',
            'created_at',
            'read_at',
        ]
        read_only_fields = fields


class NotificationViewSet(viewsets.ReadOnlyModelViewSet):
    """Уведомления текущего пользователя."""

    serializer_class = NotificationSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        unread_only = self.request.query_params.get('unread') in ('1', 'true', 'True')
        return NotificationService.get_user_notifications(
            self.request.user,
            unread_only=unread_only,
            notification_type=self.request.query_params.get('type'),
        )

    @action(detail=False, methods=['get'], url_path='unread-count')
    def unread_count(self, request):
        return Response({'unread': NotificationService.get_unread_count(request.user)})

    @action(detail=True, methods=['post'])
    def read(self, request, pk=None):
        notification = NotificationService.mark_as_read(pk, request.user)
        if notification is None:
            return Response({'error': 'Уведомление не найдено'}, status=status.HTTP_404_NOT_FOUND)
        return Response(NotificationSerializer(notification).data)

    @action(detail=False, methods=['post'], url_path='read-all')
    def read_all(self, request):
        count = NotificationService.mark_all_as_read(request.user)
        return Response({'marked': count})
