# apps/users/serializers.py
"""Сериализаторы для users."""

from rest_framework import serializers

from .models import LoginAttempt, LoginUserType, User


class LoginSerializer(serializers.Serializer):
    """
    Вход через портал.

    identifier - email (admin / logistic / customer) или номер члена (member).
    """

    identifier = serializers.CharField(max_length=254)
    password = serializers.CharField(write_only=True, trim_whitespace=False)
    portal = serializers.ChoiceField(choices=LoginUserType.choices, default=LoginUserType.CUSTOMER)

    def validate_identifier(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError('Логин обязателен')
        return value


class LockoutStatusQuerySerializer(serializers.Serializer):
    """Параметры запроса статуса блокировки."""

    identifier = serializers.CharField(max_length=254)
    portal = serializers.ChoiceField(choices=LoginUserType.choices, default=LoginUserType.CUSTOMER)


class UserProfileSerializer(serializers.ModelSerializer):
    """Профиль пользователя."""

    class Meta:
        model = User
        fields = ['id', 'email', 'member_id', 'name', 'contact_number', 'role', 'is_active', 'last_login']
        read_only_fields = ['id', 'email', 'member_id', 'role', 'is_active', 'last_login']


class LoginAttemptSerializer(serializers.ModelSerializer):
    """Ключ блокировки (для админа)."""

    is_locked = serializers.BooleanField(read_only=True)

    class Meta:
        model = LoginAttempt
        fields = [
            'id',
            'identifier',
            'user_type',
            'ip_address',
            'failed_attempts',
            'lock_level',
            'lock_expires_at',
            'is_locked',
            'last_attempt_at',
        ]
        read_only_fields = fields


class UnlockSerializer(serializers.Serializer):
    """Ручная разблокировка по логину."""

    identifier = serializers.CharField(max_length=254)
    user_type = serializers.ChoiceField(choices=LoginUserType.choices)
    ip_address = serializers.IPAddressField(required=False, allow_null=True)
