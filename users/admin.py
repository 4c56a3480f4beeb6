from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from .models import LoginAttempt, User
from .services import LoginLockoutService


@admin.register(User)
class CustomUserAdmin(UserAdmin):
    list_display = ['email', 'member_id', 'name', 'role', 'is_active', 'created_at']
    list_filter = ['role', 'is_active', 'created_at']
    search_fields = ['email', 'member_id', 'name', 'contact_number']
    ordering = ['-created_at']

    fieldsets = (
        (None, {'fields': ('email', 'password')}),
        ('Личная информация', {'fields': ('name', 'member_id', 'contact_number')}),
        ('Роль и права', {'fields': ('role', 'is_active', 'is_staff', 'is_superuser')}),
        ('Группы', {'fields': ('groups', 'user_permissions')}),
        ('Даты', {'fields': ('last_login', 'created_at', 'updated_at')}),
    )

    readonly_fields = ['created_at', 'updated_at']

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('email', 'name', 'member_id', 'password1', 'password2', 'role'),
        }),
    )

    actions = ['block_users', 'unblock_users']

    def block_users(self, request, queryset):
        """Массовое отключение пользователей"""
        updated = queryset.exclude(role='admin').update(is_active=False)
        self.message_user(request, f'Отключено {updated} пользователей')

    block_users.short_description = 'Отключить выбранных пользователей'

    def unblock_users(self, request, queryset):
        """Массовое включение пользователей"""
        updated = queryset.update(is_active=True)
        self.message_user(request, f'Включено {updated} пользователей')

    unblock_users.short_description = 'Включить выбранных пользователей'


@admin.register(LoginAttempt)
class LoginAttemptAdmin(admin.ModelAdmin):
    list_display = ['identifier', 'user_type', 'ip_address', 'failed_attempts', 'lock_level',
                    'lock_expires_at', 'last_attempt_at']
    list_filter = ['user_type', 'lock_level']
    search_fields = ['identifier', 'ip_address']
    readonly_fields = ['created_at', 'updated_at']
    actions = ['unlock_keys']

    def unlock_keys(self, request, queryset):
        """Снять блокировку с выбранных ключей"""
        service = LoginLockoutService()
        count = sum(
            service.unlock(attempt.identifier, attempt.user_type, attempt.ip_address)
            for attempt in queryset
        )
        self.message_user(request, f'Разблокировано {count} ключей')

    unlock_keys.short_description = 'Снять блокировку'
