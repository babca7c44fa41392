"""
Django Admin configuration for CORE app.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import User, UserRole


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Custom admin for User model with phone-based auth."""

    list_display = (
        'phone_number',
        'full_name',
        'role',
        'courier_category',
        'is_approved',
        'online_badge',
        'blocked_until',
        'wallet_balance',
        'is_active',
        'date_joined'
    )
    list_filter = ('role', 'is_approved', 'courier_category', 'is_active', 'is_staff')
    search_fields = ('phone_number', 'full_name', 'vehicle_plate')
    ordering = ('-date_joined',)

    fieldsets = (
        (None, {
            'fields': ('phone_number', 'password')
        }),
        ('Perfil', {
            'fields': ('full_name', 'email', 'role', 'is_approved')
        }),
        ('Motoboy', {
            'fields': (
                'courier_category', 'vehicle_plate', 'vehicle_model', 'vehicle_color',
                'online_until', 'blocked_until',
            ),
        }),
        ('Carteira', {
            'fields': ('wallet_balance',),
            'description': 'Saldo negativo = comissão devida à plataforma'
        }),
        ('Localização', {
            'fields': ('latitude', 'longitude', 'last_location_updated'),
            'classes': ('collapse',)
        }),
        ('Permissões', {
            'fields': ('is_active', 'is_staff', 'is_superuser', 'groups', 'user_permissions'),
            'classes': ('collapse',)
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('phone_number', 'role', 'password1', 'password2'),
        }),
    )

    readonly_fields = ('date_joined', 'last_location_updated', 'wallet_balance')

    actions = ['approve_users', 'lift_penalty', 'force_offline']

    def online_badge(self, obj):
        if obj.role == UserRole.COURIER:
            return obj.is_online
        return None
    online_badge.boolean = True
    online_badge.short_description = "Online"

    @admin.action(description="✅ Aprovar selecionados")
    def approve_users(self, request, queryset):
        updated = queryset.exclude(role=UserRole.ADMIN).update(is_approved=True, is_active=True)
        self.message_user(request, f"✅ {updated} usuário(s) aprovado(s).")

    @admin.action(description="⏱️ Remover bloqueio temporário")
    def lift_penalty(self, request, queryset):
        updated = queryset.filter(role=UserRole.COURIER).update(blocked_until=None)
        self.message_user(request, f"✅ Bloqueio removido de {updated} motoboy(s).")

    @admin.action(description="📴 Colocar offline")
    def force_offline(self, request, queryset):
        updated = queryset.filter(role=UserRole.COURIER).update(online_until=None)
        self.message_user(request, f"✅ {updated} motoboy(s) offline.")
