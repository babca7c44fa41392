"""
Django Admin configuration for LOGISTICS app.
"""

from django.contrib import admin

from .models import Ride, RideExposure, RideMessage
from .services.lifecycle import CANCELLABLE_STATUSES, cancel_ride


class RideExposureInline(admin.TabularInline):
    model = RideExposure
    extra = 0
    can_delete = False
    readonly_fields = ('courier', 'cycle', 'exposed_at', 'lapsed_at')

    def has_add_permission(self, request, obj=None):
        return False


class RideMessageInline(admin.TabularInline):
    model = RideMessage
    extra = 0
    readonly_fields = ('sender', 'text', 'created_at')

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Ride)
class RideAdmin(admin.ModelAdmin):
    """Admin for rides with full details."""

    list_display = (
        'short_id',
        'status',
        'service_kind',
        'client_phone',
        'courier_name',
        'price',
        'payment_method',
        'dispatch_cycle',
        'created_at'
    )
    list_filter = ('status', 'service_kind', 'payment_method', 'created_at')
    search_fields = (
        'id',
        'client__phone_number',
        'courier__phone_number',
        'origin',
        'destination'
    )
    ordering = ('-created_at',)
    date_hierarchy = 'created_at'
    raw_id_fields = ('client', 'courier')
    inlines = [RideExposureInline, RideMessageInline]

    readonly_fields = (
        'id',
        'status',
        'dispatch_cycle',
        'security_code',
        'platform_fee',
        'courier_earning',
        'cancelled_by',
        'created_at',
        'assigned_at',
        'released_at',
        'started_at',
        'completed_at',
        'cancelled_at'
    )

    fieldsets = (
        ('Identificação', {
            'fields': ('id', 'status', 'service_kind', 'dispatch_cycle')
        }),
        ('Participantes', {
            'fields': ('client', 'courier')
        }),
        ('Trajeto', {
            'fields': ('origin', 'destination')
        }),
        ('Pagamento', {
            'fields': ('price', 'payment_method', 'platform_fee', 'courier_earning')
        }),
        ('Segurança', {
            'fields': ('security_code',),
            'classes': ('collapse',)
        }),
        ('Cancelamento', {
            'fields': ('cancellation_reason', 'cancelled_by'),
            'classes': ('collapse',)
        }),
        ('Histórico', {
            'fields': (
                'created_at', 'assigned_at', 'released_at',
                'started_at', 'completed_at', 'cancelled_at'
            ),
            'classes': ('collapse',)
        }),
    )

    actions = ['cancel_rides']

    def short_id(self, obj):
        return str(obj.id)[:8]
    short_id.short_description = "ID"

    def client_phone(self, obj):
        return obj.client.phone_number
    client_phone.short_description = "Cliente"

    def courier_name(self, obj):
        if obj.courier:
            return obj.courier.full_name or obj.courier.phone_number
        return "-"
    courier_name.short_description = "Motoboy"

    @admin.action(description="❌ Cancelar corridas selecionadas")
    def cancel_rides(self, request, queryset):
        cancelled = 0
        for ride_id in queryset.filter(status__in=CANCELLABLE_STATUSES).values_list('id', flat=True):
            result = cancel_ride(ride_id, actor=request.user)
            if result.success:
                cancelled += 1
        self.message_user(request, f"✅ {cancelled} corrida(s) cancelada(s).")


@admin.register(RideExposure)
class RideExposureAdmin(admin.ModelAdmin):
    """Read-only view of the exposure ledger."""

    list_display = ('ride', 'courier', 'cycle', 'exposed_at', 'lapsed_at')
    list_filter = ('cycle',)
    search_fields = ('ride__id', 'courier__phone_number')
    ordering = ('-exposed_at',)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(RideMessage)
class RideMessageAdmin(admin.ModelAdmin):
    list_display = ('ride', 'sender', 'text', 'created_at')
    search_fields = ('ride__id', 'sender__phone_number', 'text')
    ordering = ('-created_at',)
