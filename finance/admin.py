"""
Django Admin configuration for FINANCE app.
"""

from django.contrib import admin

from .models import RidePayment, Transaction


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    """Admin for Transaction with audit trail."""

    list_display = (
        'short_id',
        'user_phone',
        'transaction_type',
        'formatted_amount',
        'balance_after',
        'status',
        'ride_link',
        'created_at'
    )
    list_filter = ('transaction_type', 'status', 'created_at')
    search_fields = (
        'id',
        'user__phone_number',
        'ride__id',
        'description'
    )
    ordering = ('-created_at',)
    date_hierarchy = 'created_at'

    readonly_fields = (
        'id',
        'user',
        'transaction_type',
        'amount',
        'balance_before',
        'balance_after',
        'ride',
        'created_at'
    )

    fieldsets = (
        ('Transação', {
            'fields': ('id', 'user', 'transaction_type', 'status')
        }),
        ('Valores', {
            'fields': ('amount', 'balance_before', 'balance_after')
        }),
        ('Detalhes', {
            'fields': ('description', 'ride')
        }),
        ('Histórico', {
            'fields': ('created_at',)
        }),
    )

    def short_id(self, obj):
        return str(obj.id)[:8]
    short_id.short_description = "ID"

    def user_phone(self, obj):
        return obj.user.phone_number
    user_phone.short_description = "Usuário"

    def formatted_amount(self, obj):
        sign = '+' if obj.amount >= 0 else ''
        return f"{sign}R$ {obj.amount}"
    formatted_amount.short_description = "Valor"

    def ride_link(self, obj):
        if obj.ride_id:
            return str(obj.ride_id)[:8]
        return "-"
    ride_link.short_description = "Corrida"

    def has_add_permission(self, request):
        """Transactions are created by WalletService only."""
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    actions = ['export_transactions_csv']

    @admin.action(description="📥 Exportar CSV")
    def export_transactions_csv(self, request, queryset):
        import csv
        from django.http import HttpResponse

        response = HttpResponse(content_type='text/csv')
        response['Content-Disposition'] = 'attachment; filename="transacoes_falcoes.csv"'
        response.write('﻿')

        writer = csv.writer(response)
        writer.writerow([
            'ID', 'Usuário', 'Tipo', 'Valor', 'Saldo antes', 'Saldo depois',
            'Status', 'Corrida', 'Descrição', 'Data'
        ])

        for t in queryset.select_related('user'):
            writer.writerow([
                str(t.id)[:8],
                t.user.phone_number,
                t.get_transaction_type_display(),
                t.amount,
                t.balance_before,
                t.balance_after,
                t.get_status_display(),
                str(t.ride_id)[:8] if t.ride_id else '',
                t.description,
                t.created_at.strftime('%d/%m/%Y %H:%M'),
            ])
        return response


@admin.register(RidePayment)
class RidePaymentAdmin(admin.ModelAdmin):
    """Admin for PIX payments (Mercado Pago)."""

    list_display = (
        'provider_payment_id',
        'ride',
        'amount',
        'status',
        'provider_status',
        'callback_received',
        'created_at',
    )
    list_filter = ('status', 'callback_received', 'created_at')
    search_fields = ('provider_payment_id', 'ride__id')
    ordering = ('-created_at',)
    date_hierarchy = 'created_at'

    readonly_fields = (
        'id',
        'ride',
        'amount',
        'status',
        'provider_payment_id',
        'provider_status',
        'qr_code',
        'callback_received',
        'callback_data',
        'created_at',
        'updated_at',
        'confirmed_at',
    )
    exclude = ('qr_code_base64',)

    def has_add_permission(self, request):
        return False
