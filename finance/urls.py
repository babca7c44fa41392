"""
Finance App URLs
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import TransactionViewSet, WalletViewSet
from . import payment_api

router = DefaultRouter()
router.register(r'transactions', TransactionViewSet, basename='transaction')

urlpatterns = [
    # Courier wallet
    path('wallet/balance/', WalletViewSet.as_view({'get': 'balance'}), name='wallet-balance'),
    path('wallet/history/', WalletViewSet.as_view({'get': 'history'}), name='wallet-history'),

    # Mercado Pago notifications
    path('payments/mercadopago/webhook/', payment_api.mercadopago_webhook, name='mercadopago-webhook'),

    # Router URLs
    path('', include(router.urls)),
]
