"""
Finance App Views - Transactions & Wallet API
"""

from decimal import Decimal

from rest_framework import viewsets, permissions
from rest_framework.decorators import action
from rest_framework.response import Response
from django.db.models import Count, Sum

from .models import Transaction, TransactionType
from .serializers import (
    TransactionSerializer, TransactionListSerializer, WalletSummarySerializer
)
from core.models import UserRole
from core.permissions import IsCourier
from logistics.models import RideStatus


class TransactionViewSet(viewsets.ReadOnlyModelViewSet):
    """
    ViewSet for Transaction (read-only).
    Users can only see their own transactions.
    """

    queryset = Transaction.objects.all()
    permission_classes = [permissions.IsAuthenticated]
    filterset_fields = ['transaction_type', 'status']

    def get_serializer_class(self):
        if self.action == 'list':
            return TransactionListSerializer
        return TransactionSerializer

    def get_queryset(self):
        user = self.request.user
        if user.role == UserRole.ADMIN:
            return Transaction.objects.select_related('user')
        return Transaction.objects.filter(user=user)

    @action(detail=False, methods=['get'])
    def summary(self, request):
        """Totals per transaction type and per ride for the current user."""
        transactions = Transaction.objects.filter(user=request.user)

        by_type = {
            row['transaction_type']: {'count': row['count'], 'total': row['total']}
            for row in transactions.values('transaction_type')
            .annotate(count=Count('id'), total=Sum('amount'))
            .order_by()
        }

        return Response({
            'balance': request.user.wallet_balance,
            'total_transactions': sum(item['count'] for item in by_type.values()),
            'by_type': by_type,
            'rides_settled': transactions.exclude(ride__isnull=True).values('ride').distinct().count(),
            'net': sum((item['total'] for item in by_type.values()), Decimal('0.00')),
        })


class WalletViewSet(viewsets.ViewSet):
    """
    Courier wallet: ride earnings and platform commission.
    """

    permission_classes = [permissions.IsAuthenticated, IsCourier]

    @action(detail=False, methods=['get'])
    def balance(self, request):
        """Current balance. Negative means commission owed on cash rides."""
        user = request.user
        transactions = Transaction.objects.filter(user=user)

        earned = transactions.filter(
            transaction_type=TransactionType.RIDE_CREDIT
        ).aggregate(total=Sum('amount'))['total'] or 0

        commission = transactions.filter(
            transaction_type=TransactionType.COMMISSION
        ).aggregate(total=Sum('amount'))['total'] or 0

        data = {
            'balance': user.wallet_balance,
            'owes_platform': user.wallet_balance < 0,
            'total_earned': earned,
            'total_commission_paid': abs(commission),
            'completed_rides': user.assigned_rides.filter(status=RideStatus.COMPLETED).count(),
        }

        return Response(WalletSummarySerializer(data).data)

    @action(detail=False, methods=['get'])
    def history(self, request):
        """Get wallet transaction history."""
        transactions = Transaction.objects.filter(
            user=request.user
        ).order_by('-created_at')[:50]

        serializer = TransactionListSerializer(transactions, many=True)
        return Response(serializer.data)
