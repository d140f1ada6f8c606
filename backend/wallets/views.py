import logging

from django.conf import settings
from django.utils.crypto import constant_time_compare
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from bookings.serializers import validate_payload
from common.utils.responses import handle_service_errors
from services.exceptions import ForbiddenError
from services.finance import (
    apply_payment_webhook,
    get_wallet,
    initiate_topup,
    initiate_withdrawal,
    ledger_balance,
)
from .models import Transaction
from .serializers import (
    AmountSerializer,
    PaymentWebhookSerializer,
    TopUpSerializer,
    TransactionSerializer,
    WalletSerializer,
)

logger = logging.getLogger(__name__)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def wallet_balance(request):
    """Balance of the caller's wallet for their current role."""
    wallet = get_wallet(request.user, request.user.role)
    data = WalletSerializer(wallet).data
    data['ledger_balance'] = str(ledger_balance(request.user.id, wallet.role))
    return Response(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def transaction_list(request):
    transactions = Transaction.objects.filter(user=request.user, role=request.user.role)
    status_filter = request.query_params.get('status')
    if status_filter:
        transactions = transactions.filter(status=status_filter)
    transactions = transactions[:100]
    return Response({
        'count': len(transactions),
        'transactions': TransactionSerializer(transactions, many=True).data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@handle_service_errors
def topup(request):
    """Start a top-up. The wallet is credited when the gateway confirms."""
    payload = validate_payload(TopUpSerializer, request.data)
    txn = initiate_topup(request.user, request.user.role, payload['amount'], method=payload['method'])
    return Response({
        'success': True,
        'message': 'Top-up initiated',
        'transaction': TransactionSerializer(txn).data,
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@handle_service_errors
def withdraw(request):
    """Request a payout of driver earnings."""
    if request.user.role != 'driver':
        raise ForbiddenError('Only drivers can withdraw')
    payload = validate_payload(AmountSerializer, request.data)
    txn = initiate_withdrawal(request.user, payload['amount'], role='driver')
    return Response({
        'success': True,
        'message': 'Withdrawal initiated',
        'transaction': TransactionSerializer(txn).data,
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
@handle_service_errors
def payment_webhook(request):
    """
    Gateway callback for charges and payouts.

    Deliveries are idempotent: only the first terminal status for a
    transaction moves money, repeats are acknowledged with applied=False.
    """
    secret = getattr(settings, 'PAYMENT_WEBHOOK_SECRET', '')
    if secret and not constant_time_compare(request.headers.get('X-Webhook-Secret', ''), secret):
        logger.warning('Rejected payment webhook with a bad secret')
        raise ForbiddenError('Invalid webhook signature')

    payload = validate_payload(PaymentWebhookSerializer, request.data)
    result = apply_payment_webhook(
        payload['reference'],
        payload['status'],
        gateway_txn_id=payload.get('transaction_id') or None,
    )
    return Response({
        'received': True,
        'applied': result.applied,
        'reference': result.transaction.reference,
        'status': result.transaction.status,
    })
