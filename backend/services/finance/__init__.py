"""
Finance service - wallets, commission and payment gateway settlement.

This module handles:
    - Atomic wallet balance movements backed by transactions
    - Commission rates and driver affordability checks
    - Top-up / withdrawal initiation and idempotent webhook settlement
"""

from .ledger import (
    get_wallet,
    get_balance,
    ledger_balance,
    record_settled_transaction,
    commission_rate_for,
    calculate_commission,
    can_accept_booking,
    required_balance,
    debit_driver_commission,
    credit_platform_commission,
    debit_passenger_fare,
    initiate_topup,
    initiate_withdrawal,
    apply_payment_webhook,
    WebhookResult,
)
from .payment_gateway import PaymentGatewayClient, get_payment_gateway

__all__ = [
    "get_wallet",
    "get_balance",
    "ledger_balance",
    "record_settled_transaction",
    "commission_rate_for",
    "calculate_commission",
    "can_accept_booking",
    "required_balance",
    "debit_driver_commission",
    "credit_platform_commission",
    "debit_passenger_fare",
    "initiate_topup",
    "initiate_withdrawal",
    "apply_payment_webhook",
    "WebhookResult",
    "PaymentGatewayClient",
    "get_payment_gateway",
]
