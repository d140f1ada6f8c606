"""
Wallet ledger operations.

A wallet balance only moves together with a ``success`` Transaction, and
always by an atomic ``F()`` increment, so concurrent settlements never lose
updates and the balance stays equal to the sum of successful transactions.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import F, Sum

from common.utils import to_money
from wallets.models import Wallet, Transaction, Commission
from services.exceptions import (
    NotFoundError,
    ValidationError,
    InsufficientFundsError,
)

User = get_user_model()
logger = logging.getLogger(__name__)


# ---------------------- Wallets ----------------------

def get_wallet(user, role: str) -> Wallet:
    wallet, _ = Wallet.objects.get_or_create(user=user, role=role)
    return wallet


def get_balance(user_id, role: str) -> Decimal:
    balance = Wallet.objects.filter(user_id=user_id, role=role).values_list("balance", flat=True).first()
    return balance if balance is not None else Decimal("0.00")


def _apply_delta(user, role: str, delta: Decimal) -> None:
    wallet = get_wallet(user, role)
    Wallet.objects.filter(pk=wallet.pk).update(balance=F("balance") + delta)


@transaction.atomic
def record_settled_transaction(
    user,
    role: str,
    amount,
    txn_type: str,
    method: str,
    booking=None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Transaction:
    """Write a ``success`` transaction and move the balance with it."""
    amount = to_money(amount)
    txn = Transaction.objects.create(
        user=user,
        role=role,
        amount=amount,
        type=txn_type,
        status=Transaction.STATUS_SUCCESS,
        method=method,
        booking=booking,
        metadata=metadata or {},
    )
    _apply_delta(user, role, txn.signed_amount)
    return txn


def ledger_balance(user_id, role: str) -> Decimal:
    """Signed sum of the pair's successful transactions."""
    rows = (
        Transaction.objects
        .filter(user_id=user_id, role=role, status=Transaction.STATUS_SUCCESS)
        .values("type")
        .annotate(total=Sum("amount"))
    )
    total = Decimal("0.00")
    for row in rows:
        if row["type"] == Transaction.TYPE_CREDIT:
            total += row["total"] or 0
        else:
            total -= row["total"] or 0
    return to_money(total)


# ---------------------- Commission ----------------------

def commission_rate_for(driver_id) -> float:
    """Latest per-driver override, else DEFAULT_COMMISSION_RATE (percent)."""
    override = (
        Commission.objects.filter(driver_id=driver_id)
        .order_by("-created_at", "-id")
        .values_list("percentage", flat=True)
        .first()
    )
    if override is not None:
        return float(override)
    return float(getattr(settings, "DEFAULT_COMMISSION_RATE", 15))


def calculate_commission(fare: float, rate: float):
    """Return (commission, driver_earnings) for a fare and a percentage rate."""
    commission = float(fare) * float(rate) / 100
    return commission, float(fare) - commission


def required_balance(fare: float, rate: Optional[float] = None) -> float:
    if rate is None:
        rate = float(getattr(settings, "DEFAULT_COMMISSION_RATE", 15))
    factor = float(getattr(settings, "DISPATCH_MIN_BALANCE_FACTOR", 1))
    return float(fare) * float(rate) / 100 * factor


def can_accept_booking(balance, fare, rate: Optional[float] = None) -> bool:
    """A driver may be offered a booking only if they can cover its commission."""
    try:
        return float(balance or 0) >= required_balance(float(fare or 0), rate)
    except (TypeError, ValueError):
        return False


# ---------------------- Trip settlement ----------------------

def debit_driver_commission(driver, amount, booking, rate: float) -> Transaction:
    return record_settled_transaction(
        driver,
        "driver",
        amount,
        Transaction.TYPE_DEBIT,
        "commission",
        booking=booking,
        metadata={
            "booking_id": booking.id,
            "reason": "Commission deduction",
            "commission_rate": rate,
        },
    )


def get_platform_account():
    username = getattr(settings, "PLATFORM_ACCOUNT_USERNAME", "platform")
    return User.objects.filter(username=username).first()


def credit_platform_commission(amount, booking) -> Optional[Transaction]:
    account = get_platform_account()
    if account is None:
        logger.warning("No platform account configured; commission for booking %s not credited", booking.id)
        return None
    return record_settled_transaction(
        account,
        "admin",
        amount,
        Transaction.TYPE_CREDIT,
        "commission",
        booking=booking,
        metadata={"booking_id": booking.id, "reason": "Commission earned", "driver_id": booking.driver_id},
    )


def debit_passenger_fare(passenger, amount, booking) -> Transaction:
    return record_settled_transaction(
        passenger,
        "passenger",
        amount,
        Transaction.TYPE_DEBIT,
        "fare",
        booking=booking,
        metadata={"booking_id": booking.id, "reason": "Trip fare"},
    )


# ---------------------- Top-up / withdrawal ----------------------

def _positive_amount(amount) -> Decimal:
    try:
        value = to_money(amount)
    except Exception:
        raise ValidationError("amount must be a number")
    if value <= 0:
        raise ValidationError("amount must be greater than zero")
    return value


def initiate_topup(user, role: str, amount, method: str = "gateway", gateway=None) -> Transaction:
    """
    Create a pending credit and ask the gateway to collect it.

    The wallet is only credited when the gateway's webhook reports success.
    A gateway failure marks the transaction failed and is raised.
    """
    from .payment_gateway import get_payment_gateway

    amount = _positive_amount(amount)
    txn = Transaction.objects.create(
        user=user,
        role=role,
        amount=amount,
        type=Transaction.TYPE_CREDIT,
        status=Transaction.STATUS_PENDING,
        method=method,
        metadata={"reason": "Wallet top-up"},
    )

    gateway = gateway or get_payment_gateway()
    try:
        response = gateway.initiate_charge(txn.reference, amount, phone_number=getattr(user, "phone_number", ""), method=method)
    except Exception:
        Transaction.objects.filter(pk=txn.pk, status=Transaction.STATUS_PENDING).update(status=Transaction.STATUS_FAILED)
        raise

    gateway_id = (response or {}).get("transaction_id")
    if gateway_id:
        Transaction.objects.filter(pk=txn.pk).update(gateway_txn_id=gateway_id)
        txn.gateway_txn_id = gateway_id
    return txn


def initiate_withdrawal(user, amount, role: str = "driver", gateway=None) -> Transaction:
    """
    Create a pending debit and request a payout.

    The balance check happens up front, but the balance itself is only
    reduced when the payout webhook reports success.
    """
    from .payment_gateway import get_payment_gateway

    amount = _positive_amount(amount)
    if get_balance(user.id, role) < amount:
        raise InsufficientFundsError("Wallet balance is lower than the requested amount")

    txn = Transaction.objects.create(
        user=user,
        role=role,
        amount=amount,
        type=Transaction.TYPE_DEBIT,
        status=Transaction.STATUS_PENDING,
        method="gateway",
        metadata={"reason": "Wallet withdrawal"},
    )

    gateway = gateway or get_payment_gateway()
    try:
        response = gateway.initiate_payout(txn.reference, amount, phone_number=getattr(user, "phone_number", ""))
    except Exception:
        Transaction.objects.filter(pk=txn.pk, status=Transaction.STATUS_PENDING).update(status=Transaction.STATUS_FAILED)
        raise

    gateway_id = (response or {}).get("transaction_id")
    if gateway_id:
        Transaction.objects.filter(pk=txn.pk).update(gateway_txn_id=gateway_id)
        txn.gateway_txn_id = gateway_id
    return txn


# ---------------------- Webhook ----------------------

@dataclass
class WebhookResult:
    transaction: Transaction
    applied: bool
    previous_status: str


_GATEWAY_STATUS_MAP = {
    "success": Transaction.STATUS_SUCCESS,
    "succeeded": Transaction.STATUS_SUCCESS,
    "completed": Transaction.STATUS_SUCCESS,
    "paid": Transaction.STATUS_SUCCESS,
    "failed": Transaction.STATUS_FAILED,
    "failure": Transaction.STATUS_FAILED,
    "canceled": Transaction.STATUS_FAILED,
    "cancelled": Transaction.STATUS_FAILED,
    "pending": Transaction.STATUS_PENDING,
}


def normalize_gateway_status(raw_status: str) -> str:
    status = _GATEWAY_STATUS_MAP.get(str(raw_status or "").strip().lower())
    if status is None:
        raise ValidationError(f"Unknown payment status '{raw_status}'")
    return status


def apply_payment_webhook(reference: str, raw_status: str, gateway_txn_id: Optional[str] = None) -> WebhookResult:
    """
    Apply a gateway confirmation exactly once.

    The pending -> terminal move is a conditional update, so of any number of
    deliveries (sequential or concurrent) only one changes the row and only
    that one touches the wallet. Later deliveries are acknowledged as no-ops.
    """
    new_status = normalize_gateway_status(raw_status)

    txn = Transaction.objects.filter(reference=reference).first()
    if txn is None and gateway_txn_id:
        txn = Transaction.objects.filter(gateway_txn_id=gateway_txn_id).first()
    if txn is None:
        raise NotFoundError(f"Transaction {reference} not found")

    previous_status = txn.status
    if previous_status in Transaction.TERMINAL_STATUSES or new_status == Transaction.STATUS_PENDING:
        logger.info("Webhook for %s ignored (status %s -> %s)", txn.reference, previous_status, new_status)
        return WebhookResult(transaction=txn, applied=False, previous_status=previous_status)

    with transaction.atomic():
        fields = {"status": new_status}
        if gateway_txn_id:
            fields["gateway_txn_id"] = gateway_txn_id
        won = Transaction.objects.filter(pk=txn.pk, status=Transaction.STATUS_PENDING).update(**fields)
        if not won:
            txn.refresh_from_db()
            return WebhookResult(transaction=txn, applied=False, previous_status=txn.status)

        txn.refresh_from_db()
        if new_status == Transaction.STATUS_SUCCESS:
            _apply_delta(txn.user, txn.role, txn.signed_amount)

    logger.info("Webhook applied to %s: %s -> %s", txn.reference, previous_status, new_status)
    return WebhookResult(transaction=txn, applied=True, previous_status=previous_status)
