import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models

ROLE_CHOICES = [
    ('passenger', 'Passenger'),
    ('driver', 'Driver'),
    ('admin', 'Admin'),
]


class Wallet(models.Model):
    """Balance for one (user, role) pair.

    The balance is only ever moved by an atomic increment that goes together
    with a ``success`` Transaction, so it always equals the signed sum of the
    pair's successful transactions.
    """

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='wallets')
    role = models.CharField(max_length=10, choices=ROLE_CHOICES)
    balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'wallets'
        constraints = [
            models.UniqueConstraint(fields=['user', 'role'], name='unique_wallet_user_role'),
        ]

    def __str__(self):
        return f"{self.user_id}/{self.role}: {self.balance}"


def generate_reference() -> str:
    return uuid.uuid4().hex


class Transaction(models.Model):
    TYPE_CREDIT = 'credit'
    TYPE_DEBIT = 'debit'
    TYPE_CHOICES = [
        (TYPE_CREDIT, 'Credit'),
        (TYPE_DEBIT, 'Debit'),
    ]

    STATUS_PENDING = 'pending'
    STATUS_SUCCESS = 'success'
    STATUS_FAILED = 'failed'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_SUCCESS, 'Success'),
        (STATUS_FAILED, 'Failed'),
    ]
    TERMINAL_STATUSES = (STATUS_SUCCESS, STATUS_FAILED)

    METHOD_CHOICES = [
        ('wallet', 'Wallet'),
        ('gateway', 'Payment gateway'),
        ('commission', 'Commission'),
        ('fare', 'Fare'),
    ]

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='transactions')
    role = models.CharField(max_length=10, choices=ROLE_CHOICES)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    type = models.CharField(max_length=10, choices=TYPE_CHOICES)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PENDING)
    method = models.CharField(max_length=20, choices=METHOD_CHOICES, default='wallet')
    reference = models.CharField(max_length=64, unique=True, default=generate_reference)
    gateway_txn_id = models.CharField(max_length=128, null=True, blank=True, db_index=True)
    booking = models.ForeignKey(
        'bookings.Booking',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='transactions'
    )
    metadata = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'wallet_transactions'
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"{self.type} {self.amount} ({self.status}) ref={self.reference}"

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.type == self.TYPE_CREDIT else -self.amount


class Commission(models.Model):
    """Commission percentage override for one driver; the latest row wins."""

    driver = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='commission_rates')
    percentage = models.DecimalField(max_digits=5, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'commissions'
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"{self.driver_id}: {self.percentage}%"


class DriverEarnings(models.Model):
    driver = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='earnings')
    booking = models.ForeignKey('bookings.Booking', on_delete=models.CASCADE, related_name='driver_earnings_records')
    trip_date = models.DateTimeField()
    gross_fare = models.DecimalField(max_digits=10, decimal_places=2)
    commission_amount = models.DecimalField(max_digits=10, decimal_places=2)
    net_earnings = models.DecimalField(max_digits=10, decimal_places=2)
    commission_percentage = models.DecimalField(max_digits=5, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'driver_earnings'
        ordering = ['-trip_date']


class AdminEarnings(models.Model):
    booking = models.ForeignKey('bookings.Booking', on_delete=models.CASCADE, related_name='admin_earnings_records')
    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    passenger = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    trip_date = models.DateTimeField()
    gross_fare = models.DecimalField(max_digits=10, decimal_places=2)
    commission_earned = models.DecimalField(max_digits=10, decimal_places=2)
    commission_percentage = models.DecimalField(max_digits=5, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'admin_earnings'
        ordering = ['-trip_date']
