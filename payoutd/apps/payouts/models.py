from __future__ import annotations

import uuid

from django.db import models
from django.utils import timezone


class PaymentProvider(models.TextChoices):
    PAYSTACK = 'PAYSTACK', 'Paystack'
    FLUTTERWAVE = 'FLUTTERWAVE', 'Flutterwave'


class PayoutStatus(models.TextChoices):
    REQUESTED = 'REQUESTED', 'Requested'
    PROCESSING = 'PROCESSING', 'Processing'
    COMPLETED = 'COMPLETED', 'Completed'
    FAILED = 'FAILED', 'Failed'


class EarningStatus(models.TextChoices):
    PENDING_CLEARANCE = 'PENDING_CLEARANCE', 'Pending clearance'
    AVAILABLE = 'AVAILABLE', 'Available'
    PAID_OUT = 'PAID_OUT', 'Paid out'
    FROZEN = 'FROZEN', 'Frozen'


class Payout(models.Model):
    """A provider's request to withdraw earnings to a bank account.

    REQUESTED -> PROCESSING -> (submitted: transaction_ref set) | FAILED.
    COMPLETED is written later by the settlement webhook. FAILED and
    COMPLETED are final; a failed payout is re-requested as a new row.
    """

    class Meta:
        db_table = 'payout'
        ordering = ('created_at',)
        indexes = [
            models.Index(fields=['status', 'created_at'], name='payout_status_created_idx'),
        ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    provider_id = models.UUIDField(db_column='providerId', db_index=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=10, default='NGN')
    payment_provider = models.CharField(
        max_length=20,
        db_column='paymentProvider',
        choices=PaymentProvider.choices,
        default=PaymentProvider.FLUTTERWAVE,
    )
    account_number = models.CharField(max_length=34, db_column='accountNumber', blank=True, default='')
    account_name = models.CharField(max_length=255, db_column='accountName', blank=True, default='')
    bank_code = models.CharField(max_length=20, db_column='bankCode', blank=True, default='')
    bank_name = models.CharField(max_length=255, db_column='bankName', blank=True, default='')
    status = models.CharField(max_length=20, choices=PayoutStatus.choices, default=PayoutStatus.REQUESTED)
    transaction_ref = models.CharField(max_length=120, null=True, blank=True, unique=True, db_column='transactionRef')
    metadata = models.JSONField(null=True, blank=True)
    failure_reason = models.TextField(null=True, blank=True, db_column='failureReason')
    created_at = models.DateTimeField(default=timezone.now, db_column='createdAt')
    updated_at = models.DateTimeField(auto_now=True, db_column='updatedAt')
    processed_at = models.DateTimeField(null=True, blank=True, db_column='processedAt')

    def __str__(self) -> str:
        return f"Payout {self.id} ({self.status})"

    @property
    def bank_details(self) -> dict:
        return {
            'account_number': self.account_number,
            'bank_code': self.bank_code,
            'account_name': self.account_name,
        }


class Earning(models.Model):
    """One ledger entry of revenue owed to a provider for a completed booking."""

    class Meta:
        db_table = 'earning'
        indexes = [
            models.Index(fields=['provider_id', 'status'], name='earning_provider_status_idx'),
        ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    provider_id = models.UUIDField(db_column='providerId', db_index=True)
    booking_id = models.UUIDField(db_column='bookingId', unique=True)
    gross_amount = models.DecimalField(max_digits=12, decimal_places=2, db_column='grossAmount')
    platform_fee = models.DecimalField(max_digits=12, decimal_places=2, db_column='platformFee')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=10, default='NGN')
    status = models.CharField(
        max_length=20,
        choices=EarningStatus.choices,
        default=EarningStatus.PENDING_CLEARANCE,
    )
    payout = models.ForeignKey(
        Payout,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name='earnings',
        db_column='payoutId',
    )
    metadata = models.JSONField(null=True, blank=True)
    cleared_at = models.DateTimeField(null=True, blank=True, db_column='clearedAt')
    created_at = models.DateTimeField(default=timezone.now, db_column='createdAt')
    updated_at = models.DateTimeField(auto_now=True, db_column='updatedAt')

    def __str__(self) -> str:
        return f"Earning {self.id} ({self.status})"
