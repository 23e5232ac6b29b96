from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from django.db.models import Sum
from django.utils import timezone

from .models import Earning, EarningStatus, Payout, PayoutStatus

logger = logging.getLogger(__name__)

FAILURE_REASON_MAX_LENGTH = 500


class PayoutError(Exception):
    """Base exception for payout state transitions."""


class PayoutNotFoundError(PayoutError):
    """Raised when the payout referenced by a job no longer exists."""


class PayoutStateError(PayoutError):
    """Raised when a payout is not in the status a transition expects."""


class PayoutValidationError(PayoutError):
    """Raised when a payout cannot be submitted as stored (e.g. incomplete bank details)."""


class PayoutTerminalError(PayoutError):
    """A failure that another attempt cannot fix. The job must not be retried."""


def get_payout(payout_id) -> Payout:
    try:
        return Payout.objects.get(id=payout_id)
    except (Payout.DoesNotExist, ValueError) as exc:
        raise PayoutNotFoundError(f"Payout {payout_id} not found") from exc


def mark_processing(payout_id) -> bool:
    """REQUESTED/PROCESSING -> PROCESSING. Re-applying it is a no-op write."""
    updated = Payout.objects.filter(
        id=payout_id,
        status__in=(PayoutStatus.REQUESTED, PayoutStatus.PROCESSING),
    ).update(status=PayoutStatus.PROCESSING, updated_at=timezone.now())
    return updated == 1


def record_submission(payout_id, reference: str, metadata: Optional[Dict[str, Any]] = None) -> bool:
    """Store the gateway reference. Only the first submission of a payout wins."""
    updated = Payout.objects.filter(
        id=payout_id,
        status=PayoutStatus.PROCESSING,
        transaction_ref__isnull=True,
    ).update(transaction_ref=reference, metadata=metadata, updated_at=timezone.now())
    return updated == 1


def mark_failed(
    payout_id,
    reason: str,
    expected: Iterable[str] = (PayoutStatus.REQUESTED, PayoutStatus.PROCESSING),
) -> bool:
    now = timezone.now()
    reason = (reason or 'Unknown error')[:FAILURE_REASON_MAX_LENGTH]
    updated = Payout.objects.filter(id=payout_id, status__in=tuple(expected)).update(
        status=PayoutStatus.FAILED,
        failure_reason=reason,
        processed_at=now,
        updated_at=now,
    )
    if updated:
        logger.warning(f"Payout {payout_id} marked FAILED: {reason}", extra={'payout_id': str(payout_id)})
    else:
        logger.info(f"Payout {payout_id} not marked FAILED: status already moved on")
    return updated == 1


def find_submittable_payouts(batch_size: int) -> List[Payout]:
    """Approved payouts that have not reached the gateway yet, oldest first."""
    qs = Payout.objects.filter(
        status=PayoutStatus.PROCESSING,
        transaction_ref__isnull=True,
    ).order_by('created_at', 'id')
    return list(qs[:batch_size])


def validate_bank_details(payout: Payout) -> None:
    missing = [
        label
        for label, value in (
            ('account number', payout.account_number),
            ('bank code', payout.bank_code),
            ('account name', payout.account_name),
        )
        if not (value or '').strip()
    ]
    if missing:
        raise PayoutValidationError(f"Incomplete bank details: missing {', '.join(missing)}")


def _sum(qs) -> Decimal:
    return qs.aggregate(total=Sum('amount'))['total'] or Decimal('0')


def available_balance(provider_id) -> Decimal:
    """Earnings that have cleared and are not yet attached to a payout."""
    return _sum(Earning.objects.filter(
        provider_id=provider_id,
        status=EarningStatus.AVAILABLE,
        payout__isnull=True,
    ))


def earnings_summary(provider_id) -> Dict[str, Decimal]:
    base = Earning.objects.filter(provider_id=provider_id)
    return {
        'lifetime': _sum(base),
        'available': available_balance(provider_id),
        'pending_clearance': _sum(base.filter(status=EarningStatus.PENDING_CLEARANCE)),
        'paid_out': _sum(base.filter(status=EarningStatus.PAID_OUT)),
    }
