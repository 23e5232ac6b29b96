from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import redis
from django.db import InterfaceError, OperationalError
from django.utils import timezone

from apps.payments.gateways import (
    BankDetails,
    DuplicateReferenceError,
    GatewayError,
    TransferRequest,
    TransferResult,
    get_gateway,
)

from .models import PayoutStatus
from .services import (
    PayoutStateError,
    PayoutTerminalError,
    get_payout,
    mark_failed,
    mark_processing,
    record_submission,
    validate_bank_details,
)

logger = logging.getLogger(__name__)

# Infrastructure failures outside the gateway that another attempt can get past
INFRASTRUCTURE_ERRORS = (redis.RedisError, OperationalError, InterfaceError)


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, GatewayError):
        return exc.retryable
    return isinstance(exc, INFRASTRUCTURE_ERRORS)


def _initiate(payout, gateway, is_retry: bool) -> Optional[TransferResult]:
    """Submit the transfer, or adopt the one an earlier attempt already created.

    Returns None when the gateway reports the reference as taken but the
    transfer cannot be found, which leaves the payout for reconciliation.
    """
    reference = str(payout.id)
    if is_retry:
        existing = gateway.find_transfer(reference)
        if existing is not None:
            logger.info(f"Payout {payout.id} found existing transfer {existing.reference_id} on retry")
            return existing
    try:
        return gateway.initiate_transfer(TransferRequest(
            amount=payout.amount,
            currency=payout.currency,
            bank_details=BankDetails(
                account_number=payout.account_number,
                bank_code=payout.bank_code,
                account_name=payout.account_name,
            ),
            reference=reference,
            narration=f"Payout to {payout.account_name}",
        ))
    except DuplicateReferenceError:
        existing = gateway.find_transfer(reference)
        if existing is None:
            logger.error(
                f"Gateway reports reference {reference} as used but no transfer was found",
                extra={'payout_id': reference},
            )
        return existing


def _submit(payout_id: str, gateway=None, is_retry: bool = False) -> Dict[str, Any]:
    mark_processing(payout_id)

    payout = get_payout(payout_id)
    if payout.status != PayoutStatus.PROCESSING:
        raise PayoutStateError(f"Payout {payout_id} is {payout.status}, expected {PayoutStatus.PROCESSING}")
    if payout.transaction_ref:
        # An earlier attempt already reached the gateway and recorded it
        logger.info(f"Payout {payout_id} already submitted as {payout.transaction_ref}, skipping")
        return {'payout_id': payout_id, 'reference': payout.transaction_ref, 'skipped': True}

    validate_bank_details(payout)
    gateway = gateway or get_gateway(payout.payment_provider)
    result = _initiate(payout, gateway, is_retry)
    if result is None:
        return {'payout_id': payout_id, 'reference': None, 'recorded': False}

    metadata = {
        'gateway': payout.payment_provider,
        'gateway_status': result.gateway_status,
        'transfer_id': result.transfer_id,
        'submitted_at': timezone.now().isoformat(),
        'response': result.raw,
    }
    if not record_submission(payout_id, result.reference_id, metadata):
        # Money may already be moving; never turn this into a failure
        logger.error(
            f"Transfer {result.reference_id} accepted but payout {payout_id} was changed concurrently",
            extra={'payout_id': payout_id, 'reference': result.reference_id},
        )
        return {'payout_id': payout_id, 'reference': result.reference_id, 'recorded': False}

    logger.info(
        f"Payout {payout_id} submitted with reference {result.reference_id}",
        extra={'payout_id': payout_id, 'reference': result.reference_id, 'gateway_status': result.gateway_status},
    )
    return {'payout_id': payout_id, 'reference': result.reference_id, 'gateway_status': result.gateway_status}


def process_payout_job(
    job_data: Dict[str, Any],
    gateway=None,
    is_final_attempt: bool = True,
    is_retry: bool = False,
) -> Dict[str, Any]:
    """Run one payout job.

    Transient failures leave the payout PROCESSING and re-raise so the queue
    retries with the same reference. A retry first asks the gateway for a
    transfer already created under that reference. On the last attempt the
    payout is marked FAILED first. Anything else marks it FAILED and raises
    ``PayoutTerminalError``.
    """
    payout_id = str(job_data['payout_id'])
    logger.info(
        f"Processing payout {payout_id}",
        extra={
            'payout_id': payout_id,
            'amount': job_data.get('amount'),
            'provider_id': job_data.get('provider_id'),
        },
    )
    try:
        return _submit(payout_id, gateway=gateway, is_retry=is_retry)
    except Exception as exc:
        reason = str(exc) or exc.__class__.__name__
        if is_transient(exc):
            if not is_final_attempt:
                logger.warning(f"Payout {payout_id} hit a transient error, will retry: {reason}")
                raise
            mark_failed(payout_id, reason)
            raise
        logger.error(f"Payout {payout_id} failed: {reason}", extra={'payout_id': payout_id})
        mark_failed(payout_id, reason)
        raise PayoutTerminalError(reason) from exc


def build_job_data(payout) -> Dict[str, Any]:
    """Snapshot of a payout carried on its job. Status is always re-read."""
    return {
        'payout_id': str(payout.id),
        'amount': str(payout.amount),
        'currency': payout.currency,
        'bank_details': payout.bank_details,
        'provider_id': str(payout.provider_id),
    }


def final_attempt(retries: int, max_retries: Optional[int]) -> bool:
    return max_retries is not None and retries >= max_retries
