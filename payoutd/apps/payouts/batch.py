from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from django.conf import settings
from django.db import DatabaseError

from .processing import build_job_data
from .queue import BATCH_JOB_TYPE, QueueManager, queue_manager
from .services import PayoutError, find_submittable_payouts, mark_failed, validate_bank_details

logger = logging.getLogger(__name__)


class EnqueueFailedError(PayoutError):
    """Raised when the payout job could not be published."""


@dataclass
class BatchResult:
    processed: int = 0
    successful: int = 0
    failed: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def process_approved_payouts(
    batch_size: Optional[int] = None,
    queue: Optional[QueueManager] = None,
) -> BatchResult:
    """Fan approved, unsubmitted payouts out to payout jobs, oldest first.

    Each candidate is handled on its own: a failure marks that payout FAILED
    and the scan moves on.
    """
    queue = queue or queue_manager
    batch_size = batch_size or settings.PAYOUT_BATCH_SIZE
    result = BatchResult()

    payouts = find_submittable_payouts(batch_size)
    if not payouts:
        logger.info("No approved payouts to process")
        return result

    logger.info(f"Processing batch of {len(payouts)} payouts (batch size {batch_size})")
    for payout in payouts:
        result.processed += 1
        payout_id = str(payout.id)
        try:
            validate_bank_details(payout)
            job = queue.add_payout_job(build_job_data(payout))
            if job is None:
                raise EnqueueFailedError("Failed to queue payout job")
            result.successful += 1
        except Exception as exc:
            reason = str(exc) or exc.__class__.__name__
            result.failed += 1
            result.errors.append({'payout_id': payout_id, 'error': reason})
            logger.warning(f"Payout {payout_id} not queued: {reason}", extra={'payout_id': payout_id})
            try:
                mark_failed(payout_id, reason)
            except DatabaseError as db_exc:
                logger.error(f"Could not mark payout {payout_id} FAILED: {db_exc}")

    logger.info(
        "batch_processing_metrics",
        extra={
            'total_processed': result.processed,
            'successful': result.successful,
            'failed': result.failed,
            'errors': result.errors,
        },
    )
    return result


def process_batch_job(job_data: Optional[Dict[str, Any]] = None, queue: Optional[QueueManager] = None) -> BatchResult:
    job_data = job_data or {}
    job_type = job_data.get('type', BATCH_JOB_TYPE)
    if job_type != BATCH_JOB_TYPE:
        raise ValueError(f"Unknown batch job type: {job_type}")
    return process_approved_payouts(job_data.get('batch_size'), queue=queue)
