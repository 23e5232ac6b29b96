"""
Celery tasks for the payout queues.

process_payout: one job per payout, retried on transient errors with
exponential backoff (5s, 10s). process_batch: discovery scan, retried once
after a fixed 30s.
"""
from __future__ import annotations

import logging

import redis
from celery import Task, shared_task
from django.conf import settings
from django.db import DatabaseError

from apps.payments.gateways import GatewayConfigurationError, GatewayTransientError

from .batch import process_batch_job
from .processing import INFRASTRUCTURE_ERRORS, final_attempt, process_payout_job
from .queue import BATCH_TASK, PAYOUT_TASK, queue_manager

logger = logging.getLogger(__name__)


class PayoutJobTask(Task):
    """Logs job outcomes and frees the payout's dedup claim once the job is done."""

    def on_success(self, retval, task_id, args, kwargs):
        logger.info(f"Payout job {task_id} completed", extra={'job_id': task_id})
        queue_manager.release_payout_job(task_id)

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error(f"Payout job {task_id} failed: {exc}", extra={'job_id': task_id})
        queue_manager.release_payout_job(task_id)

    def on_retry(self, exc, task_id, args, kwargs, einfo):
        logger.warning(
            f"Payout job {task_id} retrying after attempt {self.request.retries + 1}: {exc}",
            extra={'job_id': task_id},
        )


class BatchJobTask(Task):
    def on_success(self, retval, task_id, args, kwargs):
        logger.info(f"Batch job {task_id} completed", extra={'job_id': task_id, 'result': retval})

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error(f"Batch job {task_id} failed: {exc}", extra={'job_id': task_id})


@shared_task(
    bind=True,
    base=PayoutJobTask,
    name=PAYOUT_TASK,
    autoretry_for=(GatewayTransientError, GatewayConfigurationError) + INFRASTRUCTURE_ERRORS,
    max_retries=settings.PAYOUT_JOB_ATTEMPTS - 1,
    retry_backoff=settings.PAYOUT_JOB_BACKOFF,
    retry_backoff_max=600,
    retry_jitter=False,
)
def process_payout(self, job_data):
    return process_payout_job(
        job_data,
        is_final_attempt=final_attempt(self.request.retries, self.max_retries),
        is_retry=self.request.retries > 0,
    )


@shared_task(
    bind=True,
    base=BatchJobTask,
    name=BATCH_TASK,
    autoretry_for=(DatabaseError, redis.RedisError),
    max_retries=settings.BATCH_JOB_ATTEMPTS - 1,
    default_retry_delay=settings.BATCH_JOB_BACKOFF,
    retry_backoff=False,
)
def process_batch(self, job_data=None):
    return process_batch_job(job_data).as_dict()
