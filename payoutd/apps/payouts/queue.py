"""
Queue manager for the two payout queues.

``payout-processing`` carries one job per payout (id ``payout-<payoutId>``);
``batch-processing`` carries discovery scans. Jobs are published by task name
so this module never imports the task implementations.
"""
from __future__ import annotations

import json
import logging
import multiprocessing
import os
import time
import uuid
from typing import Any, Dict, List, Optional

import redis
from celery.result import AsyncResult
from django.conf import settings
from django.db import DatabaseError, transaction

from apps.core.redis_client import RedisCache, RedisManager, redis_manager

logger = logging.getLogger(__name__)

PAYOUT_TASK = 'apps.payouts.tasks.process_payout'
BATCH_TASK = 'apps.payouts.tasks.process_batch'
RECURRING_BATCH_JOB_ID = 'recurring-batch-processor'
BATCH_JOB_TYPE = 'process_approved_payouts'
DEDUP_KEY_PREFIX = 'payout-job:'

# kombu's redis transport splits a priority queue into one list per step
_PRIORITY_SEP = '\x06\x16'
_PRIORITY_STEPS = (3, 6, 9)


def payout_job_id(payout_id) -> str:
    return f"payout-{payout_id}"


def _run_worker(argv: List[str]) -> None:
    from config.celery_app import app

    app.worker_main(argv)


class QueueManager:
    def __init__(self, app=None, manager: Optional[RedisManager] = None) -> None:
        self._app = app
        self.redis = manager or redis_manager
        self.cache = RedisCache(self.redis)
        self._workers: List[multiprocessing.Process] = []

    @property
    def app(self):
        if self._app is None:
            from config.celery_app import app

            self._app = app
        return self._app

    # ---- enqueue -------------------------------------------------------

    @staticmethod
    def dedup_key(job_id: str) -> str:
        return f"{DEDUP_KEY_PREFIX}{job_id}"

    def add_payout_job(
        self,
        data: Dict[str, Any],
        delay: Optional[int] = None,
        priority: Optional[int] = None,
    ) -> Optional[AsyncResult]:
        """Publish one payout job, at most once per payout while it is live.

        Returns the job handle (the existing one for a duplicate) or None when
        the job could not be scheduled.
        """
        payout_id = data.get('payout_id')
        job_id = payout_job_id(payout_id)
        claimed = False
        try:
            key = self.dedup_key(job_id)
            claimed = bool(self.redis.get_client().set(
                key, str(int(time.time())), nx=True, ex=settings.PAYOUT_JOB_LOCK_TTL,
            ))
            if not claimed:
                logger.info(f"Payout job {job_id} already queued, not adding again", extra={'job_id': job_id})
                return AsyncResult(job_id, app=self.app)

            options: Dict[str, Any] = {'queue': settings.PAYOUT_QUEUE_NAME, 'task_id': job_id}
            if delay:
                options['countdown'] = delay
            if priority is not None:
                options['priority'] = priority
            result = self.app.send_task(PAYOUT_TASK, kwargs={'job_data': data}, **options)
            logger.info(
                f"Payout job added for payout {payout_id}",
                extra={'job_id': job_id, 'payout_id': str(payout_id), 'amount': data.get('amount')},
            )
            return result
        except Exception as exc:
            logger.error(f"Failed to add payout job for payout {payout_id}: {exc}", extra={'job_id': job_id})
            if claimed:
                self.release_payout_job(job_id)
            return None

    def release_payout_job(self, job_id: str) -> bool:
        return self.cache.delete(self.dedup_key(job_id))

    def add_batch_processing_job(self, delay: int = 0, batch_size: Optional[int] = None) -> Optional[AsyncResult]:
        # Manual triggers are never deduplicated against each other
        job_id = f"batch-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"
        job_data = {'type': BATCH_JOB_TYPE, 'batch_size': batch_size or settings.PAYOUT_BATCH_SIZE}
        try:
            result = self.app.send_task(
                BATCH_TASK,
                kwargs={'job_data': job_data},
                task_id=job_id,
                queue=settings.BATCH_QUEUE_NAME,
                countdown=delay or None,
            )
        except Exception as exc:
            logger.error(f"Failed to add batch processing job: {exc}")
            return None
        logger.info("Batch processing job added", extra={'job_id': job_id, 'delay': delay})
        return result

    def setup_recurring_batch_job(self):
        """(Re)register the single recurring discovery schedule.

        Any previous schedule for the batch task is removed first, so calling
        this on every deploy leaves exactly one registration.
        """
        from django_celery_beat.models import IntervalSchedule, PeriodicTask

        hours = settings.RECURRING_BATCH_INTERVAL_HOURS
        try:
            with transaction.atomic():
                removed, _ = PeriodicTask.objects.filter(task=BATCH_TASK).delete()
                schedule, _ = IntervalSchedule.objects.get_or_create(
                    every=hours,
                    period=IntervalSchedule.HOURS,
                )
                task = PeriodicTask.objects.create(
                    name=RECURRING_BATCH_JOB_ID,
                    task=BATCH_TASK,
                    interval=schedule,
                    queue=settings.BATCH_QUEUE_NAME,
                    kwargs=json.dumps({
                        'job_data': {'type': BATCH_JOB_TYPE, 'batch_size': settings.RECURRING_BATCH_SIZE},
                    }),
                    description='Submit approved payouts to the transfer gateway',
                )
        except DatabaseError as exc:
            logger.error(f"Failed to setup recurring batch job: {exc}")
            return None
        logger.info(f"Recurring batch job registered every {hours}h (replaced {removed})")
        return task

    # ---- workers -------------------------------------------------------

    def serverless_markers(self) -> List[str]:
        return [name for name in settings.SERVERLESS_ENV_MARKERS if os.environ.get(name)]

    def _worker_argv(self, queue: str, concurrency: int, name: str) -> List[str]:
        return [
            'worker',
            f'--queues={queue}',
            f'--concurrency={concurrency}',
            f'--hostname={name}@%h',
            '--loglevel=INFO',
        ]

    def initialize_workers(self, enable_workers: Optional[bool] = None) -> List[multiprocessing.Process]:
        enabled = settings.PAYOUT_WORKERS_ENABLED if enable_workers is None else enable_workers
        if not enabled:
            logger.info("Workers disabled by configuration")
            return []
        markers = self.serverless_markers()
        if markers:
            logger.info(f"Serverless environment detected ({', '.join(markers)}), workers not started")
            return []
        if self._workers:
            return self._workers

        specs = (
            (settings.PAYOUT_QUEUE_NAME, settings.PAYOUT_WORKER_CONCURRENCY, 'payout'),
            (settings.BATCH_QUEUE_NAME, settings.BATCH_WORKER_CONCURRENCY, 'batch'),
        )
        for queue, concurrency, name in specs:
            proc = multiprocessing.Process(
                target=_run_worker,
                args=(self._worker_argv(queue, concurrency, name),),
                name=f"{name}-worker",
            )
            proc.start()
            self._workers.append(proc)
            logger.info(f"Started {name} worker (pid={proc.pid}) on {queue} with concurrency {concurrency}")
        return self._workers

    def close_all(self, timeout: float = 30.0) -> None:
        # SIGTERM is a warm shutdown: workers finish their active jobs first
        for proc in self._workers:
            if proc.is_alive():
                proc.terminate()
        for proc in self._workers:
            proc.join(timeout)
            if proc.is_alive():
                logger.warning(f"Worker {proc.name} did not stop within {timeout}s, killing it")
                proc.kill()
                proc.join()
        self._workers = []
        if self._app is not None:
            self._app.close()
        self.redis.disconnect()
        logger.info("All queues and workers closed")

    # ---- stats ---------------------------------------------------------

    def _waiting(self, queue: str) -> int:
        client = self.redis.get_client()
        keys = [queue] + [f"{queue}{_PRIORITY_SEP}{step}" for step in _PRIORITY_STEPS]
        return sum(int(client.llen(key) or 0) for key in keys)

    @staticmethod
    def _count_by_queue(replies: Optional[Dict[str, list]], queue: str) -> int:
        count = 0
        for tasks in (replies or {}).values():
            for item in tasks or []:
                request = item.get('request', item)
                delivery = request.get('delivery_info') or {}
                if delivery.get('routing_key') == queue:
                    count += 1
        return count

    def get_queue_stats(self) -> Dict[str, Dict[str, int]]:
        from django_celery_results.models import TaskResult

        queues = {settings.PAYOUT_QUEUE_NAME: PAYOUT_TASK, settings.BATCH_QUEUE_NAME: BATCH_TASK}
        stats = {
            queue: {'waiting': 0, 'active': 0, 'scheduled': 0, 'completed': 0, 'failed': 0}
            for queue in queues
        }

        try:
            for queue in queues:
                stats[queue]['waiting'] = self._waiting(queue)
        except (redis.RedisError, OSError) as exc:
            logger.error(f"Failed to read queue lengths: {exc}")

        try:
            inspect = self.app.control.inspect(timeout=1.0)
            active = inspect.active()
            scheduled = inspect.scheduled()
        except Exception as exc:
            logger.warning(f"Worker inspection failed: {exc}")
            active = scheduled = None
        for queue in queues:
            stats[queue]['active'] = self._count_by_queue(active, queue)
            stats[queue]['scheduled'] = self._count_by_queue(scheduled, queue)

        for queue, task_name in queues.items():
            results = TaskResult.objects.filter(task_name=task_name)
            stats[queue]['completed'] = results.filter(status='SUCCESS').count()
            stats[queue]['failed'] = results.filter(status='FAILURE').count()
        return stats


queue_manager = QueueManager()
