import json
import signal
import threading

from django.core.management.base import BaseCommand, CommandError

from apps.payouts.queue import queue_manager


class Command(BaseCommand):
    help = "Operate the payout queues: recurring schedule, manual batch trigger, stats and workers"

    def add_arguments(self, parser):
        sub = parser.add_subparsers(dest='action', required=True)
        sub.add_parser('setup-recurring', help='Register the recurring batch discovery schedule')
        trigger = sub.add_parser('trigger-batch', help='Enqueue a one-off batch discovery job')
        trigger.add_argument('--delay', type=int, default=0, help='Seconds before the job becomes runnable')
        trigger.add_argument('--batch-size', type=int, default=None)
        sub.add_parser('stats', help='Print job counts per queue')
        sub.add_parser('run-workers', help='Run both queue workers until interrupted')

    def handle(self, *args, **opts):
        action = opts['action']
        if action == 'setup-recurring':
            task = queue_manager.setup_recurring_batch_job()
            if task is None:
                raise CommandError('Failed to register recurring batch job')
            self.stdout.write(self.style.SUCCESS(f"Registered {task.name} ({task.interval})"))
        elif action == 'trigger-batch':
            job = queue_manager.add_batch_processing_job(delay=opts['delay'], batch_size=opts['batch_size'])
            if job is None:
                raise CommandError('Failed to enqueue batch job')
            self.stdout.write(self.style.SUCCESS(f"Enqueued {job.id}"))
        elif action == 'stats':
            self.stdout.write(json.dumps(queue_manager.get_queue_stats(), indent=2))
        elif action == 'run-workers':
            self._run_workers()

    def _run_workers(self):
        workers = queue_manager.initialize_workers(enable_workers=True)
        if not workers:
            raise CommandError('Workers not started (serverless environment)')
        stop = threading.Event()
        for sig in (signal.SIGINT, signal.SIGTERM):
            signal.signal(sig, lambda *_: stop.set())
        self.stdout.write(self.style.SUCCESS(f"Running {len(workers)} workers, Ctrl+C to stop"))
        while not stop.is_set() and any(proc.is_alive() for proc in workers):
            stop.wait(1.0)
        queue_manager.close_all()
        self.stdout.write("Workers stopped")
