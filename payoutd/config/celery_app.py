"""
Celery configuration for the payout processing project.

Workers:   celery -A config.celery_app worker -Q payout-processing -c 5
           celery -A config.celery_app worker -Q batch-processing -c 1
Beat:      celery -A config.celery_app beat
"""
import os

from celery import Celery

# Set the default Django settings module
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('payoutd')

# Load configuration from Django settings with CELERY namespace
app.config_from_object('django.conf:settings', namespace='CELERY')

app.autodiscover_tasks(lambda: ['apps.payouts'], related_name='tasks')
