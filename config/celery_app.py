"""
Celery application configuration for Hirewise.

Celery runs Stripe webhook reconciliation and subscription emails outside
the request cycle. Tasks are defined with the @shared_task decorator so
they also work with CELERY_TASK_ALWAYS_EAGER in tests.

Configuration:
  - Broker: Redis (CELERY_BROKER_URL)
  - Result backend: None (fire-and-forget, all state in Django models)
  - Task serialization: JSON

Usage:
    celery -A config worker --loglevel=info
"""

import logging
import os

from celery import Celery

logger = logging.getLogger(__name__)

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.local")

app = Celery("hirewise")

# Using a string here means the worker doesn't have to serialize
# the configuration object to child processes.
# - namespace='CELERY' means all celery-related configuration keys
#   should have a `CELERY_` prefix.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Load task modules from all registered Django apps.
app.autodiscover_tasks()
