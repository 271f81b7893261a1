"""
Celery configuration for the escrow backend.

Celery runs the background side of the escrow lifecycle:
- Periodic sweeps (cancel_abandoned_checkouts, scheduled via
  CELERY_BEAT_SCHEDULE in settings)
- Work that should not block a web request

This configuration uses Redis as both the message broker and result backend.
Tasks are auto-discovered from all installed Django apps.

Usage:
    # Define a task in any app's tasks.py:
    from celery import shared_task

    @shared_task
    def cancel_abandoned_checkouts():
        ...

    # Call the task asynchronously:
    cancel_abandoned_checkouts.delay()

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Celery will look for a tasks.py module in each installed app
app.autodiscover_tasks()
