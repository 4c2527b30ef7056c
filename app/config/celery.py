"""
Celery configuration for the escrow settlement service.

Workers process provider webhooks (settlement.tasks.process_webhook_event)
and run the periodic jobs stored in django-celery-beat: webhook retry,
stuck-webhook cleanup and hourly wallet reconciliation.

Redis is both the message broker and result backend. Tasks are
auto-discovered from the installed Django apps.

Usage:
    celery -A config worker -l info
    celery -A config beat -l info
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
