"""
Add celery-beat schedules for webhook recovery and wallet reconciliation.

- retry_failed_webhooks: every 5 minutes
- cleanup_stuck_webhooks: every 15 minutes
- reconcile_vendor_wallets: every hour
"""

from django.db import migrations

PERIODIC_TASKS = [
    {
        "name": "Retry Failed Settlement Webhooks",
        "task": "settlement.tasks.retry_failed_webhooks",
        "every": 5,
        "period": "minutes",
        "description": "Re-queues failed provider webhooks still under the retry cap.",
    },
    {
        "name": "Reset Stuck Settlement Webhooks",
        "task": "settlement.tasks.cleanup_stuck_webhooks",
        "every": 15,
        "period": "minutes",
        "description": "Marks webhooks left in processing by a crashed worker as failed.",
    },
    {
        "name": "Reconcile Vendor Wallets",
        "task": "settlement.tasks.reconcile_vendor_wallets",
        "every": 1,
        "period": "hours",
        "description": (
            "Checks every vendor wallet chain and escrow credit. "
            "Discrepancies are logged at ERROR, nothing is corrected."
        ),
    },
]


def create_periodic_tasks(apps, schema_editor):
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for task_def in PERIODIC_TASKS:
        schedule, _ = IntervalSchedule.objects.get_or_create(
            every=task_def["every"],
            period=task_def["period"],
        )
        PeriodicTask.objects.get_or_create(
            name=task_def["name"],
            defaults={
                "task": task_def["task"],
                "interval": schedule,
                "enabled": True,
                "description": task_def["description"],
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name__in=[task_def["name"] for task_def in PERIODIC_TASKS],
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("settlement", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
