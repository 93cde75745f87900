import os
from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "media_orchestrator.settings")

celery_app = Celery("media_orchestrator")
celery_app.config_from_object("django.conf:settings", namespace="CELERY")
celery_app.autodiscover_tasks()


@celery_app.on_after_finalize.connect
def schedule_retention(sender, **kwargs):
    # Run with `celery -A media_orchestrator beat` alongside the worker.
    from django.conf import settings

    interval = settings.MEDIA_JOBS_SWEEP_INTERVAL
    if interval > 0:
        sender.add_periodic_task(interval, sender.signature("media_jobs.sweep_retention"), name="media-jobs-retention")
