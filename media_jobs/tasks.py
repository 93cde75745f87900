from celery import shared_task
from celery.utils.log import get_task_logger

from .services import get_job_service

logger = get_task_logger(__name__)


@shared_task(name="media_jobs.process_job")
def process_job(descriptor: dict) -> str:
    """
    Queue consumer. Job failures are recorded on the status record by the
    worker and are terminal, so they are not re-raised for Celery to retry.
    """
    logger.info("Received job %s (%s)", descriptor.get("job_id"), descriptor.get("kind"))
    return get_job_service().handle(descriptor)


@shared_task(name="media_jobs.sweep_retention")
def sweep_retention(max_age: int | None = None) -> dict:
    counts = get_job_service().cleanup(max_age)
    logger.info("Retention sweep: %s", counts)
    return counts
