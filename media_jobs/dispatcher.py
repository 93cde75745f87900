import logging

from .models import build_descriptor, new_job_id, validate_request
from .pipeline import StageContext, run_pipeline

logger = logging.getLogger(__name__)


class Dispatcher:
    """
    Entry point for new jobs.

    Async: write a pending record, enqueue the descriptor, return the id.
    Sync: run the pipeline inline on the caller's thread without any status
    record; failures propagate to the caller after the workspace is removed.
    """

    def __init__(self, store, workspaces, tools, enqueue):
        self.store = store
        self.workspaces = workspaces
        self.tools = tools
        self.enqueue = enqueue

    def submit(self, request, sync: bool = False):
        """Returns (job_id, result); result is None for async submissions."""
        validate_request(request)
        job_id = new_job_id()
        if sync:
            return job_id, self._run_inline(job_id, request)

        self.store.create(job_id, request.kind, request.describe())
        descriptor = build_descriptor(job_id, request)
        try:
            self.enqueue(descriptor)
        except Exception:
            # Nothing will ever pick the job up; don't leave a pending record behind.
            logger.exception("Job %s: enqueue failed", job_id)
            self.store.delete(job_id)
            raise
        logger.info("Job %s queued (kind=%s)", job_id, request.kind)
        return job_id, None

    def _run_inline(self, job_id: str, request):
        ctx = StageContext(
            job_id=job_id,
            workspace=self.workspaces.create(job_id),
            request=request,
            tools=self.tools,
        )
        try:
            result = run_pipeline(ctx)
        except Exception as e:
            logger.error("Job %s failed inline: %s", job_id, e)
            self.workspaces.destroy(job_id)
            raise
        logger.info("Job %s completed inline", job_id)
        return result
