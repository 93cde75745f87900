"""
Consumes job descriptors delivered by the queue.

Delivery is at-least-once, so a descriptor can arrive more than once. The
worker skips jobs whose record is gone or already terminal, and re-runs a
`processing` job from a fresh workspace (the earlier delivery died mid-run).

Cancellation is cooperative: the record is checked at every stage boundary
and again before the result is written, so a cancelled job is never flipped
back to completed/failed.
"""
import logging

from .errors import InvalidTransitionError, NotFoundError
from .models import JobStatus, request_from_descriptor
from .pipeline import StageContext, run_pipeline

logger = logging.getLogger(__name__)


class JobAborted(Exception):
    """The job was cancelled or its record disappeared while running."""


class Worker:
    def __init__(self, store, workspaces, tools):
        self.store = store
        self.workspaces = workspaces
        self.tools = tools

    def _still_wanted(self, job_id: str) -> bool:
        try:
            record = self.store.get(job_id)
        except NotFoundError:
            return False
        return record.status == JobStatus.PROCESSING

    def _reporter(self, job_id: str):
        def report(progress: int) -> None:
            if not self._still_wanted(job_id):
                raise JobAborted(job_id)
            try:
                self.store.update(job_id, JobStatus.PROCESSING, progress)
            except (NotFoundError, InvalidTransitionError):
                raise JobAborted(job_id)
        return report

    def handle(self, descriptor: dict) -> str:
        """Process one descriptor; returns the status the job ended in (or was found in)."""
        job_id = descriptor.get("job_id", "")
        try:
            record = self.store.get(job_id)
        except NotFoundError:
            logger.warning("Job %s: no status record, dropping delivery", job_id)
            return "missing"
        if record.is_terminal:
            logger.info("Job %s already %s, skipping redelivery", job_id, record.status)
            return str(record.status)

        try:
            request = request_from_descriptor(descriptor)
            self.store.update(job_id, JobStatus.PROCESSING, 0)
        except NotFoundError:
            logger.warning("Job %s vanished before processing started", job_id)
            return "missing"
        except Exception as e:
            return self._fail(job_id, e)

        try:
            # A redelivered job starts over in a clean workspace.
            self.workspaces.destroy(job_id)
            ctx = StageContext(
                job_id=job_id,
                workspace=self.workspaces.create(job_id),
                request=request,
                tools=self.tools,
                report=self._reporter(job_id),
            )
            result = run_pipeline(ctx)
        except JobAborted:
            logger.info("Job %s aborted: cancelled or removed while running", job_id)
            self.workspaces.destroy(job_id)
            return "aborted"
        except Exception as e:
            return self._fail(job_id, e)

        if not self._still_wanted(job_id):
            logger.info("Job %s finished after cancellation; discarding result", job_id)
            self.workspaces.destroy(job_id)
            return "aborted"

        try:
            self.store.update(job_id, JobStatus.COMPLETED, 100, result=result.to_dict())
        except NotFoundError:
            self.workspaces.destroy(job_id)
            return "missing"
        except InvalidTransitionError:
            # Cancelled between the last check and the write.
            logger.info("Job %s cancelled before completion was recorded", job_id)
            self.workspaces.destroy(job_id)
            return "aborted"
        logger.info("Job %s completed", job_id)
        return str(JobStatus.COMPLETED)

    def _fail(self, job_id: str, exc: Exception) -> str:
        message = getattr(exc, "message", None) or str(exc) or exc.__class__.__name__
        logger.error("Job %s failed: %s", job_id, message)
        self.workspaces.destroy(job_id)
        try:
            record = self.store.get(job_id)
            if record.status == JobStatus.PENDING:
                # Failed before the pipeline started (e.g. a malformed descriptor).
                self.store.update(job_id, JobStatus.PROCESSING, 0)
            elif record.status != JobStatus.PROCESSING:
                logger.info("Job %s is %s; not recording the failure", job_id, record.status)
                return "aborted"
            self.store.update(job_id, JobStatus.FAILED, 0, result={"error": message}, error=message)
        except NotFoundError:
            return "missing"
        except InvalidTransitionError:
            logger.info("Job %s cancelled before the failure was recorded", job_id)
            return "aborted"
        return str(JobStatus.FAILED)
