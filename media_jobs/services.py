"""
Composition root and caller-facing operations.

`get_job_service()` wires the Redis status store, the workspace manager and
the CLI tools from Django settings once per process; views and Celery tasks
receive everything through the returned JobService.
"""
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Callable

from django.conf import settings

from .dispatcher import Dispatcher
from .errors import ConflictError, NotFoundError
from .models import JobStatus
from .pipeline import Toolbox
from .retention import run_retention
from .status_store import RedisStatusStore, get_redis_client
from .tools import FFmpegTranscoder, YtDlpDownloader, summarize_info
from .worker import Worker
from .workspace import WorkspaceManager

logger = logging.getLogger(__name__)


@dataclass
class Artifact:
    """A file handed out once; `release()` drops the workspace and the record."""
    job_id: str
    path: Path
    release: Callable[[], None]

    @property
    def filename(self) -> str:
        return self.path.name


class JobService:
    def __init__(self, store, workspaces, tools, enqueue):
        self.store = store
        self.workspaces = workspaces
        self.tools = tools
        self.dispatcher = Dispatcher(store, workspaces, tools, enqueue)
        self.worker = Worker(store, workspaces, tools)

    def submit(self, request, sync: bool = False):
        return self.dispatcher.submit(request, sync=sync)

    def handle(self, descriptor: dict) -> str:
        return self.worker.handle(descriptor)

    def status(self, job_id: str):
        return self.store.get(job_id)

    def list_jobs(self):
        return self.store.list()

    def cancel(self, job_id: str):
        record = self.store.get(job_id)
        if record.is_terminal:
            raise ConflictError(f"Job {job_id} is already {record.status}")
        record = self.store.update(job_id, JobStatus.CANCELLED, 0)
        # Advisory only: an in-flight tool call keeps running until it returns.
        self.workspaces.destroy(job_id)
        logger.info("Job %s cancelled", job_id)
        return record

    def retrieve(self, job_id: str, filename: str) -> Artifact:
        try:
            record = self.store.get(job_id)
        except NotFoundError:
            record = None  # sync jobs never get a record
        if record is not None and record.status != JobStatus.COMPLETED:
            raise NotFoundError(f"Job {job_id} has no artifacts ({record.status})")
        path = self.workspaces.resolve(job_id, filename)
        return Artifact(job_id=job_id, path=path, release=lambda: self.release(job_id))

    def release(self, job_id: str) -> None:
        self.workspaces.destroy(job_id)
        self.store.delete(job_id)
        logger.info("Job %s released after retrieval", job_id)

    def media_info(self, url: str) -> dict:
        return summarize_info(self.tools.downloader.info(url))

    def cleanup(self, max_age: int | None = None) -> dict:
        return run_retention(self.workspaces, self.store, max_age)


def _celery_enqueue(descriptor: dict) -> None:
    from .tasks import process_job
    process_job.delay(descriptor)


def build_toolbox() -> Toolbox:
    return Toolbox(
        downloader=YtDlpDownloader(
            binary=settings.YTDLP_BIN,
            timeout=settings.MEDIA_JOBS_DOWNLOAD_TIMEOUT,
            info_timeout=settings.MEDIA_JOBS_PROBE_TIMEOUT,
        ),
        transcoder=FFmpegTranscoder(
            ffmpeg=settings.FFMPEG_BIN,
            ffprobe=settings.FFPROBE_BIN,
            probe_timeout=settings.MEDIA_JOBS_PROBE_TIMEOUT,
            transcode_timeout=settings.MEDIA_JOBS_TRANSCODE_TIMEOUT,
            audio_timeout=settings.MEDIA_JOBS_AUDIO_TIMEOUT,
            thumbnail_timeout=settings.MEDIA_JOBS_THUMBNAIL_TIMEOUT,
            streaming_timeout=settings.MEDIA_JOBS_STREAMING_TIMEOUT,
            thumbnail_max_size=settings.MEDIA_JOBS_THUMBNAIL_MAX_SIZE,
        ),
    )


@lru_cache(maxsize=1)
def get_job_service() -> JobService:
    store = RedisStatusStore(
        get_redis_client(settings.MEDIA_JOBS_REDIS_URL),
        ttl=settings.MEDIA_JOBS_STATUS_TTL,
    )
    workspaces = WorkspaceManager(
        settings.MEDIA_JOBS_WORKSPACE_ROOT,
        max_age=settings.MEDIA_JOBS_WORKSPACE_MAX_AGE,
    )
    return JobService(store, workspaces, build_toolbox(), enqueue=_celery_enqueue)
