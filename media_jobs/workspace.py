import logging
import re
import shutil
import time
from pathlib import Path

from .errors import NotFoundError

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"^[A-Za-z0-9_\-]+$")


class WorkspaceManager:
    """
    Per-job scratch directories under a single root, keyed by job id.

    Workspaces are destroyed when a job fails, after the first artifact
    retrieval, or by `sweep` once older than the max age.
    """

    def __init__(self, root, max_age: int = 3600):
        self.root = Path(root)
        self.max_age = max_age

    def path(self, job_id: str) -> Path:
        if not _SAFE_ID.match(job_id or ""):
            raise NotFoundError(f"Invalid job id: {job_id!r}")
        return self.root / job_id

    def exists(self, job_id: str) -> bool:
        return self.path(job_id).is_dir()

    def create(self, job_id: str) -> Path:
        ws = self.path(job_id)
        ws.mkdir(parents=True, exist_ok=False)
        logger.debug("Workspace created for job %s at %s", job_id, ws)
        return ws

    def destroy(self, job_id: str) -> bool:
        ws = self.path(job_id)
        if not ws.exists():
            return False
        shutil.rmtree(ws)
        logger.info("Workspace destroyed for job %s", job_id)
        return True

    def resolve(self, job_id: str, filename: str) -> Path:
        """Return the absolute path of an artifact inside the job workspace."""
        ws = self.path(job_id)
        candidate = (ws / filename).resolve()
        # Reject '../' escapes and absolute names.
        if ws.resolve() not in candidate.parents or not candidate.is_file():
            raise NotFoundError(f"File not found: {filename}")
        return candidate

    def sweep(self, max_age: int | None = None, now: float | None = None) -> int:
        """Remove workspaces strictly older than `max_age` seconds, whatever their job status."""
        max_age = self.max_age if max_age is None else max_age
        now = time.time() if now is None else now
        if not self.root.is_dir():
            return 0

        cleaned = 0
        for ws in self.root.iterdir():
            if not ws.is_dir():
                continue
            try:
                age = now - ws.stat().st_mtime
            except FileNotFoundError:
                continue  # destroyed concurrently
            if age > max_age:
                shutil.rmtree(ws, ignore_errors=True)
                cleaned += 1

        logger.info("Cleaned %d old workspaces", cleaned)
        return cleaned
