"""Error kinds raised by the job orchestration core.

Each error carries the HTTP status the API layer answers with, so the DRF
exception handler can map them without knowing the individual classes.
"""


class MediaJobError(Exception):
    status_code = 500
    default_message = "Media job error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(MediaJobError):
    """Missing or malformed request input. No state is created."""
    status_code = 400
    default_message = "Invalid request"


class NotFoundError(MediaJobError):
    """Unknown job id, or an artifact/workspace that was already purged."""
    status_code = 404
    default_message = "Not found"


class ConflictError(MediaJobError):
    status_code = 409
    default_message = "Conflict"


class InvalidTransitionError(ConflictError):
    def __init__(self, job_id: str, current: str, requested: str):
        self.job_id = job_id
        self.current = current
        self.requested = requested
        super().__init__(f"Job {job_id}: cannot move from {current} to {requested}")


class DownloadError(MediaJobError):
    """The downloader failed or produced no output file."""
    status_code = 502
    default_message = "Download failed"


class ToolError(MediaJobError):
    """An external tool (ffmpeg/ffprobe) failed; carries its diagnostic text."""
    status_code = 502
    default_message = "Media tool failed"

    def __init__(self, message: str | None = None, diagnostic: str = ""):
        self.diagnostic = diagnostic
        super().__init__(message)
