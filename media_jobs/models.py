import secrets
from dataclasses import asdict, dataclass, field
from typing import Any

from django.db import models

from .errors import ValidationError


class JobKind(models.TextChoices):
    DOWNLOAD = "download"
    AUDIO = "audio"
    STREAMING = "streaming"
    THUMBNAILS = "thumbnails"


class JobStatus(models.TextChoices):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})

ALLOWED_TRANSITIONS = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING, JobStatus.CANCELLED}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}


def can_transition(current: str, requested: str) -> bool:
    """Same-status writes (progress updates) are always allowed."""
    if current == requested:
        return True
    return requested in ALLOWED_TRANSITIONS.get(current, frozenset())


def new_job_id() -> str:
    return secrets.token_urlsafe(18)


# -----------------------------------------------------
# Request options (one typed struct per kind)
# -----------------------------------------------------
AUDIO_FORMATS = ("mp3", "aac", "m4a", "ogg", "flac", "wav")


@dataclass(frozen=True)
class TranscodeOptions:
    video_bitrate: str = "2000k"
    audio_bitrate: str = "128k"
    resolution: str | None = None   # ffmpeg scale expression, e.g. "1280:720"
    format: str = "mp4"
    video_codec: str = "libx264"
    audio_codec: str = "aac"
    preset: str | None = None
    crf: int | None = None
    framerate: int | None = None


@dataclass(frozen=True)
class DownloadOptions:
    format: str = "best"
    media_type: str = "video"   # 'video' | 'audio'
    transcode: TranscodeOptions | None = None


@dataclass(frozen=True)
class AudioOptions:
    format: str = "mp3"
    bitrate: str = "192k"
    sample_rate: str = "44100"


@dataclass(frozen=True)
class StreamingOptions:
    segment_duration: int = 6


@dataclass(frozen=True)
class ThumbnailOptions:
    count: int = 5


OPTIONS_BY_KIND = {
    JobKind.DOWNLOAD: DownloadOptions,
    JobKind.AUDIO: AudioOptions,
    JobKind.STREAMING: StreamingOptions,
    JobKind.THUMBNAILS: ThumbnailOptions,
}


def options_from_dict(kind: str, data: dict | None):
    """Rebuild the typed options for ``kind`` from a queue/JSON payload."""
    data = dict(data or {})
    if kind == JobKind.DOWNLOAD and data.get("transcode"):
        data["transcode"] = TranscodeOptions(**data["transcode"])
    try:
        return OPTIONS_BY_KIND[JobKind(kind)](**data)
    except (KeyError, ValueError) as e:
        raise ValidationError(f"Unsupported job kind: {kind}") from e
    except TypeError as e:
        raise ValidationError(f"Invalid options for {kind}: {e}") from e


@dataclass(frozen=True)
class JobRequest:
    kind: str
    url: str
    options: Any

    def describe(self) -> dict:
        """Request metadata stored alongside the status record."""
        return {"url": self.url, "kind": str(self.kind), "options": asdict(self.options)}


def validate_request(request: JobRequest) -> JobRequest:
    if request.kind not in JobKind.values:
        raise ValidationError(f"Unsupported job kind: {request.kind}")
    url = (request.url or "").strip()
    if not url:
        raise ValidationError("URL is required")
    if not url.startswith(("http://", "https://")):
        raise ValidationError(f"Malformed URL: {url}")
    expected = OPTIONS_BY_KIND[JobKind(request.kind)]
    if not isinstance(request.options, expected):
        raise ValidationError(f"{request.kind} jobs take {expected.__name__}")

    opts = request.options
    if isinstance(opts, AudioOptions) and opts.format not in AUDIO_FORMATS:
        raise ValidationError(f"Unsupported audio format: {opts.format}")
    if isinstance(opts, ThumbnailOptions) and not 1 <= opts.count <= 50:
        raise ValidationError("Thumbnail count must be between 1 and 50")
    if isinstance(opts, StreamingOptions) and opts.segment_duration <= 0:
        raise ValidationError("Segment duration must be positive")
    if isinstance(opts, DownloadOptions) and opts.media_type not in ("video", "audio"):
        raise ValidationError(f"Unsupported media type: {opts.media_type}")
    return request


def build_descriptor(job_id: str, request: JobRequest) -> dict:
    return {
        "job_id": job_id,
        "kind": str(request.kind),
        "url": request.url,
        "options": asdict(request.options),
    }


def request_from_descriptor(descriptor: dict) -> JobRequest:
    kind = descriptor.get("kind")
    return JobRequest(
        kind=kind,
        url=descriptor.get("url", ""),
        options=options_from_dict(kind, descriptor.get("options")),
    )


# -----------------------------------------------------
# Results (tagged union keyed by kind)
# -----------------------------------------------------
@dataclass(frozen=True)
class DownloadResult:
    filename: str
    size: int
    kind: str = field(default=JobKind.DOWNLOAD, init=False)

    def artifacts(self) -> list[str]:
        return [self.filename]

    def to_dict(self) -> dict:
        return {"kind": str(self.kind), "filename": self.filename, "size": self.size}


@dataclass(frozen=True)
class AudioResult:
    filename: str
    size: int
    kind: str = field(default=JobKind.AUDIO, init=False)

    def artifacts(self) -> list[str]:
        return [self.filename]

    def to_dict(self) -> dict:
        return {"kind": str(self.kind), "filename": self.filename, "size": self.size}


@dataclass(frozen=True)
class VariantEntry:
    name: str
    manifest_path: str
    bandwidth: int
    resolution: str


@dataclass(frozen=True)
class StreamingResult:
    archive_filename: str
    archive_size: int
    variants: tuple[VariantEntry, ...] = ()
    kind: str = field(default=JobKind.STREAMING, init=False)

    def artifacts(self) -> list[str]:
        return [self.archive_filename]

    def to_dict(self) -> dict:
        return {
            "kind": str(self.kind),
            "archive_filename": self.archive_filename,
            "archive_size": self.archive_size,
            "variants": [asdict(v) for v in self.variants],
        }


@dataclass(frozen=True)
class ThumbnailsResult:
    thumbnail_filenames: tuple[str, ...] = ()
    kind: str = field(default=JobKind.THUMBNAILS, init=False)

    def artifacts(self) -> list[str]:
        return list(self.thumbnail_filenames)

    def to_dict(self) -> dict:
        return {"kind": str(self.kind), "thumbnail_filenames": list(self.thumbnail_filenames)}


def result_from_dict(data: dict):
    kind = data.get("kind")
    if kind == JobKind.DOWNLOAD:
        return DownloadResult(filename=data["filename"], size=data["size"])
    if kind == JobKind.AUDIO:
        return AudioResult(filename=data["filename"], size=data["size"])
    if kind == JobKind.STREAMING:
        return StreamingResult(
            archive_filename=data["archive_filename"],
            archive_size=data["archive_size"],
            variants=tuple(VariantEntry(**v) for v in data.get("variants", [])),
        )
    if kind == JobKind.THUMBNAILS:
        return ThumbnailsResult(thumbnail_filenames=tuple(data.get("thumbnail_filenames", [])))
    raise ValueError(f"Unknown result kind: {kind!r}")


# -----------------------------------------------------
# Status record
# -----------------------------------------------------
@dataclass
class JobRecord:
    id: str
    kind: str
    status: str = JobStatus.PENDING
    progress: int = 0
    created_at: float = 0.0
    updated_at: float = 0.0
    metadata: dict = field(default_factory=dict)
    result: dict | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict:
        data = asdict(self)
        data["kind"] = str(self.kind)
        data["status"] = str(self.status)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "JobRecord":
        return cls(
            id=data["id"],
            kind=data.get("kind", ""),
            status=data.get("status", JobStatus.PENDING),
            progress=data.get("progress", 0),
            created_at=data.get("created_at", 0.0),
            updated_at=data.get("updated_at", 0.0),
            metadata=data.get("metadata") or {},
            result=data.get("result"),
            error=data.get("error"),
        )
