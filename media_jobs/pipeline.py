"""Stage sequences per job kind.

Each sequence downloads the source into the job workspace, runs the
kind-specific stages on it and returns the typed result. Stages never catch
tool failures: DownloadError/ToolError bubble up to the Worker or Dispatcher,
which own the failure handling and workspace cleanup.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from . import archive
from .models import (
    AudioResult,
    DownloadResult,
    JobKind,
    JobRequest,
    StreamingResult,
    ThumbnailsResult,
)
from .streaming import DEFAULT_VARIANTS, package_streaming

logger = logging.getLogger(__name__)

ARCHIVE_NAME = "hls_package.zip"
HLS_DIR = "hls"


@dataclass
class Toolbox:
    downloader: object
    transcoder: object
    bundler: Callable = archive.bundle
    variants: tuple = DEFAULT_VARIANTS


@dataclass
class StageContext:
    job_id: str
    workspace: Path
    request: JobRequest
    tools: Toolbox
    report: Callable[[int], None] = field(default=lambda progress: None)


def _progress_for_step(idx: int, total: int) -> int:
    """Map step index to a 10..95 range; leave last 5% for finalize."""
    if total <= 0:
        return 100
    start, end = 10.0, 95.0
    return int(start + (end - start) * (idx / total))


def _download(ctx: StageContext, media_type: str = "video", format: str = "best"):
    downloaded = ctx.tools.downloader.fetch(ctx.request.url, ctx.workspace, format, media_type)
    logger.info("Job %s: downloaded %s (%d bytes)", ctx.job_id, downloaded.filename, downloaded.size)
    return downloaded


def run_download(ctx: StageContext) -> DownloadResult:
    opts = ctx.request.options
    total = 2 if opts.transcode else 1
    downloaded = _download(ctx, opts.media_type, opts.format)
    ctx.report(_progress_for_step(1, total))

    if not opts.transcode:
        return DownloadResult(filename=downloaded.filename, size=downloaded.size)

    out = Path(ctx.tools.transcoder.transcode(downloaded.path, opts.transcode))
    ctx.report(_progress_for_step(2, total))
    return DownloadResult(filename=out.name, size=out.stat().st_size)


def run_audio(ctx: StageContext) -> AudioResult:
    opts = ctx.request.options
    downloaded = _download(ctx)
    ctx.report(_progress_for_step(1, 2))

    out = Path(ctx.tools.transcoder.extract_audio(downloaded.path, ctx.workspace, opts.format, opts))
    ctx.report(_progress_for_step(2, 2))
    return AudioResult(filename=out.name, size=out.stat().st_size)


def run_streaming(ctx: StageContext) -> StreamingResult:
    opts = ctx.request.options
    downloaded = _download(ctx)
    ctx.report(_progress_for_step(1, 3))

    _, entries = package_streaming(
        ctx.tools.transcoder,
        downloaded.path,
        ctx.workspace / HLS_DIR,
        catalog=ctx.tools.variants,
        segment_duration=opts.segment_duration,
    )
    ctx.report(_progress_for_step(2, 3))

    archive_path = Path(ctx.tools.bundler(ctx.workspace / HLS_DIR, ctx.workspace / ARCHIVE_NAME))
    ctx.report(_progress_for_step(3, 3))
    return StreamingResult(
        archive_filename=archive_path.name,
        archive_size=archive_path.stat().st_size,
        variants=tuple(entries),
    )


def run_thumbnails(ctx: StageContext) -> ThumbnailsResult:
    downloaded = _download(ctx)
    ctx.report(_progress_for_step(1, 2))

    thumbs = ctx.tools.transcoder.generate_thumbnails(downloaded.path, ctx.workspace, ctx.request.options.count)
    ctx.report(_progress_for_step(2, 2))
    return ThumbnailsResult(thumbnail_filenames=tuple(Path(t).name for t in thumbs))


STAGES = {
    JobKind.DOWNLOAD: run_download,
    JobKind.AUDIO: run_audio,
    JobKind.STREAMING: run_streaming,
    JobKind.THUMBNAILS: run_thumbnails,
}


def run_pipeline(ctx: StageContext):
    try:
        stage = STAGES[JobKind(ctx.request.kind)]
    except ValueError:
        raise RuntimeError(f"Unsupported job kind: {ctx.request.kind}")
    logger.info("Job %s: running %s pipeline", ctx.job_id, ctx.request.kind)
    return stage(ctx)
