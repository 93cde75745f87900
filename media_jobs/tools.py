"""
Wrappers around the external command-line tools (yt-dlp, ffmpeg, ffprobe).

Every call is blocking with a hard timeout. A non-zero exit, a timeout or a
missing output file is fatal for the stage: the downloader raises
DownloadError, the transcoder raises ToolError with the tool's stderr.
"""
import json
import logging
import re
import subprocess
import uuid
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from .errors import DownloadError, ToolError

logger = logging.getLogger(__name__)

AUDIO_CODECS = {
    "mp3": "libmp3lame",
    "aac": "aac",
    "m4a": "aac",
    "ogg": "libvorbis",
    "flac": "flac",
    "wav": "pcm_s16le",
}


def _stderr(e) -> str:
    raw = getattr(e, "stderr", None)
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="ignore")
    return (raw or str(e))[-4000:]


def run_tool(cmd: list[str], timeout: int, error_cls=ToolError) -> subprocess.CompletedProcess:
    """Run `cmd`, raising `error_cls` on failure, timeout or a missing binary."""
    logger.debug("Running %s", " ".join(cmd))
    try:
        return subprocess.run(cmd, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE, timeout=timeout)
    except subprocess.CalledProcessError as e:
        diag = _stderr(e)
        message = f"{cmd[0]} exited with status {e.returncode}: {diag}"
        if issubclass(error_cls, ToolError):
            raise error_cls(message, diagnostic=diag) from e
        raise error_cls(message) from e
    except subprocess.TimeoutExpired as e:
        raise error_cls(f"{cmd[0]} timed out after {timeout}s") from e
    except FileNotFoundError as e:
        raise error_cls(f"{cmd[0]} is not installed") from e


def sanitize_filename(name: str) -> str:
    return re.sub(r"[^a-zA-Z0-9_\-]", "_", name)[:200]


# -----------------------------------------------------
# Downloader (yt-dlp)
# -----------------------------------------------------
@dataclass(frozen=True)
class DownloadedFile:
    path: Path
    filename: str
    size: int
    extension: str


class YtDlpDownloader:
    def __init__(self, binary: str = "yt-dlp", timeout: int = 600, info_timeout: int = 60):
        self.binary = binary
        self.timeout = timeout
        self.info_timeout = info_timeout

    def info(self, url: str) -> dict:
        proc = run_tool(
            [self.binary, "--dump-json", "--no-playlist", url],
            timeout=self.info_timeout,
            error_cls=DownloadError,
        )
        try:
            return json.loads(proc.stdout)
        except ValueError as e:
            raise DownloadError(f"Unreadable metadata for {url}") from e

    def fetch(self, url: str, target_dir, format: str = "best", media_type: str = "video") -> DownloadedFile:
        target_dir = Path(target_dir)
        target_dir.mkdir(parents=True, exist_ok=True)
        stem = uuid.uuid4().hex
        template = str(target_dir / f"{stem}.%(ext)s")

        if media_type == "audio":
            cmd = [self.binary, "-x", "--audio-format", "mp3", "--audio-quality", "0", "-o", template, url]
        else:
            fmt = "bestvideo+bestaudio/best" if format == "best" else format
            cmd = [self.binary, "-f", fmt, "--merge-output-format", "mp4", "--no-playlist", "-o", template, url]

        run_tool(cmd, timeout=self.timeout, error_cls=DownloadError)

        files = sorted(p for p in target_dir.glob(f"{stem}.*") if p.is_file() and not p.name.endswith(".part"))
        if not files:
            raise DownloadError("Download failed: file not found")
        path = files[0]
        logger.info("Downloaded %s -> %s", url, path.name)
        return DownloadedFile(path=path, filename=path.name, size=path.stat().st_size, extension=path.suffix.lstrip("."))


def summarize_info(info: dict) -> dict:
    """Reduce yt-dlp's --dump-json output to what the API exposes."""
    formats = []
    for f in info.get("formats") or []:
        formats.append({
            "format_id": f.get("format_id", "unknown"),
            "ext": f.get("ext", "unknown"),
            "quality": f.get("format_note") or f.get("quality") or "unknown",
            "filesize": f.get("filesize") or 0,
            "vcodec": f.get("vcodec", "none"),
            "acodec": f.get("acodec", "none"),
        })
    return {
        "title": info.get("title", "Unknown"),
        "duration": info.get("duration") or 0,
        "thumbnail": info.get("thumbnail"),
        "uploader": info.get("uploader", "Unknown"),
        "upload_date": info.get("upload_date"),
        "formats": formats,
    }


# -----------------------------------------------------
# Transcoder (ffmpeg / ffprobe)
# -----------------------------------------------------
class FFmpegTranscoder:
    def __init__(
        self,
        ffmpeg: str = "ffmpeg",
        ffprobe: str = "ffprobe",
        *,
        probe_timeout: int = 60,
        transcode_timeout: int = 3600,
        audio_timeout: int = 1800,
        thumbnail_timeout: int = 1800,
        streaming_timeout: int = 3600,
        thumbnail_max_size: int = 512,
    ):
        self.ffmpeg = ffmpeg
        self.ffprobe = ffprobe
        self.probe_timeout = probe_timeout
        self.transcode_timeout = transcode_timeout
        self.audio_timeout = audio_timeout
        self.thumbnail_timeout = thumbnail_timeout
        self.streaming_timeout = streaming_timeout
        self.thumbnail_max_size = thumbnail_max_size

    def probe(self, path) -> dict:
        """Return {"duration_seconds": float, "streams": [{type, width, height, codec}]}."""
        cmd = [
            self.ffprobe, "-v", "quiet",
            "-print_format", "json",
            "-show_format", "-show_streams",
            str(path),
        ]
        proc = run_tool(cmd, timeout=self.probe_timeout)
        try:
            raw = json.loads(proc.stdout or b"{}")
        except ValueError as e:
            raise ToolError("ffprobe returned invalid JSON") from e

        streams = [
            {
                "type": s.get("codec_type"),
                "width": s.get("width"),
                "height": s.get("height"),
                "codec": s.get("codec_name"),
            }
            for s in raw.get("streams", [])
        ]
        try:
            duration = float(raw.get("format", {}).get("duration") or 0)
        except (TypeError, ValueError):
            duration = 0.0
        return {"duration_seconds": duration, "streams": streams}

    def transcode(self, path, options) -> Path:
        src = Path(path)
        out = src.with_name(f"{src.stem}_transcoded.{options.format}")

        cmd = [self.ffmpeg, "-y", "-i", str(src), "-c:v", options.video_codec]
        if options.video_bitrate:
            cmd += ["-b:v", options.video_bitrate]
        if options.resolution:
            cmd += ["-vf", f"scale={options.resolution}"]
        if options.framerate:
            cmd += ["-r", str(options.framerate)]
        cmd += ["-c:a", options.audio_codec]
        if options.audio_bitrate:
            cmd += ["-b:a", options.audio_bitrate]
        if options.preset:
            cmd += ["-preset", options.preset]
        if options.crf is not None:
            cmd += ["-crf", str(options.crf)]
        cmd.append(str(out))

        logger.info("Transcoding %s -> %s", src.name, out.name)
        run_tool(cmd, timeout=self.transcode_timeout)
        if not out.exists():
            raise ToolError("Transcoding failed: output file not found")
        return out

    def extract_audio(self, path, output_dir, format: str = "mp3", options=None) -> Path:
        src = Path(path)
        out = Path(output_dir) / f"{src.stem}.{format}"
        if out == src:
            out = out.with_name(f"{src.stem}_audio.{format}")
        bitrate = getattr(options, "bitrate", None) or "192k"
        sample_rate = getattr(options, "sample_rate", None) or "44100"

        cmd = [
            self.ffmpeg, "-y",
            "-i", str(src),
            "-vn",
            "-acodec", AUDIO_CODECS.get(format, "libmp3lame"),
            "-ab", bitrate,
            "-ar", str(sample_rate),
            str(out),
        ]
        logger.info("Extracting %s audio from %s", format, src.name)
        run_tool(cmd, timeout=self.audio_timeout)
        if not out.exists():
            raise ToolError("Audio extraction failed: output file not found")
        return out

    def generate_thumbnails(self, path, output_dir, count: int = 5) -> list[Path]:
        """Grab `count` evenly spaced frames; frames ffmpeg cannot produce are skipped."""
        src = Path(path)
        output_dir = Path(output_dir)
        duration = self.probe(src)["duration_seconds"]
        interval = duration / (count + 1)

        thumbnails = []
        for i in range(1, count + 1):
            out = output_dir / f"thumb_{i:03d}.jpg"
            cmd = [
                self.ffmpeg, "-y",
                "-ss", f"{interval * i:.3f}",
                "-i", str(src),
                "-vframes", "1",
                "-q:v", "2",
                str(out),
            ]
            try:
                run_tool(cmd, timeout=self.thumbnail_timeout)
            except ToolError as e:
                logger.warning("Thumbnail %d of %s skipped: %s", i, src.name, e)
                continue
            if out.exists() and self._normalize_thumbnail(out):
                thumbnails.append(out)

        if not thumbnails:
            raise ToolError(f"No thumbnails could be generated from {src.name}")
        return thumbnails

    def _normalize_thumbnail(self, path: Path) -> bool:
        """Bound the frame to thumbnail_max_size and re-encode as JPEG."""
        try:
            with Image.open(path) as img:
                frame = img.convert("RGB")
        except (UnidentifiedImageError, OSError) as e:
            logger.warning("Unreadable frame %s: %s", path.name, e)
            path.unlink(missing_ok=True)
            return False
        frame.thumbnail((self.thumbnail_max_size, self.thumbnail_max_size))
        frame.save(path, format="JPEG", quality=90)
        return True

    def package_segments(self, path, output_dir, variant, segment_duration: int = 6, buffer_size: str = "") -> Path:
        """Encode one rendition into fixed-duration TS segments plus its VOD playlist."""
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        playlist = output_dir / "playlist.m3u8"

        cmd = [
            self.ffmpeg, "-y",
            "-i", str(path),
            "-c:v", "libx264",
            "-preset", "medium",
            "-profile:v", "main",
            "-level", "4.0",
            "-b:v", variant.video_bitrate,
            "-maxrate", variant.video_bitrate,
            "-bufsize", buffer_size or variant.video_bitrate,
            "-vf", f"scale={variant.width}:{variant.height}",
            "-g", "48",
            "-keyint_min", "48",
            "-sc_threshold", "0",
            "-c:a", "aac",
            "-b:a", variant.audio_bitrate,
            "-ar", "48000",
            "-ac", "2",
            "-f", "hls",
            "-hls_time", str(segment_duration),
            "-hls_list_size", "0",
            "-hls_segment_filename", str(output_dir / "segment_%03d.ts"),
            "-hls_playlist_type", "vod",
            "-hls_flags", "independent_segments",
            str(playlist),
        ]
        logger.info("Packaging %s rendition of %s", variant.name, Path(path).name)
        run_tool(cmd, timeout=self.streaming_timeout)
        if not playlist.exists():
            raise ToolError(f"HLS packaging failed for {variant.name}: playlist not found")
        return playlist
