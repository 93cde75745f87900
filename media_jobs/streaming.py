"""
Adaptive-bitrate variant selection and HLS master manifest assembly.

Renditions come from a fixed catalog, highest first. A source only gets the
renditions it can fill (catalog width <= source width); catalog order is kept
as-is in the master manifest.
"""
import logging
import re
from dataclasses import dataclass
from pathlib import Path

from .models import VariantEntry

logger = logging.getLogger(__name__)

SEGMENT_DURATION = 6
VARIANT_PLAYLIST = "playlist.m3u8"
MASTER_PLAYLIST = "master.m3u8"


@dataclass(frozen=True)
class Variant:
    name: str
    width: int
    height: int
    video_bitrate: str
    audio_bitrate: str
    bandwidth: int  # bits/sec, advertised as BANDWIDTH

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"


DEFAULT_VARIANTS = (
    Variant("1080p", 1920, 1080, "5000k", "192k", 5200000),
    Variant("720p", 1280, 720, "3000k", "128k", 3100000),
    Variant("480p", 854, 480, "1500k", "128k", 1600000),
    Variant("360p", 640, 360, "800k", "96k", 900000),
)


def source_width(probe: dict) -> int | None:
    """Width of the first video stream, or None when it cannot be determined."""
    for stream in probe.get("streams") or []:
        if stream.get("type") == "video":
            return stream.get("width") or None
    return None


def select_variants(catalog, width: int | None) -> list[Variant]:
    if not width:
        return list(catalog)
    return [v for v in catalog if v.width <= width]


_BITRATE = re.compile(r"^\s*(\d+)\s*([A-Za-z]*)\s*$")


def buffer_size(bitrate: str) -> str:
    """Twice the numeric bitrate, unit suffix kept: "3000k" -> "6000k"."""
    m = _BITRATE.match(bitrate or "")
    if not m:
        raise ValueError(f"Unparseable bitrate: {bitrate!r}")
    value, unit = m.groups()
    return f"{int(value) * 2}{unit}"


def build_master_manifest(entries) -> str:
    lines = ["#EXTM3U", "#EXT-X-VERSION:3", ""]
    for e in entries:
        lines.append(f"#EXT-X-STREAM-INF:BANDWIDTH={e.bandwidth},RESOLUTION={e.resolution}")
        lines.append(f"{e.name}/{VARIANT_PLAYLIST}")
        lines.append("")
    return "\n".join(lines) + "\n"


def package_streaming(
    transcoder,
    source,
    output_dir,
    catalog=DEFAULT_VARIANTS,
    segment_duration: int = SEGMENT_DURATION,
) -> tuple[Path, list[VariantEntry]]:
    """Encode every retained rendition and write the master manifest next to them."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    width = source_width(transcoder.probe(source))
    variants = select_variants(catalog, width)
    if not variants:
        logger.warning("Source width %s is below every rendition; master manifest will be empty", width)

    entries = []
    for variant in variants:
        playlist = transcoder.package_segments(
            source,
            output_dir / variant.name,
            variant,
            segment_duration,
            buffer_size=buffer_size(variant.video_bitrate),
        )
        entries.append(VariantEntry(
            name=variant.name,
            manifest_path=Path(playlist).relative_to(output_dir).as_posix(),
            bandwidth=variant.bandwidth,
            resolution=variant.resolution,
        ))

    master = output_dir / MASTER_PLAYLIST
    master.write_text(build_master_manifest(entries), encoding="utf-8")
    logger.info("Master manifest written with %d variants", len(entries))
    return master, entries
