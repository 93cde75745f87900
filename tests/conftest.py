import fnmatch
from pathlib import Path

import pytest

from media_jobs.pipeline import Toolbox
from media_jobs.services import JobService
from media_jobs.status_store import RedisStatusStore
from media_jobs.tools import DownloadedFile
from media_jobs.workspace import WorkspaceManager


class FakeRedis:
    """The handful of redis-py calls the status store makes, kept in a dict."""

    def __init__(self):
        self.data = {}
        self.expiry = {}

    def get(self, name):
        return self.data.get(name)

    def set(self, name, value, ex=None, nx=False, xx=False):
        if nx and name in self.data:
            return None
        if xx and name not in self.data:
            return None
        self.data[name] = value
        self.expiry[name] = ex
        return True

    def delete(self, *names):
        removed = 0
        for name in names:
            if self.data.pop(name, None) is not None:
                self.expiry.pop(name, None)
                removed += 1
        return removed

    def scan_iter(self, match="*"):
        return [k for k in list(self.data) if fnmatch.fnmatch(k, match)]


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeDownloader:
    def __init__(self):
        self.calls = []
        self.fail_with = None

    def fetch(self, url, target_dir, format="best", media_type="video"):
        self.calls.append((url, format, media_type))
        if self.fail_with:
            raise self.fail_with
        ext = "mp3" if media_type == "audio" else "mp4"
        path = Path(target_dir) / f"source_{len(self.calls)}.{ext}"
        path.write_bytes(b"\x00" * 2048)
        return DownloadedFile(path=path, filename=path.name, size=2048, extension=ext)

    def info(self, url):
        return {
            "title": "Clip",
            "duration": 42,
            "uploader": "someone",
            "formats": [{"format_id": "22", "ext": "mp4", "format_note": "720p", "vcodec": "avc1", "acodec": "mp4a"}],
        }


class FakeTranscoder:
    def __init__(self, width=1280):
        self.width = width
        self.packaged = []
        self.fail_with = None
        self.on_package = None

    def _check(self):
        if self.fail_with:
            raise self.fail_with

    def probe(self, path):
        streams = [{"type": "audio"}]
        if self.width is not None:
            streams.append({"type": "video", "width": self.width, "height": self.width * 9 // 16})
        return {"duration_seconds": 30.0, "streams": streams}

    def transcode(self, path, options):
        self._check()
        out = Path(path).with_name(f"{Path(path).stem}_transcoded.{options.format}")
        out.write_bytes(b"\x01" * 1024)
        return out

    def extract_audio(self, path, output_dir, format="mp3", options=None):
        self._check()
        out = Path(output_dir) / f"{Path(path).stem}.{format}"
        out.write_bytes(b"\x02" * 512)
        return out

    def generate_thumbnails(self, path, output_dir, count=5):
        self._check()
        thumbs = []
        for i in range(1, count + 1):
            out = Path(output_dir) / f"thumb_{i:03d}.jpg"
            out.write_bytes(b"\xff\xd8\xff")
            thumbs.append(out)
        return thumbs

    def package_segments(self, path, output_dir, variant, segment_duration=6, buffer_size=""):
        self._check()
        if self.on_package:
            self.on_package(variant)
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        (output_dir / "segment_000.ts").write_bytes(b"\x47" * 188)
        playlist = output_dir / "playlist.m3u8"
        playlist.write_text(
            f"#EXTM3U\n#EXT-X-TARGETDURATION:{segment_duration}\n#EXTINF:{segment_duration}.0,\nsegment_000.ts\n#EXT-X-ENDLIST\n"
        )
        self.packaged.append((variant.name, segment_duration, buffer_size))
        return playlist


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def redis_client():
    return FakeRedis()


@pytest.fixture
def store(redis_client, clock):
    return RedisStatusStore(redis_client, ttl=7200, clock=clock)


@pytest.fixture
def workspaces(tmp_path):
    return WorkspaceManager(tmp_path / "sessions", max_age=3600)


@pytest.fixture
def downloader():
    return FakeDownloader()


@pytest.fixture
def transcoder():
    return FakeTranscoder()


@pytest.fixture
def tools(downloader, transcoder):
    return Toolbox(downloader=downloader, transcoder=transcoder)


@pytest.fixture
def queue():
    return []


@pytest.fixture
def service(store, workspaces, tools, queue):
    return JobService(store, workspaces, tools, enqueue=queue.append)


@pytest.fixture
def api_client(service, monkeypatch):
    from rest_framework.test import APIClient

    monkeypatch.setattr("media_jobs.views.get_job_service", lambda: service)
    return APIClient()
