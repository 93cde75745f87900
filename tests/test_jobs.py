import zipfile

import pytest

from media_jobs.errors import ConflictError, DownloadError, NotFoundError, ToolError, ValidationError
from media_jobs.models import (
    AudioOptions,
    DownloadOptions,
    JobRequest,
    StreamingOptions,
    ThumbnailOptions,
    TranscodeOptions,
    result_from_dict,
)

URL = "https://media.example.com/watch?v=abc"

REQUESTS = {
    "download": JobRequest("download", URL, DownloadOptions()),
    "audio": JobRequest("audio", URL, AudioOptions(format="flac")),
    "streaming": JobRequest("streaming", URL, StreamingOptions()),
    "thumbnails": JobRequest("thumbnails", URL, ThumbnailOptions(count=3)),
}


def run_async(service, queue, request):
    job_id, result = service.submit(request)
    assert result is None
    assert service.status(job_id).status == "pending"
    descriptor = queue.pop()
    assert descriptor["job_id"] == job_id
    return job_id, service.handle(descriptor)


@pytest.mark.parametrize(
    "request_",
    [
        JobRequest("download", "", DownloadOptions()),
        JobRequest("download", "ftp://example.com/a", DownloadOptions()),
        JobRequest("podcast", URL, DownloadOptions()),
        JobRequest("audio", URL, DownloadOptions()),
        JobRequest("audio", URL, AudioOptions(format="exe")),
        JobRequest("thumbnails", URL, ThumbnailOptions(count=0)),
        JobRequest("streaming", URL, StreamingOptions(segment_duration=0)),
    ],
)
def test_invalid_requests_create_no_state(service, store, queue, workspaces, request_):
    with pytest.raises(ValidationError):
        service.submit(request_)
    with pytest.raises(ValidationError):
        service.submit(request_, sync=True)
    assert store.list() == []
    assert queue == []
    assert not workspaces.root.exists() or list(workspaces.root.iterdir()) == []


def test_async_download_completes(service, queue, workspaces):
    job_id, outcome = run_async(service, queue, REQUESTS["download"])

    assert outcome == "completed"
    record = service.status(job_id)
    assert record.status == "completed"
    assert record.progress == 100
    assert record.error is None
    assert record.metadata["url"] == URL
    assert record.result == {"kind": "download", "filename": "source_1.mp4", "size": 2048}
    assert (workspaces.path(job_id) / "source_1.mp4").exists()


def test_download_with_transcode_reports_transcoded_file(service, queue):
    request = JobRequest("download", URL, DownloadOptions(transcode=TranscodeOptions(format="webm")))
    job_id, _ = run_async(service, queue, request)

    assert service.status(job_id).result == {"kind": "download", "filename": "source_1_transcoded.webm", "size": 1024}


def test_streaming_job_bundles_hls_package(service, queue, workspaces):
    job_id, outcome = run_async(service, queue, REQUESTS["streaming"])

    assert outcome == "completed"
    result = result_from_dict(service.status(job_id).result)
    assert result.archive_filename == "hls_package.zip"
    assert [v.name for v in result.variants] == ["720p", "480p", "360p"]
    assert result.variants[1].bandwidth == 1600000

    with zipfile.ZipFile(workspaces.path(job_id) / "hls_package.zip") as zf:
        members = set(zf.namelist())
    assert "master.m3u8" in members
    assert "720p/playlist.m3u8" in members
    assert "360p/segment_000.ts" in members


def test_thumbnail_and_audio_results(service, queue):
    job_id, _ = run_async(service, queue, REQUESTS["thumbnails"])
    assert service.status(job_id).result["thumbnail_filenames"] == ["thumb_001.jpg", "thumb_002.jpg", "thumb_003.jpg"]

    job_id, _ = run_async(service, queue, REQUESTS["audio"])
    assert service.status(job_id).result == {"kind": "audio", "filename": "source_2.flac", "size": 512}


@pytest.mark.parametrize("kind", sorted(REQUESTS))
def test_sync_and_async_payloads_have_the_same_shape(service, queue, store, kind):
    sync_id, sync_result = service.submit(REQUESTS[kind], sync=True)
    async_id, _ = run_async(service, queue, REQUESTS[kind])

    sync_payload = sync_result.to_dict()
    async_payload = service.status(async_id).result
    assert sync_payload.keys() == async_payload.keys()
    assert type(result_from_dict(async_payload)) is type(sync_result)
    # The sync path never writes a status record.
    with pytest.raises(NotFoundError):
        store.get(sync_id)


def test_sync_failure_propagates_and_cleans_workspace(service, downloader, workspaces, store):
    downloader.fail_with = DownloadError("HTTP Error 404")

    with pytest.raises(DownloadError):
        service.submit(REQUESTS["download"], sync=True)
    assert list(workspaces.root.iterdir()) == []
    assert store.list() == []


@pytest.mark.parametrize(
    "kind, error",
    [
        ("audio", ToolError("ffmpeg exited with status 1: Invalid data")),
        ("streaming", ToolError("ffmpeg timed out after 3600s")),
        ("thumbnails", RuntimeError("disk full")),
    ],
)
def test_async_failure_is_terminal_and_cleans_workspace(service, queue, transcoder, workspaces, kind, error):
    transcoder.fail_with = error
    job_id, outcome = run_async(service, queue, REQUESTS[kind])

    assert outcome == "failed"
    record = service.status(job_id)
    assert record.status == "failed"
    assert record.progress == 0
    assert record.result == {"error": str(error)}
    assert record.error == str(error)
    assert not workspaces.exists(job_id)


def test_bad_descriptor_fails_the_job(service, queue):
    job_id, _ = service.submit(REQUESTS["thumbnails"])
    descriptor = queue.pop()
    descriptor["options"] = {"count": 3, "colour": "red"}

    assert service.handle(descriptor) == "failed"
    assert "Invalid options" in service.status(job_id).error


def test_redelivery_of_finished_job_is_skipped(service, queue, downloader):
    job_id, _ = service.submit(REQUESTS["download"])
    descriptor = queue.pop()

    assert service.handle(descriptor) == "completed"
    assert service.handle(descriptor) == "completed"
    assert len(downloader.calls) == 1


def test_redelivery_of_processing_job_restarts_in_fresh_workspace(service, queue, store, workspaces, downloader):
    job_id, _ = service.submit(REQUESTS["download"])
    descriptor = queue.pop()
    # An earlier delivery died mid-run and left a partial file behind.
    store.update(job_id, "processing", 30)
    (workspaces.create(job_id) / "partial.part").write_bytes(b"x")

    assert service.handle(descriptor) == "completed"
    assert not (workspaces.path(job_id) / "partial.part").exists()
    assert len(downloader.calls) == 1


def test_delivery_after_record_expired_is_dropped(service, queue, store, downloader):
    job_id, _ = service.submit(REQUESTS["download"])
    store.delete(job_id)

    assert service.handle(queue.pop()) == "missing"
    assert downloader.calls == []


def test_cancel_pending_job(service, queue, downloader):
    job_id, _ = service.submit(REQUESTS["download"])

    assert service.cancel(job_id).status == "cancelled"
    assert service.handle(queue.pop()) == "cancelled"
    assert downloader.calls == []


def test_cancel_terminal_job_conflicts(service, queue):
    job_id, _ = run_async(service, queue, REQUESTS["download"])
    with pytest.raises(ConflictError):
        service.cancel(job_id)
    assert service.status(job_id).status == "completed"


def test_cancel_unknown_job_is_not_found(service):
    with pytest.raises(NotFoundError):
        service.cancel("does-not-exist")


def test_cancel_during_processing_is_not_overwritten_by_completion(service, queue, transcoder, workspaces):
    job_id, _ = service.submit(REQUESTS["streaming"])
    descriptor = queue.pop()
    cancelled = []

    def cancel_mid_run(variant):
        if not cancelled:
            cancelled.append(service.cancel(job_id))

    transcoder.on_package = cancel_mid_run

    # The in-flight packaging call is not interrupted, but its result is discarded.
    assert service.handle(descriptor) == "aborted"
    record = service.status(job_id)
    assert record.status == "cancelled"
    assert record.result is None
    assert not workspaces.exists(job_id)


def test_cancel_then_tool_failure_keeps_cancelled(service, queue, transcoder):
    job_id, _ = service.submit(REQUESTS["audio"])
    descriptor = queue.pop()

    def extract_then_fail(*args, **kwargs):
        service.cancel(job_id)
        raise ToolError("killed")

    transcoder.extract_audio = extract_then_fail

    assert service.handle(descriptor) == "aborted"
    assert service.status(job_id).status == "cancelled"


def test_enqueue_failure_removes_pending_record(store, workspaces, tools):
    from media_jobs.services import JobService

    def broken_queue(descriptor):
        raise ConnectionError("broker down")

    service = JobService(store, workspaces, tools, enqueue=broken_queue)
    with pytest.raises(ConnectionError):
        service.submit(REQUESTS["download"])
    assert store.list() == []


def test_job_ids_are_unique_and_opaque(service, queue):
    ids = {service.submit(REQUESTS["download"])[0] for _ in range(50)}
    assert len(ids) == 50
    assert all(len(i) >= 20 for i in ids)


def test_retrieval_is_one_shot(service, queue, store, workspaces):
    job_id, _ = run_async(service, queue, REQUESTS["download"])

    artifact = service.retrieve(job_id, "source_1.mp4")
    assert artifact.path.read_bytes() == b"\x00" * 2048
    artifact.release()

    assert not workspaces.exists(job_id)
    with pytest.raises(NotFoundError):
        store.get(job_id)
    with pytest.raises(NotFoundError):
        service.retrieve(job_id, "source_1.mp4")


def test_retrieval_of_sync_job_without_record(service):
    job_id, result = service.submit(REQUESTS["audio"], sync=True)

    artifact = service.retrieve(job_id, result.filename)
    artifact.release()
    with pytest.raises(NotFoundError):
        service.retrieve(job_id, result.filename)


def test_retrieval_before_completion_is_not_found(service, queue):
    job_id, _ = service.submit(REQUESTS["download"])
    with pytest.raises(NotFoundError):
        service.retrieve(job_id, "source_1.mp4")


def test_retrieval_after_workspace_sweep_is_not_found(service, queue, workspaces):
    job_id, _ = run_async(service, queue, REQUESTS["download"])
    workspaces.destroy(job_id)

    assert service.status(job_id).status == "completed"
    with pytest.raises(NotFoundError):
        service.retrieve(job_id, "source_1.mp4")


def test_media_info_summary(service):
    info = service.media_info(URL)
    assert info["title"] == "Clip"
    assert info["formats"] == [
        {"format_id": "22", "ext": "mp4", "quality": "720p", "filesize": 0, "vcodec": "avc1", "acodec": "mp4a"}
    ]


def test_cancel_after_final_check_is_not_overwritten(service, queue, monkeypatch):
    from media_jobs import worker as worker_module

    job_id, _ = service.submit(REQUESTS["download"])
    finished = []
    real_pipeline = worker_module.run_pipeline
    real_still_wanted = service.worker._still_wanted

    def pipeline_then_flag(ctx):
        result = real_pipeline(ctx)
        finished.append(True)
        return result

    def check_then_cancel(jid):
        wanted = real_still_wanted(jid)
        if finished:
            service.cancel(jid)
        return wanted

    monkeypatch.setattr(worker_module, "run_pipeline", pipeline_then_flag)
    monkeypatch.setattr(service.worker, "_still_wanted", check_then_cancel)

    assert service.handle(queue.pop()) == "aborted"
    assert service.status(job_id).status == "cancelled"


def test_cancel_while_recording_failure_keeps_cancelled(service, queue, store, transcoder, monkeypatch):
    job_id, _ = service.submit(REQUESTS["audio"])
    failing = []
    real_get = store.get

    def extract_fails(*args, **kwargs):
        failing.append(True)
        raise ToolError("ffmpeg exited with status 1: broken pipe")

    def get_then_cancel(jid):
        record = real_get(jid)
        if failing and failing.pop():
            service.cancel(jid)
        return record

    transcoder.extract_audio = extract_fails
    monkeypatch.setattr(store, "get", get_then_cancel)

    assert service.handle(queue.pop()) == "aborted"
    assert real_get(job_id).status == "cancelled"


def test_workspace_allocation_failure_fails_the_job(service, queue, workspaces, monkeypatch):
    job_id, _ = service.submit(REQUESTS["download"])

    def no_space(jid):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(workspaces, "create", no_space)

    assert service.handle(queue.pop()) == "failed"
    record = service.status(job_id)
    assert record.status == "failed"
    assert "No space left" in record.error
