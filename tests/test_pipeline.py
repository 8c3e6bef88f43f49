import asyncio
import threading
import time

import pytest

from conftest import (
    Collector,
    FakeProvider,
    FakeTranscoder,
    audio_bytes_for,
    workspace_entries,
)
from tubemp3.core.job_manager import JobManager
from tubemp3.exceptions import (
    AcquisitionError,
    DeliveryError,
    InvalidInputError,
    JobCancelledError,
    MissingUrlError,
    SourceUnavailableError,
    TranscodeError,
)
from tubemp3.models.config import ServiceConfig
from tubemp3.models.job import JobState
from tubemp3.storage.workspace import Workspace

FULL_HISTORY = [
    JobState.RESOLVING,
    JobState.ACQUIRING,
    JobState.TRANSCODING,
    JobState.DELIVERING,
    JobState.COMPLETED,
]


@pytest.mark.asyncio
async def test_successful_job_uses_sanitized_title(manager, temp_root):
    collector = Collector()
    await manager.start()

    job = await manager.submit("https://youtu.be/abc123", collector)

    assert job.error is None
    assert job.state is JobState.COMPLETED
    assert job.history == FULL_HISTORY
    assert job.display_title == "My_Song"
    assert collector.delivered[0][0] == "My_Song.mp3"
    assert collector.paths[0].name == f"My_Song_{job.id}.mp3"
    # Workspace is gone once the job is over
    assert not collector.paths[0].exists()
    assert workspace_entries(temp_root) == []


@pytest.mark.asyncio
async def test_transcode_error_removes_partial_output(config, events, temp_root):
    provider = FakeProvider(events=events)
    transcoder = FakeTranscoder(events=events, fail=True)
    manager = JobManager(config, provider=provider, transcoder=transcoder)
    collector = Collector()
    await manager.start()

    job = await manager.submit("https://youtu.be/abc123", collector)

    assert isinstance(job.error, TranscodeError)
    assert job.state is JobState.FAILED
    assert job.history[-2:] == [JobState.TRANSCODING, JobState.FAILED]
    assert job.error.status_code == 500
    assert job.error.user_message == "Error converting video to MP3"
    assert collector.delivered == []
    partial_output = transcoder.calls[0][1]
    assert not partial_output.exists()
    assert workspace_entries(temp_root) == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "url",
    [
        "not a url",
        "https://example.com/watch?v=abc123",
        "https://www.youtube.com/playlist?list=PL123",
        "ftp://youtu.be/abc123",
        "youtu.be/abc123",
    ],
)
async def test_malformed_url_fails_before_any_side_effect(manager, provider, temp_root, url):
    job = await manager.submit(url, Collector())

    assert isinstance(job.error, InvalidInputError)
    assert not isinstance(job.error, MissingUrlError)
    assert job.error.status_code == 400
    assert job.error.user_message == "Invalid YouTube URL"
    assert job.history == [JobState.RESOLVING, JobState.FAILED]
    assert provider.events == []
    assert not temp_root.exists()


@pytest.mark.asyncio
@pytest.mark.parametrize("url", [None, "", "   "])
async def test_missing_url(manager, provider, temp_root, url):
    job = await manager.submit(url, Collector())

    assert isinstance(job.error, MissingUrlError)
    assert job.error.user_message == "YouTube URL is required"
    assert provider.events == []
    assert not temp_root.exists()


@pytest.mark.asyncio
async def test_transcoding_starts_only_after_acquisition_completes(manager, events):
    url = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
    job = await manager.submit(url, Collector())

    assert job.error is None
    names = [name for name, _ in events]
    assert names == [
        "metadata",
        "stream_open",
        "stream_end",
        "transcode_start",
        "transcode_end",
    ]


@pytest.mark.asyncio
async def test_concurrent_jobs_do_not_interfere(config, events, temp_root):
    provider = FakeProvider(events=events, chunk_delay=0.01)
    manager = JobManager(config, provider=provider, transcoder=FakeTranscoder(events))
    await manager.start()
    urls = ["https://youtu.be/first", "https://youtu.be/second"]
    collectors = [Collector(), Collector()]

    jobs = await asyncio.gather(
        *(manager.submit(url, c) for url, c in zip(urls, collectors))
    )

    assert all(job.error is None for job in jobs)
    assert jobs[0].id != jobs[1].id
    for url, collector in zip(urls, collectors):
        _, data = collector.delivered[0]
        assert data == b"MP3:" + b"".join(audio_bytes_for(url))
    assert collectors[0].paths[0].parent != collectors[1].paths[0].parent
    assert workspace_entries(temp_root) == []


@pytest.mark.asyncio
async def test_acquisition_error_closes_stream_and_cleans_up(config, temp_root):
    provider = FakeProvider(fail_after_chunks=2)
    transcoder = FakeTranscoder()
    manager = JobManager(config, provider=provider, transcoder=transcoder)
    await manager.start()

    job = await manager.submit("https://youtu.be/abc123", Collector())

    assert isinstance(job.error, AcquisitionError)
    assert job.error.user_message == "Error downloading video from YouTube"
    assert job.history[-2:] == [JobState.ACQUIRING, JobState.FAILED]
    assert provider.open_streams == 0
    assert transcoder.calls == []
    assert workspace_entries(temp_root) == []


@pytest.mark.asyncio
async def test_source_unavailable_is_distinct_from_invalid_input(config, temp_root):
    url = "https://youtu.be/removed1"
    provider = FakeProvider(unavailable={url})
    manager = JobManager(config, provider=provider, transcoder=FakeTranscoder())
    await manager.start()

    job = await manager.submit(url, Collector())

    assert isinstance(job.error, SourceUnavailableError)
    assert not isinstance(job.error, InvalidInputError)
    assert job.history == [JobState.RESOLVING, JobState.FAILED]
    assert workspace_entries(temp_root) == []


@pytest.mark.asyncio
async def test_abort_signal_cancels_in_flight_acquisition(config, temp_root):
    provider = FakeProvider(chunk_delay=0.05, chunks=50)
    transcoder = FakeTranscoder()
    manager = JobManager(config, provider=provider, transcoder=transcoder)
    await manager.start()
    abort = asyncio.Event()

    async def abort_soon():
        await asyncio.sleep(0.1)
        abort.set()

    job, _ = await asyncio.gather(
        manager.submit("https://youtu.be/abc123", Collector(), abort=abort),
        abort_soon(),
    )

    assert isinstance(job.error, JobCancelledError)
    assert job.history[-2:] == [JobState.ACQUIRING, JobState.FAILED]
    assert provider.open_streams == 0
    assert transcoder.calls == []
    assert workspace_entries(temp_root) == []


@pytest.mark.asyncio
async def test_task_cancellation_still_tears_down(config, temp_root):
    provider = FakeProvider(chunk_delay=0.05, chunks=50)
    manager = JobManager(config, provider=provider, transcoder=FakeTranscoder())
    await manager.start()

    task = asyncio.create_task(manager.submit("https://youtu.be/abc123", Collector()))
    await asyncio.sleep(0.1)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert provider.open_streams == 0
    assert workspace_entries(temp_root) == []
    assert manager.stats.failures_by_kind["cancelled"] == 1
    assert manager.active_jobs == 0


@pytest.mark.asyncio
async def test_delivery_failure_is_recorded_and_artifact_discarded(manager, temp_root):
    paths = []

    async def broken_deliver(job):
        paths.append(job.output_path)
        raise ConnectionResetError("client went away")

    job = await manager.submit("https://youtu.be/abc123", broken_deliver)

    assert isinstance(job.error, DeliveryError)
    assert job.history[-2:] == [JobState.DELIVERING, JobState.FAILED]
    assert not paths[0].exists()
    assert workspace_entries(temp_root) == []


@pytest.mark.asyncio
async def test_admission_limit_serializes_jobs(temp_root, events):
    config = ServiceConfig(
        temp_dir=str(temp_root), max_concurrent_jobs=1, max_concurrent_transcodes=1
    )
    transcoder = FakeTranscoder(events, delay=0.02)
    manager = JobManager(config, provider=FakeProvider(events), transcoder=transcoder)

    jobs = await asyncio.gather(
        *(manager.submit(f"https://youtu.be/job{i}", Collector()) for i in range(3))
    )

    assert all(job.error is None for job in jobs)
    assert transcoder.max_active == 1
    # With one slot, each job's stages finish before the next job starts
    names = [name for name, _ in events]
    assert names == ["metadata", "stream_open", "stream_end", "transcode_start", "transcode_end"] * 3


@pytest.mark.asyncio
async def test_stats_track_outcomes(config):
    provider = FakeProvider(unavailable={"https://youtu.be/gone"})
    manager = JobManager(config, provider=provider, transcoder=FakeTranscoder())

    await manager.submit("https://youtu.be/abc123", Collector())
    await manager.submit("https://youtu.be/gone", Collector())
    await manager.submit("nope", Collector())

    stats = manager.stats
    assert stats.jobs_started == 3
    assert stats.jobs_completed == 1
    assert stats.jobs_failed == 2
    assert stats.failures_by_kind == {"source_unavailable": 1, "invalid_input": 1}
    assert stats.total_bytes_acquired == sum(
        len(c) for c in audio_bytes_for("https://youtu.be/abc123")
    )
    assert stats.total_bytes_delivered > 0
    assert stats.active_jobs == 0


@pytest.mark.asyncio
async def test_bitrate_and_codec_are_passed_to_transcoder(manager, transcoder):
    await manager.submit("https://youtu.be/abc123", Collector())

    _, output_path, bitrate, codec = transcoder.calls[0]
    assert bitrate == 320
    assert codec == "libmp3lame"
    assert output_path.suffix == ".mp3"


@pytest.mark.asyncio
async def test_starting_another_manager_leaves_running_jobs_alone(config, temp_root):
    provider = FakeProvider(chunk_delay=0.05, chunks=6)
    first = JobManager(config, provider=provider, transcoder=FakeTranscoder())
    await first.start()
    (temp_root / "my_thesis.docx").write_bytes(b"mine")

    task = asyncio.create_task(first.submit("https://youtu.be/abc123", Collector()))
    await asyncio.sleep(0.1)
    second = JobManager(config, provider=FakeProvider(), transcoder=FakeTranscoder())
    await second.start()
    job = await task

    assert job.error is None
    assert job.state is JobState.COMPLETED
    assert [p.name for p in workspace_entries(temp_root)] == ["my_thesis.docx"]


@pytest.mark.asyncio
async def test_cancel_while_workspace_is_created(manager, temp_root, monkeypatch):
    started = threading.Event()
    original_make_dir = Workspace.make_dir

    def slow_make_dir(self):
        started.set()
        time.sleep(0.1)
        original_make_dir(self)

    monkeypatch.setattr(Workspace, "make_dir", slow_make_dir)
    task = asyncio.create_task(manager.submit("https://youtu.be/abc123", Collector()))
    while not started.is_set():
        await asyncio.sleep(0.01)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert manager.workspaces.active_count == 0
    assert workspace_entries(temp_root) == []
    assert manager.stats.failures_by_kind["cancelled"] == 1
