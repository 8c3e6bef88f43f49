import asyncio

import pytest

from conftest import FakeProvider, audio_bytes_for
from tubemp3.exceptions import AcquisitionError, SourceUnavailableError
from tubemp3.media.acquirer import RAW_FILE_NAME, StreamAcquirer
from tubemp3.models.stats import ServiceStats
from tubemp3.storage.workspace import WorkspaceManager

URL = "https://youtu.be/abc123"


class EmptyProvider(FakeProvider):
    async def open_audio_stream(self, url, quality="highestaudio", chunk_size=1024):
        self.open_streams += 1
        try:
            return
            yield
        finally:
            self.open_streams -= 1


class GoneMidStreamProvider(FakeProvider):
    async def open_audio_stream(self, url, quality="highestaudio", chunk_size=1024):
        yield b"partial"
        raise SourceUnavailableError("Video was removed")


@pytest.mark.asyncio
async def test_acquire_writes_all_chunks_in_order(tmp_path):
    provider = FakeProvider()
    stats = ServiceStats()
    acquirer = StreamAcquirer(provider, stats=stats)
    workspace = await WorkspaceManager(tmp_path).create("job")
    progress = []

    path = await acquirer.acquire(
        URL, workspace, total_size_estimate=999, on_progress=lambda n, t: progress.append((n, t))
    )

    expected = b"".join(audio_bytes_for(URL))
    assert path == workspace.path / RAW_FILE_NAME
    assert path.read_bytes() == expected
    assert progress[-1] == (len(expected), 999)
    assert [n for n, _ in progress] == sorted(n for n, _ in progress)
    assert stats.total_bytes_acquired == len(expected)
    assert provider.open_streams == 0


@pytest.mark.asyncio
async def test_transport_error_becomes_acquisition_error(tmp_path):
    provider = FakeProvider(fail_after_chunks=1)
    workspace = await WorkspaceManager(tmp_path).create("job")

    with pytest.raises(AcquisitionError):
        await StreamAcquirer(provider).acquire(URL, workspace)
    assert provider.open_streams == 0
    # The partial file is left for teardown
    assert (workspace.path / RAW_FILE_NAME).exists()


@pytest.mark.asyncio
async def test_empty_stream_is_an_error(tmp_path):
    provider = EmptyProvider()
    workspace = await WorkspaceManager(tmp_path).create("job")

    with pytest.raises(AcquisitionError, match="empty"):
        await StreamAcquirer(provider).acquire(URL, workspace)
    assert provider.open_streams == 0


@pytest.mark.asyncio
async def test_timeout_is_an_acquisition_error(tmp_path):
    provider = FakeProvider(chunk_delay=0.2, chunks=20)
    workspace = await WorkspaceManager(tmp_path).create("job")

    with pytest.raises(AcquisitionError, match="did not finish"):
        await StreamAcquirer(provider, timeout=0.05).acquire(URL, workspace)
    assert provider.open_streams == 0


@pytest.mark.asyncio
async def test_source_unavailable_passes_through(tmp_path):
    workspace = await WorkspaceManager(tmp_path).create("job")

    with pytest.raises(SourceUnavailableError):
        await StreamAcquirer(GoneMidStreamProvider()).acquire(URL, workspace)


@pytest.mark.asyncio
async def test_cancellation_closes_the_stream(tmp_path):
    provider = FakeProvider(chunk_delay=0.05, chunks=50)
    workspace = await WorkspaceManager(tmp_path).create("job")
    task = asyncio.create_task(StreamAcquirer(provider).acquire(URL, workspace))
    await asyncio.sleep(0.1)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert provider.open_streams == 0
