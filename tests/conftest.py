import asyncio
from pathlib import Path

import aiohttp
import pytest

from tubemp3.api.provider import DEFAULT_CHUNK_SIZE, SourceStreamProvider
from tubemp3.core.job_manager import JobManager
from tubemp3.exceptions import SourceUnavailableError, TranscodeError
from tubemp3.media.transcoder import Transcoder
from tubemp3.models.config import ServiceConfig
from tubemp3.models.job import SourceMetadata
from tubemp3.utils.path import parse_youtube_url


def audio_bytes_for(url: str, chunks: int = 4) -> list[bytes]:
    """Deterministic fake audio content, distinct per URL."""
    return [f"{url}#{i};".encode() * 64 for i in range(chunks)]


class FakeProvider(SourceStreamProvider):
    """In-memory provider that records the order of the calls made on it."""

    def __init__(
        self,
        events: list | None = None,
        titles: dict[str, str] | None = None,
        unavailable: set[str] | None = None,
        fail_after_chunks: int | None = None,
        chunk_delay: float = 0.0,
        chunks: int = 4,
    ):
        self.events = events if events is not None else []
        self.titles = titles or {}
        self.unavailable = unavailable or set()
        self.fail_after_chunks = fail_after_chunks
        self.chunk_delay = chunk_delay
        self.chunks = chunks
        self.open_streams = 0

    def validate(self, url: str) -> bool:
        return parse_youtube_url(url) is not None

    async def get_metadata(self, url: str) -> SourceMetadata:
        self.events.append(("metadata", url))
        if url in self.unavailable:
            raise SourceUnavailableError(f"Video unavailable: {url}")
        return SourceMetadata(
            title=self.titles.get(url, "Test Video"),
            duration_seconds=10,
            filesize=sum(len(c) for c in audio_bytes_for(url, self.chunks)),
        )

    async def open_audio_stream(
        self, url: str, quality: str = "highestaudio", chunk_size: int = DEFAULT_CHUNK_SIZE
    ):
        self.events.append(("stream_open", url))
        self.open_streams += 1
        try:
            for i, chunk in enumerate(audio_bytes_for(url, self.chunks)):
                if self.fail_after_chunks is not None and i == self.fail_after_chunks:
                    raise aiohttp.ClientPayloadError("Connection reset by peer")
                if self.chunk_delay:
                    await asyncio.sleep(self.chunk_delay)
                yield chunk
            self.events.append(("stream_end", url))
        finally:
            self.open_streams -= 1


class FakeTranscoder(Transcoder):
    """Writes a recognizable output file instead of running ffmpeg."""

    def __init__(
        self,
        events: list | None = None,
        fail: bool = False,
        delay: float = 0.0,
    ):
        self.events = events if events is not None else []
        self.fail = fail
        self.delay = delay
        self.active = 0
        self.max_active = 0
        self.calls: list[tuple[Path, Path, int, str]] = []

    async def convert(
        self, input_path: Path, output_path: Path, bitrate_kbps: int, codec: str
    ) -> None:
        self.calls.append((input_path, output_path, bitrate_kbps, codec))
        self.events.append(("transcode_start", input_path.parent.name))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            data = input_path.read_bytes()
            if self.fail:
                output_path.write_bytes(b"ID3partial")
                raise TranscodeError("Error while decoding stream #0:0")
            output_path.write_bytes(b"MP3:" + data)
            self.events.append(("transcode_end", input_path.parent.name))
        finally:
            self.active -= 1


class Collector:
    """Deliverer that reads the finished file into memory."""

    def __init__(self):
        self.delivered: list[tuple[str, bytes]] = []
        self.paths: list[Path] = []

    async def __call__(self, job) -> int:
        data = job.output_path.read_bytes()
        self.delivered.append((job.download_filename, data))
        self.paths.append(job.output_path)
        return len(data)


@pytest.fixture
def temp_root(tmp_path: Path) -> Path:
    return tmp_path / "work"


@pytest.fixture
def config(temp_root: Path) -> ServiceConfig:
    return ServiceConfig(
        temp_dir=str(temp_root),
        max_concurrent_jobs=4,
        max_concurrent_transcodes=2,
        acquire_timeout=5,
        transcode_timeout=5,
    )


@pytest.fixture
def events() -> list:
    return []


@pytest.fixture
def provider(events) -> FakeProvider:
    return FakeProvider(events=events, titles={"https://youtu.be/abc123": "My Song!"})


@pytest.fixture
def transcoder(events) -> FakeTranscoder:
    return FakeTranscoder(events=events)


@pytest.fixture
def manager(config, provider, transcoder) -> JobManager:
    return JobManager(config, provider=provider, transcoder=transcoder)


def workspace_entries(root: Path) -> list[Path]:
    return list(root.iterdir()) if root.exists() else []
