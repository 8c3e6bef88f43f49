"""
Handles the transfer of a source's audio stream into a job workspace.
"""

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional

import aiofiles
import aiohttp

from tubemp3.api.provider import DEFAULT_CHUNK_SIZE, SourceStreamProvider
from tubemp3.exceptions import AcquisitionError
from tubemp3.models.stats import ServiceStats
from tubemp3.storage.workspace import Workspace

log = logging.getLogger(__name__)

ProgressCallback = Callable[[int, Optional[int]], None]

RAW_FILE_NAME = "source.audio"


class StreamAcquirer:
    """
    Writes the highest-quality audio stream of a source into a workspace file.

    Chunks are pulled from the provider one at a time and each is awaited to
    disk before the next is requested, so a slow disk slows the transfer down
    instead of growing memory.
    """

    def __init__(
        self,
        provider: SourceStreamProvider,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        timeout: float | None = None,
        stats: ServiceStats | None = None,
    ):
        self.provider = provider
        self.chunk_size = chunk_size
        self.timeout = timeout
        self.stats = stats

    async def acquire(
        self,
        url: str,
        workspace: Workspace,
        total_size_estimate: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> Path:
        """
        Streams the audio of `url` into the workspace and returns the file path.

        Raises:
            AcquisitionError: On any transport, stream or disk failure, including
            the stage timeout. A partially written file stays in the workspace
            for teardown to remove.
            SourceUnavailableError: Passed through unchanged when the provider
            finds the content gone after the stream was opened.
        """
        raw_path = workspace.path_for(RAW_FILE_NAME)
        try:
            written = await asyncio.wait_for(
                self._transfer(url, raw_path, total_size_estimate, on_progress),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise AcquisitionError(
                f"Audio transfer did not finish within {self.timeout:.0f}s."
            ) from e
        except (aiohttp.ClientError, OSError, ValueError) as e:
            raise AcquisitionError(f"Audio transfer failed: {e}") from e

        if written == 0:
            raise AcquisitionError("Source returned an empty audio stream.")

        log.debug(f"Acquired {written} bytes into {raw_path.name} ({workspace.job_id})")
        return raw_path

    async def _transfer(
        self,
        url: str,
        destination: Path,
        total_size_estimate: int | None,
        on_progress: ProgressCallback | None,
    ) -> int:
        stream = self.provider.open_audio_stream(
            url, quality="highestaudio", chunk_size=self.chunk_size
        )
        bytes_written = 0
        try:
            async with aiofiles.open(destination, "wb") as f:
                async for chunk in stream:
                    await f.write(chunk)
                    bytes_written += len(chunk)
                    if self.stats:
                        await self.stats.add_acquired_bytes(len(chunk))
                    if on_progress:
                        on_progress(bytes_written, total_size_estimate)
        finally:
            await stream.aclose()
        return bytes_written
