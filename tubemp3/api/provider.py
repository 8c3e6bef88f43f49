"""
Interface of the source stream provider consumed by the pipeline.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator

from tubemp3.models.job import SourceMetadata

DEFAULT_CHUNK_SIZE = 262144  # 256 KB


class SourceStreamProvider(ABC):
    """Validates source URLs, fetches their metadata and yields raw audio bytes."""

    @abstractmethod
    def validate(self, url: str) -> bool:
        """Returns True if `url` belongs to the provider's accepted URL grammar."""

    @abstractmethod
    async def get_metadata(self, url: str) -> SourceMetadata:
        """
        Fetches title and duration without transferring media.

        Raises:
            SourceUnavailableError: If the upstream host rejects or lacks the content.
        """

    @abstractmethod
    def open_audio_stream(
        self,
        url: str,
        quality: str = "highestaudio",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> AsyncIterator[bytes]:
        """
        Returns an async iterator over the selected audio track's bytes.

        The iterator pulls the next chunk only when asked for it, and must be
        closed with `aclose()` by the consumer.
        """
