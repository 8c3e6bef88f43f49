"""
YouTube source stream provider built on yt-dlp for extraction and aiohttp for
the audio transfer itself.
"""

import asyncio
import logging
from collections import OrderedDict
from typing import Any, AsyncIterator, Dict, List

import aiohttp
import yt_dlp

from tubemp3.exceptions import SourceUnavailableError
from tubemp3.models.job import SourceMetadata
from tubemp3.utils.path import parse_youtube_url

from .provider import DEFAULT_CHUNK_SIZE, SourceStreamProvider

log = logging.getLogger(__name__)

_connection_pool: aiohttp.ClientSession | None = None
_pool_lock = asyncio.Lock()

STREAMABLE_PROTOCOLS = ("https", "http")
QUALITIES = ("highestaudio", "lowestaudio")


async def get_connection_pool(max_connections: int = 8) -> aiohttp.ClientSession:
    """
    Gets or creates a shared aiohttp ClientSession for audio transfers.

    This function ensures that only one connection pool is created for the
    lifetime of the process.

    Args:
        max_connections: Maximum concurrent connections per host.
    """
    global _connection_pool
    async with _pool_lock:
        if _connection_pool and not _connection_pool.closed:
            return _connection_pool

        connector = aiohttp.TCPConnector(
            limit=max_connections * 2,
            limit_per_host=max_connections,
            ttl_dns_cache=600,  # 10 minutes
            keepalive_timeout=30,
            enable_cleanup_closed=True,
            force_close=False,
        )
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=15, sock_read=90)
        _connection_pool = aiohttp.ClientSession(connector=connector, timeout=timeout)
        log.debug(f"Created stream pool with limit_per_host={max_connections}")

    return _connection_pool


async def close_connection_pool() -> None:
    """Closes the shared global connection pool."""
    global _connection_pool
    async with _pool_lock:
        if _connection_pool and not _connection_pool.closed:
            await _connection_pool.close()
            _connection_pool = None
            log.debug("Shared stream connection pool closed.")


def _has_audio(fmt: Dict[str, Any]) -> bool:
    return fmt.get("acodec") not in (None, "none") and bool(fmt.get("url"))


def _is_streamable(fmt: Dict[str, Any]) -> bool:
    return fmt.get("protocol", "https") in STREAMABLE_PROTOCOLS


def select_audio_format(
    info: Dict[str, Any], quality: str = "highestaudio"
) -> Dict[str, Any]:
    """
    Picks the audio format to transfer from a yt-dlp info dict.

    Audio-only formats are preferred; formats that also carry video are only
    considered when no audio-only format is available. Among the candidates
    the one with the highest (or lowest, for 'lowestaudio') audio bitrate wins.
    """
    if quality not in QUALITIES:
        raise ValueError(f"Unsupported quality '{quality}'.")

    formats: List[Dict[str, Any]] = info.get("formats") or [info]
    playable = [f for f in formats if _has_audio(f) and _is_streamable(f)]
    audio_only = [f for f in playable if f.get("vcodec") == "none"]
    candidates = audio_only or playable
    if not candidates:
        raise SourceUnavailableError(
            f"No downloadable audio stream for '{info.get('id', 'unknown')}'."
        )

    def bitrate(fmt: Dict[str, Any]) -> float:
        return fmt.get("abr") or fmt.get("tbr") or 0.0

    chooser = max if quality == "highestaudio" else min
    return chooser(candidates, key=bitrate)


class YouTubeProvider(SourceStreamProvider):
    """
    Resolves YouTube videos with yt-dlp and streams the chosen audio format.

    Extraction results are kept in a small LRU so that resolving and then
    streaming the same URL only hits YouTube's metadata endpoints once.
    """

    def __init__(self, max_cached: int = 64, max_connections: int = 8):
        self.max_connections = max_connections
        self._info_cache: OrderedDict[str, Dict[str, Any]] = OrderedDict()
        self._max_cached = max_cached
        self._cache_lock = asyncio.Lock()
        self._ydl_opts = {
            "quiet": True,
            "no_warnings": True,
            "noplaylist": True,
            "skip_download": True,
        }

    def validate(self, url: str) -> bool:
        return parse_youtube_url(url) is not None

    def _extract(self, url: str) -> Dict[str, Any]:
        """Blocking yt-dlp extraction; run off the event loop."""
        with yt_dlp.YoutubeDL(self._ydl_opts) as ydl:
            return ydl.extract_info(url, download=False)

    async def _get_info(self, url: str) -> Dict[str, Any]:
        async with self._cache_lock:
            if url in self._info_cache:
                self._info_cache.move_to_end(url)
                return self._info_cache[url]

        try:
            info = await asyncio.to_thread(self._extract, url)
        except (yt_dlp.utils.DownloadError, yt_dlp.utils.ExtractorError) as e:
            raise SourceUnavailableError(f"YouTube rejected '{url}': {e}") from e

        if not info:
            raise SourceUnavailableError(f"YouTube returned no data for '{url}'.")

        async with self._cache_lock:
            self._info_cache[url] = info
            # Evict oldest if over limit
            if len(self._info_cache) > self._max_cached:
                self._info_cache.popitem(last=False)
        return info

    async def get_metadata(self, url: str) -> SourceMetadata:
        info = await self._get_info(url)
        fmt = select_audio_format(info)
        return SourceMetadata(
            title=info.get("title") or "",
            duration_seconds=int(info.get("duration") or 0),
            video_id=info.get("id") or "",
            uploader=info.get("uploader") or "",
            filesize=fmt.get("filesize") or fmt.get("filesize_approx"),
        )

    async def open_audio_stream(
        self,
        url: str,
        quality: str = "highestaudio",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> AsyncIterator[bytes]:
        info = await self._get_info(url)
        fmt = select_audio_format(info, quality)
        log.debug(
            f"Streaming format {fmt.get('format_id')} "
            f"({fmt.get('acodec')}, {fmt.get('abr')} kbps) for '{info.get('id')}'"
        )

        session = await get_connection_pool(self.max_connections)
        async with session.get(
            fmt["url"], headers=fmt.get("http_headers") or {}, allow_redirects=True
        ) as response:
            response.raise_for_status()
            async for chunk in response.content.iter_chunked(chunk_size):
                yield chunk
