"""
Post-conversion checks on the files the transcoder produces.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from mutagen import MutagenError
from mutagen.mp3 import MP3, HeaderNotFoundError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Mp3StreamInfo:
    length_seconds: float
    bitrate_kbps: int
    sample_rate: int
    channels: int


class FileIntegrityChecker:
    """Static checks that a converted file is a playable MP3 stream."""

    @staticmethod
    def probe_mp3(filepath: str) -> Optional[Mp3StreamInfo]:
        """
        Reads the MPEG stream info of `filepath` with mutagen.

        Returns None when mutagen cannot find a valid MPEG frame.
        """
        try:
            info = MP3(filepath).info
        except HeaderNotFoundError:
            log.warning(f"No MPEG frame header found in '{filepath}'.")
            return None
        except (MutagenError, OSError) as e:
            log.debug(f"Could not read '{filepath}' as MP3: {e}")
            return None
        return Mp3StreamInfo(
            length_seconds=info.length,
            bitrate_kbps=info.bitrate // 1000,
            sample_rate=info.sample_rate,
            channels=info.channels,
        )

    @staticmethod
    def check_mp3(filepath: str) -> bool:
        """True if the file holds an MP3 stream with a non-zero duration."""
        stream = FileIntegrityChecker.probe_mp3(filepath)
        if stream is None:
            return False
        if stream.length_seconds <= 0:
            log.warning(f"'{filepath}' has an empty MP3 stream.")
            return False
        log.debug(
            f"Verified '{filepath}': {stream.length_seconds:.1f}s, "
            f"{stream.bitrate_kbps} kbps, {stream.sample_rate} Hz"
        )
        return True
