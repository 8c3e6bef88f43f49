"""
Media Processing Layer.

This package is responsible for all media file operations: acquiring the raw
audio stream, converting it, and validating the result.
"""

from .acquirer import StreamAcquirer
from .integrity import FileIntegrityChecker
from .transcoder import FfmpegTranscoder, Transcoder, TranscoderAdapter

__all__ = [
    "FfmpegTranscoder",
    "FileIntegrityChecker",
    "StreamAcquirer",
    "Transcoder",
    "TranscoderAdapter",
]
