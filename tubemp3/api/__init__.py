"""
Source API Layer.

This package handles all communication with the upstream media host.
"""

from .provider import SourceStreamProvider
from .youtube import YouTubeProvider, close_connection_pool, select_audio_format

__all__ = [
    "SourceStreamProvider",
    "YouTubeProvider",
    "close_connection_pool",
    "select_audio_format",
]
