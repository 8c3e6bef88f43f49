"""tubemp3: convert YouTube videos to MP3 files."""

__version__ = "1.0.0"
