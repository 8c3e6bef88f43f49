"""
Utilities for handling titles, file names and YouTube URL parsing.
"""

import re
from pathlib import Path
from typing import Optional

MAX_TITLE_LENGTH = 50
FALLBACK_TITLE = "audio"

_YOUTUBE_URL_PATTERN = re.compile(
    r"^https?://"
    r"(?:"
    r"(?:www\.|m\.|music\.)?youtube\.com/"
    r"(?:watch\?(?:[^#]*&)?v=|shorts/|embed/|v/|live/)"
    r"|youtu\.be/"
    r")"
    r"(?P<id>[A-Za-z0-9_-]+)"
    r"(?:[?&#/].*)?$"
)


def parse_youtube_url(url: str) -> Optional[str]:
    """
    Parses a YouTube URL and returns its video ID, or None if the URL is not
    one of the recognized forms (watch, shorts, embed, v, live, youtu.be).
    """
    if not url:
        return None
    match = _YOUTUBE_URL_PATTERN.match(url.strip())
    if match:
        return match.group("id")
    return None


def sanitize_title(title: str) -> str:
    """
    Turns a video title into a file-name-safe display title.

    Rules, applied in order:
      1. remove every character that is neither an ASCII word character nor whitespace
      2. collapse each run of whitespace into a single underscore
      3. truncate to 50 characters
    """
    stripped = re.sub(r"[^\w\s]", "", title or "", flags=re.ASCII)
    collapsed = re.sub(r"\s+", "_", stripped, flags=re.ASCII)
    return collapsed[:MAX_TITLE_LENGTH]


def display_title(title: str) -> str:
    """Sanitized title with a fallback for titles that sanitize to nothing."""
    return sanitize_title(title) or FALLBACK_TITLE


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)
