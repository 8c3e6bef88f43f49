"""
Human-readable sizes, speeds and media durations for console output.
"""

_SIZE_UNITS = ("B", "KB", "MB", "GB")


def format_size(num_bytes: float) -> str:
    """'7.4 MB' style sizes, binary multiples."""
    if num_bytes <= 0:
        return "0 B"
    value = float(num_bytes)
    for unit in _SIZE_UNITS[:-1]:
        if value < 1024:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} {_SIZE_UNITS[-1]}"


def format_speed(bytes_per_second: float) -> str:
    return f"{format_size(bytes_per_second)}/s"


def format_duration(seconds: float) -> str:
    """Clock-style durations as shown on video pages: '3:32', '1:02:05'."""
    total = max(0, int(round(seconds)))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
