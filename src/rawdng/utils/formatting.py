from __future__ import annotations

from datetime import datetime


def dng_datetime(value: datetime) -> str:
    """TIFF DateTime text, ``YYYY:MM:DD HH:MM:SS`` (always 19 characters)."""
    return value.strftime("%Y:%m:%d %H:%M:%S")


def format_bytes(size: int) -> str:
    value = float(size)
    for unit in ("B", "KiB", "MiB"):
        if value < 1024.0:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024.0
    return f"{value:.1f} GiB"
