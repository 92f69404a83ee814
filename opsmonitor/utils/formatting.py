"""
Human-readable formatting helpers for monitoring output.
"""

from datetime import datetime, timezone
from typing import Optional, Union

Number = Union[int, float]

BYTE_UNITS = ('B', 'KB', 'MB', 'GB', 'TB')

NOT_AVAILABLE = 'n/a'


def format_bytes(value: Optional[Number]) -> str:
    """
    Format a byte count with binary units and one decimal place.

    Examples:
        format_bytes(0) -> '0 B'
        format_bytes(1536) -> '1.5 KB'
        format_bytes(1048576) -> '1 MB'
    """
    if not value or value < 0:
        return '0 B'

    index = 0
    scaled = float(value)
    while scaled >= 1024 and index < len(BYTE_UNITS) - 1:
        scaled /= 1024
        index += 1

    text = f"{scaled:.1f}".rstrip('0').rstrip('.')
    return f"{text} {BYTE_UNITS[index]}"


def format_uptime(seconds: Optional[Number]) -> str:
    """
    Format a duration in seconds using its two most significant units.

    Examples:
        format_uptime(42) -> '42s'
        format_uptime(3725) -> '1h 2m'
        format_uptime(90061) -> '1d 1h'
    """
    total = int(seconds or 0)
    if total < 0:
        total = 0

    days = total // 86400
    hours = (total % 86400) // 3600
    minutes = (total % 3600) // 60
    secs = total % 60

    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def format_percent(value: Optional[Number]) -> str:
    if value is None:
        return NOT_AVAILABLE
    return f"{value:.1f}%"


def utc_timestamp(epoch_seconds: Optional[float] = None) -> str:
    """ISO 8601 UTC timestamp for ``epoch_seconds`` or now."""
    if epoch_seconds is None:
        return datetime.now(timezone.utc).isoformat()
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).isoformat()


__all__ = [
    'format_bytes',
    'format_uptime',
    'format_percent',
    'utc_timestamp',
    'NOT_AVAILABLE',
]
