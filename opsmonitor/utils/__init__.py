"""Shared helpers for formatting and sanitizing monitoring output."""

from opsmonitor.utils.formatting import (
    NOT_AVAILABLE,
    format_bytes,
    format_percent,
    format_uptime,
    utc_timestamp,
)
from opsmonitor.utils.sanitizers import sanitize_user_agent

__all__ = [
    'NOT_AVAILABLE',
    'format_bytes',
    'format_percent',
    'format_uptime',
    'utc_timestamp',
    'sanitize_user_agent',
]
