"""
Sanitizers for request data written to logs.
"""

import re
from typing import Optional

# Checked in order; every match is kept, browsers with their version
USER_AGENT_PATTERNS = tuple(re.compile(pattern) for pattern in (
    r'Chrome/[\d.]+',
    r'Firefox/[\d.]+',
    r'Safari/[\d.]+',
    r'Edge/[\d.]+',
    r'Opera/[\d.]+',
    r'Mobile',
    r'Android',
    r'iPhone',
    r'iPad',
))


def sanitize_user_agent(user_agent: Optional[str]) -> str:
    """
    Reduce a User-Agent header to its browser and device tokens.

    Returns:
        The matched tokens joined by spaces, ``other`` when none matches,
        or ``unknown`` when the header is missing
    """
    if not user_agent:
        return 'unknown'

    matches = []
    for pattern in USER_AGENT_PATTERNS:
        match = pattern.search(user_agent)
        if match:
            matches.append(match.group(0))

    return ' '.join(matches) if matches else 'other'


__all__ = ['sanitize_user_agent', 'USER_AGENT_PATTERNS']
