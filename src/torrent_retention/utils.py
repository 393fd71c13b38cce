#!/usr/bin/env python3
"""Utility functions for torrent retention."""

import logging
import os
import re
from datetime import timedelta
from typing import Optional, Union
from urllib.parse import urlsplit

from .constants import SECONDS_PER_DAY, SECONDS_PER_HOUR, SECONDS_PER_MINUTE

logger = logging.getLogger(__name__)


_BOOL_TRUE = frozenset(('true', '1', 'yes', 'on'))
_BOOL_FALSE = frozenset(('false', '0', 'no', 'off'))

_DURATION_UNITS = {
    's': 1, 'sec': 1, 'secs': 1, 'second': 1, 'seconds': 1,
    'm': SECONDS_PER_MINUTE, 'min': SECONDS_PER_MINUTE, 'mins': SECONDS_PER_MINUTE,
    'minute': SECONDS_PER_MINUTE, 'minutes': SECONDS_PER_MINUTE,
    'h': SECONDS_PER_HOUR, 'hr': SECONDS_PER_HOUR, 'hrs': SECONDS_PER_HOUR,
    'hour': SECONDS_PER_HOUR, 'hours': SECONDS_PER_HOUR,
    'd': SECONDS_PER_DAY, 'day': SECONDS_PER_DAY, 'days': SECONDS_PER_DAY,
    'w': 7 * SECONDS_PER_DAY, 'week': 7 * SECONDS_PER_DAY, 'weeks': 7 * SECONDS_PER_DAY,
}

_DURATION_TOKEN = re.compile(r'(\d+(?:\.\d+)?)\s*([a-z]*)')


def parse_bool(env_var: str, default: bool = False) -> bool:
    """
    Parse boolean environment variable.

    Args:
        env_var: Environment variable name
        default: Default value if not set

    Returns:
        Parsed boolean value
    """
    raw = os.environ.get(env_var)
    if raw is None:
        return default
    lower = raw.strip().lower()
    if lower not in _BOOL_TRUE and lower not in _BOOL_FALSE:
        logger.warning(f"{env_var}='{raw}' is not a recognized boolean, treating as False")
    return lower in _BOOL_TRUE


def parse_list(env_var: str) -> list[str]:
    """Parse a comma separated environment variable, dropping empty items."""
    return [item.strip() for item in os.environ.get(env_var, "").split(",") if item.strip()]


def parse_duration(value: Union[str, int, float, timedelta]) -> timedelta:
    """
    Parse a human-written duration such as ``"6 hrs"``, ``"1h30m"`` or ``"12 days"``.

    Bare numbers are taken as seconds.

    Args:
        value: Duration text, number of seconds, or an existing timedelta

    Returns:
        Parsed duration

    Raises:
        ValueError: If the text is not a recognizable duration
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return timedelta(seconds=value)
    if not isinstance(value, str):
        raise ValueError(f"Not a duration: {value!r}")

    text = value.strip().lower()
    if not text:
        raise ValueError("Empty duration")

    total = 0.0
    position = 0
    for token in _DURATION_TOKEN.finditer(text):
        if text[position:token.start()].strip(" ,"):
            raise ValueError(f"Not a duration: {value!r}")
        amount, unit = token.groups()
        if unit not in _DURATION_UNITS and unit != '':
            raise ValueError(f"Unknown duration unit {unit!r} in {value!r}")
        total += float(amount) * _DURATION_UNITS.get(unit, 1)
        position = token.end()

    if position == 0 or text[position:].strip():
        raise ValueError(f"Not a duration: {value!r}")
    return timedelta(seconds=total)


def format_duration(duration: timedelta) -> str:
    """Format a duration as ``HH:MM:SS`` (hours are not wrapped into days)."""
    seconds = int(duration.total_seconds())
    sign = "-" if seconds < 0 else ""
    hours, remainder = divmod(abs(seconds), SECONDS_PER_HOUR)
    minutes, secs = divmod(remainder, SECONDS_PER_MINUTE)
    return f"{sign}{hours:02d}:{minutes:02d}:{secs:02d}"


def tracker_host(announce_url: str) -> Optional[str]:
    """
    Extract the host of a tracker announce URL.

    Unlike ``urlsplit().hostname`` the case of the host is preserved, so
    tracker sets compare hosts exactly as written.

    Args:
        announce_url: Tracker announce URL

    Returns:
        Host part of the URL, or None if the URL has no host
    """
    try:
        netloc = urlsplit(announce_url.strip()).netloc
    except ValueError:
        return None

    host = netloc.rpartition('@')[2]
    if host.startswith('['):
        host = host[1:host.find(']')] if ']' in host else ''
    else:
        host = host.partition(':')[0]
    return host or None


def truncate_name(name: str, max_length: int = 60) -> str:
    """
    Truncate a torrent name for display.

    Args:
        name: Torrent name to truncate
        max_length: Maximum length

    Returns:
        Truncated name with ellipsis if needed
    """
    if len(name) <= max_length:
        return name
    return name[:max_length - 3] + "..."
