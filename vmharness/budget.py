"""Retry budget derived from a total wait and a polling interval."""

from __future__ import annotations

import math

from vmharness.core.exceptions import ConfigurationError


def retry_budget(total_wait: float, interval: float) -> int:
    """Maximum number of polls that fit in ``total_wait``.

    The budget bounds poll iterations independently of the wall-clock
    deadline; whichever runs out first ends the wait.

    Args:
        total_wait: Total wait duration in seconds.
        interval: Polling interval in seconds.

    Returns:
        ``floor(total_wait / interval)``.

    Raises:
        ConfigurationError: If ``interval`` is zero or negative.

    Example:
        >>> retry_budget(600, 30)
        20
    """
    if interval <= 0:
        raise ConfigurationError(f"Polling interval must be positive, got {interval}")
    return max(0, math.floor(total_wait / interval))
