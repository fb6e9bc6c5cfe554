"""
Retry Utilities

Helpers shared by the submission loop for interpreting rate limit hints,
classifying relay failures and computing backoff delays.
"""

import math
from typing import Optional
from loguru import logger

from bundler.utils.clock import SelectionStrategy


def parse_retry_after(value: Optional[str]) -> Optional[int]:
    """
    Convert a Retry-After header to milliseconds.

    Args:
        value: Header value in seconds, integer or fractional

    Returns:
        Delay in milliseconds, or None if the header is absent or unusable
    """
    if value is None:
        return None

    try:
        seconds = float(str(value).strip())
    except ValueError:
        logger.debug(f"Ignoring non-numeric Retry-After header: {value!r}")
        return None

    if not math.isfinite(seconds) or seconds < 0:
        return None

    return int(round(seconds * 1000))


def is_transient_status(status_code: int) -> bool:
    """
    Check whether an HTTP status indicates a transient server-side condition.

    Args:
        status_code: HTTP status code

    Returns:
        True for 5xx and request-timeout class responses
    """
    return status_code >= 500 or status_code == 408


def calculate_backoff(
    attempt: int,
    base_ms: int,
    cap_ms: int,
    jitter_ms: int,
    strategy: SelectionStrategy
) -> float:
    """
    Calculate exponential backoff with jitter between rounds.

    Args:
        attempt: Current attempt number (1-based)
        base_ms: Base delay in milliseconds
        cap_ms: Upper bound for the exponential part
        jitter_ms: Upper bound for the additive uniform jitter
        strategy: Random source for the jitter

    Returns:
        Delay in milliseconds
    """
    base_delay = min(cap_ms, base_ms * (2 ** attempt))
    jitter = strategy.uniform(0, jitter_ms) if jitter_ms > 0 else 0.0
    delay = base_delay + jitter

    logger.debug(f"Backoff calculated: attempt={attempt}, base={base_delay}ms, with_jitter={delay:.0f}ms")
    return delay
