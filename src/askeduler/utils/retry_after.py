r"""Retry-After header parsing utilities.

This module converts the value of a Retry-After header (RFC 7231) into
the delay, in milliseconds, to wait before the next attempt.
"""

from __future__ import annotations

__all__ = ["parse_retry_after"]

import logging
import math
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

from askeduler.core.config import DEFAULT_TIMEOUT, MAX_RETRY_AFTER

logger: logging.Logger = logging.getLogger(__name__)


def parse_retry_after(retry_after_header: str | None) -> float:
    """Parse the Retry-After header value into a delay in milliseconds.

    The header is interpreted as follows:
    1. Absent header: ``DEFAULT_TIMEOUT``.
    2. A plain number of seconds (e.g., "120"): converted to milliseconds
       and clamped to ``MAX_RETRY_AFTER``.
    3. An HTTP-date (e.g., "Wed, 21 Oct 2015 07:28:00 GMT"): the time left
       until that date, clamped to ``MAX_RETRY_AFTER``. A date in the past
       gives ``DEFAULT_TIMEOUT``.
    4. Anything else: ``DEFAULT_TIMEOUT``.

    A negative number of seconds is treated like a date in the past.

    Args:
        retry_after_header: The value of the Retry-After header, or None if
            the header is not present in the response.

    Returns:
        The delay in milliseconds.

    Example:
        ```pycon
        >>> from askeduler.utils import parse_retry_after
        >>> parse_retry_after("2")
        2000.0
        >>> parse_retry_after("120")  # Clamped
        10000
        >>> parse_retry_after(None)
        1000
        >>> parse_retry_after("invalid")
        1000

        ```
    """
    if retry_after_header is None:
        return DEFAULT_TIMEOUT

    value = retry_after_header.strip()
    try:
        seconds = float(value)
    except ValueError:
        pass
    else:
        if not math.isfinite(seconds) or seconds < 0:
            logger.debug(f"Ignoring out of range Retry-After header: {retry_after_header!r}")
            return DEFAULT_TIMEOUT
        return min(seconds * 1000, MAX_RETRY_AFTER)

    try:
        retry_date = parsedate_to_datetime(value)
    except (ValueError, TypeError, IndexError, OverflowError):
        logger.debug(f"Failed to parse Retry-After header: {retry_after_header!r}")
        return DEFAULT_TIMEOUT
    if retry_date.tzinfo is None:
        retry_date = retry_date.replace(tzinfo=timezone.utc)
    delta = (retry_date - datetime.now(timezone.utc)).total_seconds() * 1000
    if delta < 0:
        return DEFAULT_TIMEOUT
    return min(delta, MAX_RETRY_AFTER)
