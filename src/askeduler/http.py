r"""HTTP action built on ``httpx``.

This module adapts an HTTP request into an action for the orchestrator.
Responses are classified as follows:

- status < 400: success, the response is the result of the run
- 429 or 503 with a Retry-After header: retryable, the next wait is
  replaced with the delay parsed from the header
- other status codes of ``status_forcelist`` (including 429 and 503
  without a Retry-After header): retryable with the computed backoff
- any other status code: terminal ``HttpStatusError``
- ``httpx.TimeoutException`` and ``httpx.RequestError``: retryable

Example:
    ```pycon
    >>> import asyncio
    >>> from askeduler import RetryParams
    >>> from askeduler.http import fetch_with_retry
    >>> response = asyncio.run(
    ...     fetch_with_retry("https://api.example.com/data", params=RetryParams(max_retries=5))
    ... )  # doctest: +SKIP

    ```
"""

from __future__ import annotations

__all__ = [
    "RETRY_AFTER_HEADER",
    "RETRY_AFTER_STATUS_CODES",
    "classify_response",
    "fetch_with_retry",
    "http_action",
]

import logging
from typing import TYPE_CHECKING, Any

import httpx

from askeduler.core.config import RETRY_STATUS_CODES, RetryParams
from askeduler.exceptions import HttpStatusError, RetryableActionError
from askeduler.retry.orchestrator import Orchestrator
from askeduler.utils.retry_after import parse_retry_after

if TYPE_CHECKING:
    from askeduler.retry.orchestrator import ActionFactory

logger: logging.Logger = logging.getLogger(__name__)

RETRY_AFTER_HEADER = "Retry-After"

# Status codes whose Retry-After header overrides the computed backoff
RETRY_AFTER_STATUS_CODES = (429, 503)


def classify_response(
    response: httpx.Response,
    status_forcelist: tuple[int, ...] = RETRY_STATUS_CODES,
) -> httpx.Response:
    """Return a successful response or raise the matching action error.

    Args:
        response: The HTTP response to evaluate.
        status_forcelist: Status codes that should trigger a retry.

    Returns:
        The response if its status code is below 400.

    Raises:
        RetryableActionError: If the status code is retryable.
        HttpStatusError: If the status code is not retryable.
    """
    status_code = response.status_code
    if status_code < 400:
        return response

    request = response.request
    target = f"{request.method} request to {request.url}"
    if status_code in RETRY_AFTER_STATUS_CODES and RETRY_AFTER_HEADER in response.headers:
        delay = parse_retry_after(response.headers[RETRY_AFTER_HEADER])
        logger.debug(f"{target} returned {status_code}, retrying after {delay}ms")
        raise RetryableActionError(
            f"{target} failed with status {status_code}", delay_override=delay
        )
    if status_code in status_forcelist:
        logger.debug(f"{target} failed with retryable status {status_code}")
        raise RetryableActionError(f"{target} failed with status {status_code}")

    logger.debug(f"{target} failed with non-retryable status {status_code}")
    raise HttpStatusError(
        f"{target} failed with status {status_code}",
        status_code=status_code,
        response=response,
    )


def http_action(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    status_forcelist: tuple[int, ...] = RETRY_STATUS_CODES,
    **kwargs: Any,
) -> ActionFactory:
    """Create an action factory issuing one HTTP request per attempt.

    Args:
        client: The client used to send the requests.
        method: The HTTP method, e.g. ``"GET"``.
        url: The URL to request.
        status_forcelist: Status codes that should trigger a retry.
        **kwargs: Additional keyword arguments passed to
            ``httpx.AsyncClient.request``.

    Returns:
        A zero-argument callable returning the coroutine of one attempt.
    """

    async def attempt() -> httpx.Response:
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise RetryableActionError(f"{method} request to {url} timed out", cause=exc) from exc
        except httpx.RequestError as exc:
            raise RetryableActionError(
                f"{method} request to {url} failed: {exc}", cause=exc
            ) from exc
        return classify_response(response, status_forcelist)

    return attempt


async def fetch_with_retry(
    url: str,
    *,
    method: str = "GET",
    client: httpx.AsyncClient | None = None,
    params: RetryParams | None = None,
    status_forcelist: tuple[int, ...] = RETRY_STATUS_CODES,
    **kwargs: Any,
) -> httpx.Response:
    """Send an HTTP request with retries.

    Args:
        url: The URL to request.
        method: The HTTP method.
        client: Optional client. When omitted, a client is created for the
            run and closed afterwards.
        params: Retry parameters. Defaults to ``RetryParams()``.
        status_forcelist: Status codes that should trigger a retry.
        **kwargs: Additional keyword arguments passed to
            ``httpx.AsyncClient.request``.

    Returns:
        The first successful response.

    Raises:
        HttpStatusError: If a non-retryable status code was returned.
        RetryLimitExceededError: If the retry budget ran out.
    """
    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient()
    try:
        action = http_action(client, method, url, status_forcelist=status_forcelist, **kwargs)
        return await Orchestrator(action, params).run()
    finally:
        if owns_client:
            await client.aclose()
