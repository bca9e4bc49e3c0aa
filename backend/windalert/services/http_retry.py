"""Retrying POST helper for outbound provider calls.

Every attempt is bounded by a hard timeout; a timeout, a transport error or a
non-2xx status counts as a failed attempt. Between attempts the helper waits
``backoff * attempt`` seconds (0.5 s, 1 s, ... by default).
"""

import asyncio
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TRIES = 2
DEFAULT_TIMEOUT = 10.0
DEFAULT_BACKOFF = 0.5


class UpstreamError(Exception):
    """An upstream provider failed after all attempts."""

    def __init__(self, message: str, status_code: int | None = None, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


async def post_with_retry(
    client: httpx.AsyncClient,
    url: str,
    *,
    tries: int = DEFAULT_TRIES,
    timeout: float = DEFAULT_TIMEOUT,
    backoff: float = DEFAULT_BACKOFF,
    **kwargs: Any,
) -> httpx.Response:
    """POST to url, retrying on failure.

    Args:
        client: httpx async client to send with.
        url: Target URL.
        tries: Total number of attempts (>= 1).
        timeout: Per-attempt limit in seconds, enforced by cancellation.
        backoff: Linear backoff step in seconds.
        **kwargs: Passed to client.post (json=, data=, headers=, auth=...).

    Returns:
        The first 2xx response.

    Raises:
        UpstreamError: when every attempt failed. Carries the last status code
            and body when the provider answered at all.
    """
    last_error: UpstreamError | None = None
    for attempt in range(1, max(tries, 1) + 1):
        try:
            resp = await asyncio.wait_for(client.post(url, **kwargs), timeout=timeout)
            if resp.is_success:
                return resp
            last_error = UpstreamError(
                f"HTTP {resp.status_code} from {url}",
                status_code=resp.status_code,
                body=_body_of(resp),
            )
        except asyncio.TimeoutError:
            last_error = UpstreamError(f"Timed out after {timeout:.1f}s posting to {url}")
        except httpx.HTTPError as exc:
            last_error = UpstreamError(f"{type(exc).__name__} posting to {url}: {exc}")

        logger.warning("POST %s attempt %d/%d failed: %s", url, attempt, tries, last_error)
        if attempt < tries:
            await asyncio.sleep(backoff * attempt)

    assert last_error is not None
    raise last_error


def _body_of(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text
