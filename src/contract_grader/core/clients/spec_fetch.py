"""Fetch URL-sourced specifications and scoring templates.

One GET per grading call, before any rule runs. Not retried.
"""

from __future__ import annotations

import logging
import os

import httpx

from ..errors import SpecFetchError

logger = logging.getLogger(__name__)

ACCEPT = "application/yaml, application/x-yaml, application/json;q=0.9, text/plain;q=0.8, */*;q=0.5"


def is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def fetch_timeout() -> float:
    try:
        return float(os.environ.get("GRADER_FETCH_TIMEOUT", "30"))
    except ValueError:
        return 30.0


async def fetch_spec_text(url: str, timeout: float | None = None) -> str:
    """Fetch the raw text of a specification.

    Args:
        url: ``http(s)://`` location of a YAML or JSON document.
        timeout: Overall seconds for the request (default ``GRADER_FETCH_TIMEOUT``).

    Returns:
        The response body as text.

    Raises:
        SpecFetchError: On a non-2xx status or a transport failure.
    """
    total = timeout if timeout is not None else fetch_timeout()
    logger.info("Fetching specification from %s", url)
    try:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(total, connect=min(10.0, total)),
            follow_redirects=True,
        ) as client:
            response = await client.get(url, headers={"Accept": ACCEPT})
            response.raise_for_status()
            return response.text
    except httpx.HTTPStatusError as e:
        raise SpecFetchError(url, e.response.reason_phrase or "error", e.response.status_code) from e
    except httpx.HTTPError as e:
        raise SpecFetchError(url, f"{type(e).__name__}: {e}") from e
