"""
AssetFetcher -- downloads auxiliary images (QR codes, lot photos).

Responsibility:
    Fetch an image by URL or Drive file id with bounded exponential
    backoff.  Only rate limiting (HTTP 429) is retried; any other failure
    is permanent.

Failure modes:
    - ``PermanentFetchError`` for transport errors, non-2xx / non-429
      statuses and non-image content types.
    - ``RetriesExhaustedError`` when every attempt was rate limited.
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from dataclasses import dataclass

import httpx

from seedbank_kernel.exceptions import (
    PermanentFetchError,
    RateLimitedError,
    RetriesExhaustedError,
)
from seedbank_kernel.logging_config import get_logger

logger = get_logger("services.asset_fetcher")

DRIVE_DOWNLOAD_URL = "https://drive.google.com/uc?export=download&id={file_id}"

_DRIVE_ID_PATTERNS = (
    re.compile(r"/d/([a-zA-Z0-9_-]{25,})"),
    re.compile(r"id=([a-zA-Z0-9_-]{25,})"),
)


def direct_image_url(url_or_file_id: str) -> str:
    """Turn a Drive sharing link or bare file id into a direct download URL."""
    value = url_or_file_id.strip()
    if "http" not in value:
        return DRIVE_DOWNLOAD_URL.format(file_id=value)
    if "drive.google.com" in value:
        for pattern in _DRIVE_ID_PATTERNS:
            match = pattern.search(value)
            if match:
                return DRIVE_DOWNLOAD_URL.format(file_id=match.group(1))
    return value


@dataclass(frozen=True)
class FetchedAsset:
    url: str
    content: bytes
    content_type: str
    attempts: int


class AssetFetcher:
    """
    Image fetcher with retry on HTTP 429.

    Attempt ``i`` (0-based) that is rate limited sleeps
    ``base_delay_seconds * 2**i`` before the next attempt.
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        max_attempts: int = 5,
        base_delay_seconds: float = 1.0,
        timeout_seconds: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._client = client or httpx.Client(timeout=timeout_seconds, follow_redirects=True)
        self.max_attempts = max_attempts
        self.base_delay_seconds = base_delay_seconds
        self._sleep = sleep

    def close(self) -> None:
        self._client.close()

    def fetch_image(self, url_or_file_id: str) -> FetchedAsset:
        url = direct_image_url(url_or_file_id)
        for attempt in range(self.max_attempts):
            try:
                return self._attempt(url, attempt + 1)
            except RateLimitedError:
                if attempt == self.max_attempts - 1:
                    break
                delay = self.base_delay_seconds * 2**attempt
                logger.warning(
                    "asset_fetch_rate_limited",
                    extra={"url": url, "attempt": attempt + 1, "delay_seconds": delay},
                )
                self._sleep(delay)

        logger.error("asset_fetch_retries_exhausted", extra={"url": url, "attempts": self.max_attempts})
        raise RetriesExhaustedError(url, self.max_attempts)

    def _attempt(self, url: str, attempt: int) -> FetchedAsset:
        try:
            response = self._client.get(url)
        except httpx.HTTPError as exc:
            logger.error("asset_fetch_failed", extra={"url": url, "attempt": attempt}, exc_info=True)
            raise PermanentFetchError(url, str(exc)) from exc

        if response.status_code == 429:
            raise RateLimitedError(url)
        if not response.is_success:
            logger.error(
                "asset_fetch_failed",
                extra={"url": url, "attempt": attempt, "status_code": response.status_code},
            )
            raise PermanentFetchError(url, f"HTTP error: {response.status_code}")

        content_type = response.headers.get("content-type", "")
        if not content_type.startswith("image/"):
            logger.error(
                "asset_fetch_not_image",
                extra={"url": url, "content_type": content_type, "preview": response.text[:200]},
            )
            raise PermanentFetchError(url, f"Invalid content type: {content_type}")

        logger.info(
            "asset_fetched",
            extra={"url": url, "attempt": attempt, "content_type": content_type, "size": len(response.content)},
        )
        return FetchedAsset(url=url, content=response.content, content_type=content_type, attempts=attempt)
