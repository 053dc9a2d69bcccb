"""HTTP helpers shared by the marketplace client and the image fetcher.

GET requests only. Transport errors, 429 and 5xx are retried with exponential
backoff; anything else fails immediately.
"""

from __future__ import annotations

import asyncio
from typing import Any, Iterable, Optional

import httpx
from loguru import logger

from vetting.config import HttpSettings
from vetting.errors import NetworkError

MAX_IMAGE_BYTES = 10_000_000

# Junk image patterns from marketplace CDNs
REJECT_URL_PATTERNS = [
    "avatar",
    "shop-logo",
    "banner",
    "promotion",
    "watermark",
    "/icon/",
    "no-image",
    "placeholder",
    "sprite",
]

VALID_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}

# Known CDN hosts that may serve images without file extensions
_CDN_HOSTS = ["alicdn.com", "aliexpress-media.com", "mlstatic.com"]


def validate_image_url(image_url: str) -> tuple[bool, str]:
    """Fast URL check without downloading.

    Returns (is_valid, reason).
    """
    if not image_url or not image_url.strip():
        return False, "empty_url"

    url_lower = image_url.lower()
    if not url_lower.startswith(("http://", "https://")):
        return False, "not_http"

    has_valid_ext = any(ext in url_lower for ext in VALID_EXTENSIONS)
    is_cdn = any(cdn in url_lower for cdn in _CDN_HOSTS)
    if not has_valid_ext and not is_cdn:
        return False, "invalid_format"

    for pattern in REJECT_URL_PATTERNS:
        if pattern in url_lower:
            return False, f"rejected_pattern:{pattern}"

    return True, "passed"


def first_valid_image(urls: Iterable[str]) -> Optional[str]:
    for url in urls:
        ok, _ = validate_image_url(url)
        if ok:
            return url
    return None


def _retryable(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


async def get_with_retry(
    client: httpx.AsyncClient,
    url: str,
    settings: HttpSettings,
    params: Optional[dict[str, Any]] = None,
) -> httpx.Response:
    """GET with bounded exponential backoff.

    Raises:
        NetworkError: when the request fails for good (non-retryable status,
            redirect loop or decoding error, or retries exhausted).
    """
    last_error: Optional[Exception] = None
    last_status: Optional[int] = None

    for attempt in range(settings.max_retries + 1):
        try:
            resp = await client.get(url, params=params)
        except httpx.TransportError as e:
            last_error = e
            last_status = None
        except httpx.HTTPError as e:
            # Not retryable: redirect loops, undecodable bodies
            raise NetworkError(f"request failed for {url}", url=url, cause=e) from e
        else:
            if not _retryable(resp.status_code):
                if resp.status_code >= 400:
                    raise NetworkError(
                        f"HTTP {resp.status_code} for {url}", url=url, status_code=resp.status_code,
                    )
                return resp
            last_error = None
            last_status = resp.status_code

        if attempt == settings.max_retries:
            break
        delay = settings.base_delay * (2 ** attempt)
        logger.debug(
            "GET {} failed ({}), retry {}/{} in {}s",
            url, last_status or last_error, attempt + 1, settings.max_retries, delay,
        )
        await asyncio.sleep(delay)

    raise NetworkError(
        f"all retries exhausted for {url}",
        url=url,
        status_code=last_status,
        cause=last_error,
    )


def build_client(settings: HttpSettings, **kwargs) -> httpx.AsyncClient:
    headers = {"User-Agent": settings.user_agent, "Accept": "*/*"}
    headers.update(kwargs.pop("headers", {}))
    return httpx.AsyncClient(
        timeout=settings.timeout, headers=headers, follow_redirects=True, **kwargs,
    )


class ImageFetcher:
    """Downloads images with retry. Use as an async context manager."""

    def __init__(self, settings: HttpSettings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "ImageFetcher":
        if self._client is None:
            self._client = build_client(self.settings)
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch(self, url: str) -> bytes:
        if self._client is None:
            self._client = build_client(self.settings)
            self._owns_client = True
        resp = await get_with_retry(self._client, url, self.settings)

        content_type = resp.headers.get("content-type", "")
        if content_type and not any(t in content_type for t in ["image/", "octet-stream"]):
            raise NetworkError(f"not an image: {content_type}", url=url)
        if len(resp.content) > MAX_IMAGE_BYTES:
            raise NetworkError(f"image too large: {len(resp.content) // 1024}kb", url=url)
        return resp.content
