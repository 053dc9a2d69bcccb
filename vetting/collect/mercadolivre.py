"""Mercado Livre search client.

Queries the public search API for the configured site (MLB = Brazil) and maps
results onto `MatchCandidate` listings.
"""

from __future__ import annotations

from typing import Optional

import httpx
from loguru import logger

from vetting.config import MERCADOLIVRE_API_URL, MERCADOLIVRE_SITE_ID, HttpSettings
from vetting.errors import NetworkError
from vetting.models import MatchCandidate

from .base import MarketplaceSearch
from .http import build_client, get_with_retry

_HEADERS = {
    "Accept": "application/json",
    "Accept-Language": "pt-BR,pt;q=0.9",
}


def _image_urls(item: dict) -> list[str]:
    urls = [p.get("secure_url") or p.get("url", "") for p in item.get("pictures", []) or []]
    thumb = item.get("thumbnail", "")
    if thumb:
        # Search results carry a small "-I" thumbnail; "-O" is the full-size variant
        urls.append(thumb.replace("http://", "https://").replace("-I.jpg", "-O.jpg"))
    return [u for u in urls if u]


def parse_search_results(data: dict, limit: int = 10) -> list[MatchCandidate]:
    """Map a search API payload onto listings, skipping entries without a price."""
    listings = []
    for item in data.get("results", [])[:limit]:
        price = item.get("price") or 0
        if not price or price <= 0:
            continue
        listings.append(MatchCandidate(
            title=item.get("title", ""),
            price=price,
            image_urls=_image_urls(item),
            url=item.get("permalink", ""),
            listing_id=str(item.get("id", "")),
        ))
    return listings


class MercadoLivreSearch(MarketplaceSearch):
    """Search client. Use as an async context manager to share one connection pool."""

    def __init__(
        self,
        settings: HttpSettings,
        site_id: str = MERCADOLIVRE_SITE_ID,
        base_url: str = MERCADOLIVRE_API_URL,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings
        self.url = f"{base_url.rstrip('/')}/sites/{site_id}/search"
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "MercadoLivreSearch":
        if self._client is None:
            self._client = build_client(self.settings, headers=_HEADERS)
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def search(self, query: str, limit: int = 10) -> list[MatchCandidate]:
        if not query.strip():
            return []
        if self._client is None:
            self._client = build_client(self.settings, headers=_HEADERS)
            self._owns_client = True

        resp = await get_with_retry(self._client, self.url, self.settings, params={"q": query, "limit": limit})
        try:
            data = resp.json()
        except ValueError as e:
            # Captcha and maintenance pages come back as 200 HTML
            raise NetworkError("search returned a non-JSON body", url=self.url, cause=e) from e
        if not isinstance(data, dict) or not isinstance(data.get("results", []), list):
            raise NetworkError(f"unexpected search payload: {type(data).__name__}", url=self.url)
        listings = parse_search_results(data, limit=limit)
        logger.debug("ML '{}': {} listings", query, len(listings))
        return listings
