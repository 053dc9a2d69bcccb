"""Base interfaces for candidate sources and marketplace search."""

from __future__ import annotations

from abc import ABC, abstractmethod

from vetting.models import CandidateProduct, MatchCandidate


class BaseCollector(ABC):
    """Abstract base for all candidate sources."""

    @abstractmethod
    async def collect(self, category: str, limit: int = 20) -> list[CandidateProduct]:
        """Collect candidate products from the source."""
        ...


class MarketplaceSearch(ABC):
    """Abstract base for secondary-marketplace search."""

    @abstractmethod
    async def search(self, query: str, limit: int = 10) -> list[MatchCandidate]:
        """Return listings for a query, best first. Raises NetworkError on failure."""
        ...
