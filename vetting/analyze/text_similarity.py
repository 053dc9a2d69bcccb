"""Title similarity for the semantic and textual matching steps."""

from __future__ import annotations

from typing import Optional, Protocol

from loguru import logger

from vetting.analyze.keywords import jaccard_similarity, keyword_compatibility


class SemanticScorer(Protocol):
    async def semantic_score(self, title_a: str, title_b: str) -> float:
        """Similarity of two product titles, 0-100."""
        ...


class TitleComparator:
    """Semantic score from an injected model, keyword Jaccard otherwise."""

    def __init__(self, scorer: Optional[SemanticScorer] = None):
        self.scorer = scorer

    async def semantic(self, title_a: str, title_b: str) -> tuple[float, str]:
        """Returns (score 0-100, method) where method is "semantic" or "keyword"."""
        if self.scorer is not None:
            try:
                score = float(await self.scorer.semantic_score(title_a, title_b))
                if score == score:
                    return max(0.0, min(100.0, score)), "semantic"
                logger.warning("Semantic scorer returned NaN, using keyword overlap")
            except Exception as e:
                logger.warning("Semantic scorer failed, using keyword overlap: {}", e)
        return jaccard_similarity(title_a, title_b), "keyword"

    @staticmethod
    def textual(source_title: str, listing_title: str) -> float:
        """Keyword-coverage compatibility used by the textual fallback, 0-100."""
        return keyword_compatibility(source_title, listing_title)
