"""Cross-marketplace matcher.

Tries an ordered list of strategies against the secondary-marketplace listings
and stops at the first one that produces a qualifying match:

    ImageMatch -> SemanticMatch -> TextualFallback -> no match

Textual fallback is a policy-gated step: it never runs for categories on the
deny list, and only runs for categories on the allow list.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from loguru import logger

from vetting.analyze.image_similarity import ImageComparator
from vetting.analyze.text_similarity import TitleComparator
from vetting.categories import Category, normalize_category
from vetting.collect.http import first_valid_image
from vetting.config import VettingConfig
from vetting.models import CandidateProduct, MatchCandidate, MatchMethod, MatchResult, PriceStatistics


def price_deviation(listing_price: float, source_price: float, fx_rate: float) -> Optional[float]:
    """Percent difference between a listing price and the converted source price."""
    source_local = source_price * fx_rate
    if source_local <= 0 or listing_price <= 0:
        return None
    return round((listing_price - source_local) / source_local * 100, 2)


def _quantile(sorted_values: list[float], q: float) -> float:
    """Linear-interpolation quantile over an ascending list."""
    if len(sorted_values) == 1:
        return sorted_values[0]
    pos = (len(sorted_values) - 1) * q
    lower = int(pos)
    upper = min(lower + 1, len(sorted_values) - 1)
    return sorted_values[lower] + (sorted_values[upper] - sorted_values[lower]) * (pos - lower)


def price_statistics(prices: list[float]) -> PriceStatistics:
    """Distribution of the positive prices (min, p25, median, p75, max, mean)."""
    values = sorted(p for p in prices if p and p > 0)
    if not values:
        return PriceStatistics()
    return PriceStatistics(
        count=len(values),
        min=round(values[0], 2),
        p25=round(_quantile(values, 0.25), 2),
        median=round(_quantile(values, 0.5), 2),
        p75=round(_quantile(values, 0.75), 2),
        max=round(values[-1], 2),
        mean=round(sum(values) / len(values), 2),
    )


@dataclass
class MatchContext:
    candidate: CandidateProduct
    category: Category
    title: str
    config: VettingConfig

    def within_price_cap(self, listing: MatchCandidate) -> bool:
        deviation = listing.price_deviation_pct
        return deviation is not None and abs(deviation) <= self.config.matching.max_price_deviation


@dataclass
class StrategyAttempt:
    method: MatchMethod
    winner: Optional[MatchCandidate] = None
    ranked: list[MatchCandidate] = field(default_factory=list)
    qualifying: list[MatchCandidate] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)
    image_error: bool = False
    semantic_fallback: bool = False


class MatchStrategy(ABC):
    """One step of the matching cascade."""

    method: MatchMethod

    @abstractmethod
    async def attempt_match(self, context: MatchContext, listings: list[MatchCandidate]) -> StrategyAttempt:
        """Score the listings and pick a winner if one qualifies."""
        ...


class ImageMatchStrategy(MatchStrategy):
    method = MatchMethod.IMAGE

    def __init__(self, comparator: ImageComparator):
        self.comparator = comparator

    async def attempt_match(self, context: MatchContext, listings: list[MatchCandidate]) -> StrategyAttempt:
        attempt = StrategyAttempt(method=self.method)
        source_url = first_valid_image(context.candidate.image_urls)
        if not source_url:
            attempt.notes.append("candidate has no usable image")
            return attempt

        listing_urls = [first_valid_image(l.image_urls) or "" for l in listings]
        source_error, comparisons = await self.comparator.compare_many(source_url, listing_urls)
        if source_error:
            attempt.image_error = True
            attempt.notes.append(f"image fetch failed: {source_error}")
            return attempt

        failures = 0
        for listing, comparison in zip(listings, comparisons):
            listing.image_similarity = comparison.similarity
            if comparison.error:
                failures += 1
        if listings and failures == len(listings):
            attempt.image_error = True
            attempt.notes.append("no listing image could be compared")

        threshold = context.config.matching.image_threshold
        attempt.ranked = sorted(
            (l for l in listings if l.image_similarity is not None),
            key=lambda l: l.image_similarity,
            reverse=True,
        )
        attempt.qualifying = [l for l in attempt.ranked if l.image_similarity >= threshold]
        if attempt.qualifying:
            attempt.winner = attempt.qualifying[0]
        return attempt


class SemanticMatchStrategy(MatchStrategy):
    method = MatchMethod.SEMANTIC

    def __init__(self, comparator: TitleComparator):
        self.comparator = comparator

    async def attempt_match(self, context: MatchContext, listings: list[MatchCandidate]) -> StrategyAttempt:
        attempt = StrategyAttempt(method=self.method)
        threshold = context.config.matching.semantic_threshold

        methods = set()
        for listing in listings:
            score, method = await self.comparator.semantic(context.title, listing.title)
            listing.semantic_score = score
            methods.add(method)
            if score >= threshold and context.within_price_cap(listing):
                attempt.qualifying.append(listing)
            elif score >= threshold:
                attempt.notes.append(
                    f"'{listing.title[:40]}' similar ({score:.0f}) but price deviation {listing.price_deviation_pct}%"
                )

        attempt.semantic_fallback = "keyword" in methods
        attempt.ranked = sorted(listings, key=lambda l: l.semantic_score or 0.0, reverse=True)
        attempt.qualifying.sort(key=lambda l: l.semantic_score or 0.0, reverse=True)
        if attempt.qualifying:
            attempt.winner = attempt.qualifying[0]
        return attempt


class TextualFallbackStrategy(MatchStrategy):
    method = MatchMethod.TEXTUAL_FALLBACK

    def __init__(self, comparator: TitleComparator):
        self.comparator = comparator

    async def attempt_match(self, context: MatchContext, listings: list[MatchCandidate]) -> StrategyAttempt:
        attempt = StrategyAttempt(method=self.method)
        if not context.config.matching.allows_textual_fallback(context.category):
            attempt.notes.append(f"textual fallback not allowed for {context.category.value}")
            return attempt

        threshold = context.config.matching.textual_threshold
        for listing in listings:
            listing.text_score = self.comparator.textual(context.title, listing.title)
            if listing.text_score >= threshold and context.within_price_cap(listing):
                attempt.qualifying.append(listing)

        attempt.ranked = sorted(listings, key=lambda l: l.text_score or 0.0, reverse=True)
        attempt.qualifying.sort(key=lambda l: l.text_score or 0.0, reverse=True)
        if attempt.qualifying:
            attempt.winner = attempt.qualifying[0]
        return attempt


class MarketplaceMatcher:
    """Runs the strategy cascade for one candidate."""

    def __init__(self, config: VettingConfig, strategies: list[MatchStrategy]):
        self.config = config
        self.strategies = strategies

    @classmethod
    def default(
        cls,
        config: VettingConfig,
        image_comparator: Optional[ImageComparator] = None,
        title_comparator: Optional[TitleComparator] = None,
    ) -> "MarketplaceMatcher":
        """Image step (when a comparator is given and images are enabled), then semantic, then textual."""
        titles = title_comparator or TitleComparator()
        strategies: list[MatchStrategy] = []
        if image_comparator is not None and config.use_images:
            strategies.append(ImageMatchStrategy(image_comparator))
        strategies.append(SemanticMatchStrategy(titles))
        strategies.append(TextualFallbackStrategy(titles))
        return cls(config, strategies)

    async def match(
        self,
        candidate: CandidateProduct,
        listings: list[MatchCandidate],
        title: Optional[str] = None,
        query: str = "",
    ) -> MatchResult:
        settings = self.config.matching
        category = normalize_category(candidate.category)
        context = MatchContext(
            candidate=candidate,
            category=category,
            title=title or candidate.search_title,
            config=self.config,
        )

        # Work on copies: scores are written onto the listings as strategies run
        working = [
            l.model_copy(update={
                "price_deviation_pct": price_deviation(l.price, candidate.price, self.config.costs.fx_rate),
            })
            for l in listings[:settings.listings_to_examine]
        ]
        result = MatchResult(query=query)
        if not working:
            result.notes.append("no listings found")
            return result

        last: Optional[StrategyAttempt] = None
        for strategy in self.strategies:
            attempt = await strategy.attempt_match(context, working)
            result.attempted.append(strategy.method.value)
            result.notes.extend(attempt.notes)
            result.image_error = result.image_error or attempt.image_error
            result.semantic_fallback = result.semantic_fallback or attempt.semantic_fallback
            if attempt.ranked:
                last = attempt

            if attempt.winner is not None:
                # Guard against a strategy list that bypasses the category gate
                if attempt.method == MatchMethod.TEXTUAL_FALLBACK and not settings.allows_textual_fallback(category):
                    result.notes.append("textual match discarded by category policy")
                    continue
                result.best = attempt.winner
                result.method = attempt.method
                result.visual_risk = attempt.method != MatchMethod.IMAGE
                result.top_matches = attempt.ranked[:settings.top_matches]
                result.comparables = attempt.qualifying[:settings.top_matches]
                logger.info(
                    "Matched {} via {} -> '{}' (R${})",
                    candidate.id, attempt.method.value, attempt.winner.title[:50], attempt.winner.price,
                )
                return result

        if last is not None:
            result.top_matches = last.ranked[:settings.top_matches]
        logger.info("No match for {} after {}", candidate.id, result.attempted)
        return result
