"""Vetting pipeline: Quantitative -> Qualitative -> Search/Match -> Margin -> Risk -> Decision.

`evaluate_candidate` never raises: every failure ends up as a Decision (with
tier "error" when nothing usable was produced). `evaluate_batch` runs a fixed-size
worker pool with a pause before each worker picks up its next candidate.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from loguru import logger

from vetting.analyze.ai_analysis import build_ai_scorers
from vetting.analyze.decision import aggregate_decision, decision_from_error
from vetting.analyze.image_similarity import ImageComparator
from vetting.analyze.keywords import build_search_terms
from vetting.analyze.margin import calculate_margin
from vetting.analyze.matcher import MarketplaceMatcher, price_statistics
from vetting.analyze.qualitative import QualitativeFilter
from vetting.analyze.quantitative import evaluate_quantitative
from vetting.analyze.risk import score_risk
from vetting.analyze.text_similarity import TitleComparator
from vetting.analyze.translation import TitleTranslator
from vetting.categories import normalize_category
from vetting.collect.base import MarketplaceSearch
from vetting.collect.http import ImageFetcher
from vetting.collect.mercadolivre import MercadoLivreSearch
from vetting.config import DATA_DIR, VettingConfig
from vetting.errors import ComputationError, NetworkError, TotalFailure, ValidationError
from vetting.models import (
    CandidateProduct,
    Decision,
    FilterVerdict,
    MarginAnalysis,
    MatchCandidate,
    MatchResult,
    StageOutcome,
    StageStatus,
)

ProgressCallback = Callable[[int, int, Decision], None]

DEADLINE_EXCEEDED = "batch deadline exceeded"


def validate_candidate(candidate: CandidateProduct) -> None:
    """Raise if the candidate cannot be evaluated at all."""
    if not candidate.id:
        raise ValidationError("candidate has no id", field="id")
    if not (candidate.title or candidate.title_translated).strip():
        raise ValidationError(f"candidate {candidate.id} has no title", field="title")
    if candidate.price <= 0:
        raise ComputationError(f"candidate {candidate.id} has non-positive price {candidate.price}")


class VettingPipeline:
    """Evaluates candidates with injected collaborators."""

    def __init__(
        self,
        config: VettingConfig,
        search: Optional[MarketplaceSearch] = None,
        matcher: Optional[MarketplaceMatcher] = None,
        qualitative: Optional[QualitativeFilter] = None,
        translator: Optional[TitleTranslator] = None,
    ):
        self.config = config
        self.search = search
        self.matcher = matcher or MarketplaceMatcher.default(config)
        self.qualitative = qualitative or QualitativeFilter(config)
        self.translator = translator

    # --- stages ---

    def _run_quantitative(self, candidate: CandidateProduct) -> StageOutcome:
        verdict = evaluate_quantitative(candidate, self.config)
        return StageOutcome("quantitative", StageStatus.SUCCESS, verdict)

    async def _run_qualitative(self, candidate: CandidateProduct) -> StageOutcome:
        verdict = await self.qualitative.evaluate(candidate)
        degraded = self.qualitative.scorer is not None and verdict.source != "external-scorer"
        status = StageStatus.DEGRADED if degraded or verdict.approved is None else StageStatus.SUCCESS
        return StageOutcome("qualitative", status, verdict)

    async def _search_title(self, candidate: CandidateProduct) -> str:
        if candidate.title_translated or self.translator is None:
            return candidate.search_title
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.translator.translate, candidate.title)

    async def _find_listings(self, title: str) -> tuple[str, list[MatchCandidate]]:
        terms = build_search_terms(title)
        limit = max(self.config.matching.listings_to_examine, 10)
        listings = await self.search.search(terms.base, limit=limit)
        if not listings and terms.broad and terms.broad != terms.base:
            logger.debug("No listings for '{}', trying '{}'", terms.base, terms.broad)
            listings = await self.search.search(terms.broad, limit=limit)
            return terms.broad, listings
        return terms.base, listings

    async def _run_match(self, candidate: CandidateProduct) -> tuple[StageOutcome, int]:
        if self.search is None:
            return StageOutcome("match", StageStatus.FAILED, MatchResult(), error="no marketplace search configured"), 0

        title = await self._search_title(candidate)
        try:
            query, listings = await self._find_listings(title)
        except NetworkError as e:
            logger.warning("Marketplace search failed for {}: {}", candidate.id, e)
            result = MatchResult(notes=[f"search failed: {e}"])
            return StageOutcome("match", StageStatus.FAILED, result, error=str(e)), 0

        result = await self.matcher.match(candidate, listings, title=title, query=query)
        status = StageStatus.DEGRADED if result.image_error else StageStatus.SUCCESS
        return StageOutcome("match", status, result), len(listings)

    def _run_margin(self, candidate: CandidateProduct, match: MatchResult, market_size: int) -> StageOutcome:
        if not match.matched:
            return StageOutcome("margin", StageStatus.SKIPPED, notes=("no match",))

        prices = [m.price for m in match.comparables] or [match.best.price]
        stats = price_statistics(prices)
        category = normalize_category(candidate.category)
        try:
            analysis = calculate_margin(stats, candidate.price, category, self.config, market_size=market_size)
        except TotalFailure as e:
            logger.warning("Margin failed for {}: {}", candidate.id, e)
            return StageOutcome("margin", StageStatus.FAILED, error=str(e))
        status = StageStatus.DEGRADED if analysis.failures else StageStatus.SUCCESS
        return StageOutcome("margin", status, analysis)

    def _product_score(self, quant: FilterVerdict, qual: Optional[FilterVerdict]) -> float:
        d = self.config.decision
        weight = d.quantitative_weight + d.qualitative_weight
        if weight <= 0:
            return 0.0
        qual_score = qual.score if qual is not None else 0.0
        return (quant.score * d.quantitative_weight + qual_score * d.qualitative_weight) / weight

    # --- public API ---

    async def evaluate_candidate(self, candidate: CandidateProduct) -> Decision:
        """Run every stage for one candidate and return its Decision."""
        stages: dict[str, StageStatus] = {}
        errors: list[str] = []
        try:
            validate_candidate(candidate)

            quant_outcome = self._run_quantitative(candidate)
            stages["quantitative"] = quant_outcome.status
            quant: FilterVerdict = quant_outcome.value

            force = self.config.force_all_stages
            qual: Optional[FilterVerdict] = None
            if force or quant.approved or quant.score >= self.config.decision.qualitative_gate:
                qual_outcome = await self._run_qualitative(candidate)
                stages["qualitative"] = qual_outcome.status
                qual = qual_outcome.value
            else:
                stages["qualitative"] = StageStatus.SKIPPED

            match: Optional[MatchResult] = None
            margin: Optional[MarginAnalysis] = None
            risk = None
            if force or (quant.approved and (qual is None or qual.approved is not False)):
                match_outcome, market_size = await self._run_match(candidate)
                stages["match"] = match_outcome.status
                match = match_outcome.value
                if match_outcome.error:
                    errors.append(match_outcome.error)

                margin_outcome = self._run_margin(candidate, match, market_size)
                stages["margin"] = margin_outcome.status
                margin = margin_outcome.value if margin_outcome.usable else None
                if margin_outcome.error:
                    errors.append(margin_outcome.error)

                risk = score_risk(candidate, match, margin, self._product_score(quant, qual), self.config)
                stages["risk"] = StageStatus.SUCCESS
            else:
                for name in ("match", "margin", "risk"):
                    stages[name] = StageStatus.SKIPPED

            decision = aggregate_decision(
                candidate, quant, qual, margin, self.config, match=match, risk=risk, stages=stages,
            )
            if errors:
                decision = decision.model_copy(update={"error": "; ".join(errors)})

        except Exception as e:
            logger.error("Evaluation failed for {}: {}", candidate.id, e)
            return decision_from_error(candidate, e, stages=stages, config=self.config)

        logger.info(
            "{} '{}': score={} tier={} approved={}",
            candidate.id, candidate.title[:40], decision.final_score, decision.tier, decision.approved,
        )
        return decision

    async def _evaluate_with_timeout(self, candidate: CandidateProduct, deadline: Optional[float] = None) -> Decision:
        timeout = self.config.batch.per_candidate_timeout
        reason = f"timed out after {timeout}s"
        if deadline is not None:
            remaining = deadline - asyncio.get_running_loop().time()
            if remaining < timeout:
                timeout, reason = max(0.0, remaining), DEADLINE_EXCEEDED
        try:
            return await asyncio.wait_for(self.evaluate_candidate(candidate), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Candidate {}: {}", candidate.id, reason)
            return decision_from_error(candidate, reason, config=self.config)

    async def evaluate_batch(
        self,
        candidates: list[CandidateProduct],
        progress: Optional[ProgressCallback] = None,
    ) -> list[Decision]:
        """Evaluate candidates with a pool of `batch.max_concurrent` workers.

        Candidates start in input order as slots free up; a worker pauses
        `batch.start_delay` before taking its next candidate. Returns one
        Decision per candidate, in input order. Once the batch deadline has
        passed, candidates not yet started get an error Decision and running
        ones are cut off.
        """
        settings = self.config.batch
        size = max(1, settings.max_concurrent)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + settings.deadline if settings.deadline else None
        slots = asyncio.Semaphore(size)

        total = len(candidates)
        results: list[Optional[Decision]] = [None] * total
        done = 0
        skipped = 0

        async def worker(index: int, candidate: CandidateProduct) -> None:
            nonlocal done, skipped
            async with slots:
                if index >= size and settings.start_delay > 0:
                    await asyncio.sleep(settings.start_delay)
                if deadline is not None and loop.time() >= deadline:
                    skipped += 1
                    decision = decision_from_error(candidate, DEADLINE_EXCEEDED, config=self.config)
                else:
                    decision = await self._evaluate_with_timeout(candidate, deadline)
            results[index] = decision
            done += 1
            if progress:
                progress(done, total, decision)
            if done % size == 0 or done == total:
                logger.info("Progress: {}/{} evaluated", done, total)

        await asyncio.gather(*(worker(i, c) for i, c in enumerate(candidates)))
        if skipped:
            logger.warning("Batch deadline reached, {} candidates not evaluated", skipped)
        return [d for d in results if d is not None]


@asynccontextmanager
async def open_pipeline(
    config: VettingConfig,
    use_ai: bool = True,
    translate: bool = True,
) -> AsyncIterator[VettingPipeline]:
    """Pipeline wired to Mercado Livre, the image fetcher and (optionally) Claude."""
    semantic_scorer, qualitative_scorer = build_ai_scorers(enabled=use_ai)

    async with MercadoLivreSearch(config.http) as search, ImageFetcher(config.http) as fetcher:
        comparator = ImageComparator(fetcher, temp_root=DATA_DIR / "tmp") if config.use_images else None
        matcher = MarketplaceMatcher.default(
            config,
            image_comparator=comparator,
            title_comparator=TitleComparator(semantic_scorer),
        )
        yield VettingPipeline(
            config,
            search=search,
            matcher=matcher,
            qualitative=QualitativeFilter(config, qualitative_scorer),
            translator=TitleTranslator() if translate else None,
        )
