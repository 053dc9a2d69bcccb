"""Optional Claude-backed scorers.

`ClaudeSemanticScorer` rates how likely two listing titles describe the same
product; `ClaudeQualitativeScorer` judges a candidate's resale potential. Both
raise on failure so that the caller falls back to its keyword heuristic.
"""

from __future__ import annotations

import json
import re
from typing import Any, Optional

from anthropic import AsyncAnthropic
from loguru import logger

from vetting.config import ANTHROPIC_API_KEY, ANTHROPIC_MODEL
from vetting.models import CandidateProduct

SEMANTIC_SYSTEM_PROMPT = """You compare product listings from two marketplaces.
Given two product titles (possibly in different languages), rate from 0 to 100
how likely they describe the same product (same type, same key specs).
Answer with the number only."""

QUALITATIVE_SYSTEM_PROMPT = """You evaluate products imported from China for resale on Mercado Livre Brazil.
Judge whether the product solves a real problem, has a clear selling point and
a plausible market. Reply with JSON only:
{"score": 0-100, "approved": true|false, "rationale": "one short sentence"}"""

_NUMBER = re.compile(r"\d+(?:\.\d+)?")
_JSON = re.compile(r"\{.*\}", re.DOTALL)


def _client(api_key: str) -> AsyncAnthropic:
    if not api_key:
        raise RuntimeError("ANTHROPIC_API_KEY not set")
    return AsyncAnthropic(api_key=api_key)


def _build_product_prompt(candidate: CandidateProduct) -> str:
    seller = candidate.seller
    return f"""Product: {candidate.title}
Translated title: {candidate.title_translated or "-"}
Category: {candidate.category}
Price: {candidate.price} {candidate.currency}
Sales: {candidate.sales}, orders: {candidate.orders}
Rating: {candidate.rating} from {candidate.reviews} reviews
Seller: {seller.name or "-"}, positive rate {seller.positive_rate if seller.positive_rate is not None else "-"}

Evaluate it."""


def parse_score(text: str) -> float:
    match = _NUMBER.search(text)
    if not match:
        raise ValueError(f"no score in response: {text[:80]!r}")
    return max(0.0, min(100.0, float(match.group(0))))


def parse_verdict(text: str) -> dict[str, Any]:
    match = _JSON.search(text)
    if not match:
        raise ValueError(f"no JSON in response: {text[:80]!r}")
    data = json.loads(match.group(0))
    return {
        "score": parse_score(str(data.get("score", ""))),
        "approved": data.get("approved") if isinstance(data.get("approved"), bool) else None,
        "rationale": str(data.get("rationale", "")),
    }


class ClaudeSemanticScorer:
    """Title similarity via Claude."""

    def __init__(self, api_key: str = ANTHROPIC_API_KEY, model: str = ANTHROPIC_MODEL,
                 client: Optional[AsyncAnthropic] = None):
        self.model = model
        self._client = client or _client(api_key)

    async def semantic_score(self, title_a: str, title_b: str) -> float:
        response = await self._client.messages.create(
            model=self.model,
            max_tokens=10,
            system=SEMANTIC_SYSTEM_PROMPT,
            messages=[{"role": "user", "content": f"Title A: {title_a}\nTitle B: {title_b}"}],
        )
        score = parse_score(response.content[0].text.strip())
        logger.debug("Semantic score {} for '{}' vs '{}'", score, title_a[:40], title_b[:40])
        return score


class ClaudeQualitativeScorer:
    """Qualitative verdict via Claude."""

    def __init__(self, api_key: str = ANTHROPIC_API_KEY, model: str = ANTHROPIC_MODEL,
                 client: Optional[AsyncAnthropic] = None):
        self.model = model
        self._client = client or _client(api_key)

    async def score(self, candidate: CandidateProduct) -> dict[str, Any]:
        response = await self._client.messages.create(
            model=self.model,
            max_tokens=300,
            system=QUALITATIVE_SYSTEM_PROMPT,
            messages=[{"role": "user", "content": _build_product_prompt(candidate)}],
        )
        verdict = parse_verdict(response.content[0].text.strip())
        logger.debug("AI verdict for {}: {}", candidate.id, verdict)
        return verdict


def build_ai_scorers(enabled: bool = True) -> tuple[Optional[ClaudeSemanticScorer], Optional[ClaudeQualitativeScorer]]:
    """Both scorers when an API key is configured, otherwise (None, None)."""
    if not enabled or not ANTHROPIC_API_KEY:
        logger.debug("No ANTHROPIC_API_KEY, using keyword heuristics only")
        return None, None
    return ClaudeSemanticScorer(), ClaudeQualitativeScorer()
