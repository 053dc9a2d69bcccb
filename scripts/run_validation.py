"""Vetting run: Load candidates -> Evaluate -> Report.

Usage:
    python -m scripts.run_validation --input data/candidates.json
    python -m scripts.run_validation --category casa --limit 10 --no-images
    python -m scripts.run_validation --output data/decisions.json --verbose
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger

from vetting.analyze.decision import rank_decisions
from vetting.collect.json_file_source import CANDIDATES_PATH, JsonFileCollector
from vetting.config import load_config
from vetting.models import Decision
from vetting.pipeline import open_pipeline
from vetting.report import build_batch_report, format_report


def _log_progress(done: int, total: int, decision: Decision) -> None:
    mark = "OK " if decision.approved else "-- "
    logger.info("[{}/{}] {}{} ({}, {:.1f})", done, total, mark, decision.title[:50], decision.tier, decision.final_score)


async def run(
    input_path: Path,
    category: str = "all",
    limit: int = 50,
    concurrency: int | None = None,
    deadline: float | None = None,
    use_images: bool = True,
    use_ai: bool = True,
    output: Path | None = None,
) -> list[Decision]:
    config = load_config()
    batch_update = {}
    if concurrency:
        batch_update["max_concurrent"] = concurrency
    if deadline:
        batch_update["deadline"] = deadline
    config = config.with_overrides(batch=batch_update, use_images=use_images and config.use_images)

    logger.info("=== VETTING START ===")
    logger.info(
        "Input: {}, category: {}, fx: {}, images: {}",
        input_path, category, config.costs.fx_rate, config.use_images,
    )

    # --- STEP 1: LOAD ---
    candidates = await JsonFileCollector(input_path).collect(category=category, limit=limit)
    if not candidates:
        logger.warning("No candidates to evaluate.")
        return []

    # --- STEP 2: EVALUATE ---
    async with open_pipeline(config, use_ai=use_ai) as pipeline:
        decisions = await pipeline.evaluate_batch(candidates, progress=_log_progress)

    # --- STEP 3: REPORT ---
    report = build_batch_report(decisions)
    print(format_report(report))

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "report": report,
            "decisions": [d.model_dump(mode="json") for d in rank_decisions(decisions)],
        }
        output.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        logger.info("Decisions written to {}", output)

    logger.info("=== VETTING DONE: {}/{} approved ===", report["approved"], report["total"])
    return decisions


def main() -> None:
    parser = argparse.ArgumentParser(description="Product vetting run")
    parser.add_argument(
        "--input",
        type=Path,
        default=CANDIDATES_PATH,
        help=f"JSON file with candidate products (default: {CANDIDATES_PATH})",
    )
    parser.add_argument("--category", default="all", help="Only candidates with this category label")
    parser.add_argument("--limit", type=int, default=50, help="Maximum candidates to evaluate (default: 50)")
    parser.add_argument("--concurrency", type=int, default=None, help="Candidates evaluated at once")
    parser.add_argument("--deadline", type=float, default=None, help="Batch deadline in seconds")
    parser.add_argument("--no-images", action="store_true", help="Skip image matching")
    parser.add_argument("--no-ai", action="store_true", help="Keyword heuristics only, no Claude calls")
    parser.add_argument("--output", type=Path, default=None, help="Write decisions and report as JSON")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if args.verbose else "INFO")

    asyncio.run(run(
        input_path=args.input,
        category=args.category,
        limit=args.limit,
        concurrency=args.concurrency,
        deadline=args.deadline,
        use_images=not args.no_images,
        use_ai=not args.no_ai,
        output=args.output,
    ))


if __name__ == "__main__":
    main()
