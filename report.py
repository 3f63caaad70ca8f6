"""Post-run reporting: per-topic counters and metadata completeness.

One output file is produced on every non-dry-run:

  papers_topics.csv: one row per requested topic with the input, dropped,
                     candidate and retained counts, plus the number of
                     cross-source duplicates folded into retained papers.

The same numbers, the source failures and the share of retained papers
carrying authors / dates / abstracts / identifiers are also logged.
"""

from __future__ import annotations

import csv
import logging
import os
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from aggregator import AggregateResult
from models import Paper

LOGGER = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configurable paths
# ---------------------------------------------------------------------------

TOPIC_REPORT_PATH = os.getenv("TOPIC_REPORT_PATH", "papers_topics.csv")

# ---------------------------------------------------------------------------
# Output schema
# ---------------------------------------------------------------------------

TOPIC_COLUMNS = [
    "topic",
    "input",
    # Dropped before dedup
    "malformed",
    "fetch_failed",
    "filtered_out",
    "unverified",
    "skipped",        # beyond the per-source cap
    # Survivors
    "candidates",
    "retained",
    "duplicates_removed",
    # Retained papers per source
    "pubmed",
    "preprint",
    "exa",
]

_PREPRINT_SOURCES = frozenset({"biorxiv", "medrxiv"})


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _percent(part: int, whole: int) -> int:
    return round(part / whole * 100) if whole else 0


def completeness(papers: Sequence[Paper]) -> dict[str, int]:
    """Count retained papers that carry each optional field."""
    return {
        "authors": sum(1 for p in papers if p.authors),
        "dates": sum(1 for p in papers if p.published_at),
        "abstracts": sum(1 for p in papers if p.abstract),
        "identifiers": sum(1 for p in papers if p.identifier),
    }


def build_topic_rows(result: AggregateResult) -> list[dict[str, Any]]:
    rows = []
    for topic, stats in result.stats.items():
        papers = result.papers_by_topic.get(topic, ())
        rows.append({
            "topic": topic,
            "input": stats.input,
            "malformed": stats.malformed,
            "fetch_failed": stats.fetch_failed,
            "filtered_out": stats.filtered_out,
            "unverified": stats.unverified,
            "skipped": stats.skipped,
            "candidates": stats.candidates,
            "retained": stats.retained,
            "duplicates_removed": stats.duplicates_removed,
            "pubmed": sum(1 for p in papers if "pubmed" in p.tags),
            "preprint": sum(1 for p in papers if p.tags & _PREPRINT_SOURCES),
            "exa": sum(1 for p in papers if "exa" in p.tags),
        })
    return rows


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------


def write_topic_report(result: AggregateResult, report_path: str | None = None) -> Path:
    path = Path(report_path or TOPIC_REPORT_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)
    rows = build_topic_rows(result)
    with path.open("w", newline="", encoding="utf-8") as fh:
        writer = csv.DictWriter(fh, fieldnames=TOPIC_COLUMNS)
        writer.writeheader()
        writer.writerows(rows)
    LOGGER.info("report: %d topics → %s", len(rows), path)
    return path


def log_summary(result: AggregateResult) -> None:
    """Log totals, per-topic counts, failures and metadata completeness."""
    LOGGER.info(
        "Summary: input=%s filtered=%s retained=%s duplicates_removed=%s failures=%s",
        result.input_count,
        result.filtered_count,
        result.retained_count,
        result.duplicates_removed,
        len(result.failures),
    )
    for row in build_topic_rows(result):
        LOGGER.info(
            "  %s: retained=%s (pubmed=%s preprint=%s exa=%s) input=%s filtered_out=%s",
            row["topic"],
            row["retained"],
            row["pubmed"],
            row["preprint"],
            row["exa"],
            row["input"],
            row["filtered_out"],
        )
    for failure in result.failures:
        LOGGER.warning("  failed: source=%s topic=%r: %s", failure.source, failure.topic, failure.cause)

    total = result.retained_count
    for name, count in completeness(result.papers).items():
        LOGGER.info("  completeness %s: %s/%s (%s%%)", name, count, total, _percent(count, total))
