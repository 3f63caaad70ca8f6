"""CSV file sink for the deduplicated paper snapshot."""

from __future__ import annotations

import csv
import logging
import os
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from models import Paper

CSV_OUTPUT_PATH = os.getenv("CSV_OUTPUT_PATH", "papers_merged.csv")
LIST_SEPARATOR = "; "

LOGGER = logging.getLogger(__name__)

CSV_COLUMNS = [
    "identifier",
    "title",
    "authors",
    "venue",
    "published_at",
    "url",
    "source_kind",
    "source",
    "duplicate_sources",  # sources whose records were merged into this row
    "category",           # preprint category, empty for other kinds
    "tags",
    "topics",
    "abstract",
]


def paper_to_row(paper: Paper) -> dict[str, Any]:
    """Flatten one Paper into CSV-ready strings."""
    return {
        "identifier": paper.identifier or "",
        "title": paper.title,
        "authors": LIST_SEPARATOR.join(paper.authors),
        "venue": paper.venue or "",
        "published_at": paper.published_at.isoformat() if paper.published_at else "",
        "url": paper.url,
        "source_kind": paper.source_kind.value,
        "source": paper.source,
        "duplicate_sources": LIST_SEPARATOR.join(paper.duplicate_sources),
        "category": paper.category or "",
        "tags": LIST_SEPARATOR.join(sorted(paper.tags)),
        "topics": LIST_SEPARATOR.join(sorted(paper.topics)),
        "abstract": paper.abstract or "",
    }


def write_papers(papers: Iterable[Paper], csv_path: str | None = None) -> int:
    """Write the snapshot, replacing any previous file. Returns rows written."""
    path = Path(csv_path or CSV_OUTPUT_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)

    count = 0
    with path.open("w", newline="", encoding="utf-8") as fh:
        writer = csv.DictWriter(fh, fieldnames=CSV_COLUMNS)
        writer.writeheader()
        for paper in papers:
            writer.writerow(paper_to_row(paper))
            count += 1

    LOGGER.info("Wrote %s papers to %s", count, path)
    return count
