from __future__ import annotations

import csv
import dataclasses
import logging
from pathlib import Path

import pytest

from aggregator import AggregateResult, TopicStats
from models import Paper, PartialDate, SourceKind, SourceUnavailable
from report import TOPIC_COLUMNS, build_topic_rows, completeness, log_summary, write_topic_report


def _paper(title: str, source: str, topic: str, **fields) -> Paper:
    return Paper(
        title=title,
        url=f"https://example.org/articles/{title.lower().replace(' ', '-')}",
        source_kind=SourceKind.STRUCTURED,
        source=source,
        tags=frozenset({source, topic}),
        **fields,
    )


@pytest.fixture
def result() -> AggregateResult:
    merged = _paper("Phage Therapy Registry", "pubmed", "phage therapy", identifier="10.1/a")
    merged = dataclasses.replace(merged, tags=merged.tags | {"exa"})
    preprint = _paper("Prophage Carriage", "medrxiv", "prophage", published_at=PartialDate(2026, 3))
    return AggregateResult(
        papers=(merged, preprint),
        papers_by_topic={"phage therapy": (merged,), "prophage": (preprint,)},
        stats={
            "phage therapy": TopicStats(input=6, fetch_failed=1, filtered_out=2, candidates=3, retained=1),
            "prophage": TopicStats(input=2, malformed=1, candidates=1, retained=1),
        },
        failures=(SourceUnavailable("exa", "prophage", RuntimeError("quota")),),
        duplicates_removed=2,
    )


def test_build_topic_rows_counts_per_source(result: AggregateResult) -> None:
    rows = {row["topic"]: row for row in build_topic_rows(result)}

    therapy = rows["phage therapy"]
    assert therapy["input"] == 6
    assert therapy["duplicates_removed"] == 2
    assert (therapy["pubmed"], therapy["preprint"], therapy["exa"]) == (1, 0, 1)

    prophage = rows["prophage"]
    assert prophage["malformed"] == 1
    assert (prophage["pubmed"], prophage["preprint"], prophage["exa"]) == (0, 1, 0)


def test_completeness_counts_present_fields(result: AggregateResult) -> None:
    assert completeness(result.papers) == {"authors": 0, "dates": 1, "abstracts": 0, "identifiers": 1}


def test_write_topic_report(tmp_path: Path, result: AggregateResult) -> None:
    path = write_topic_report(result, str(tmp_path / "reports" / "topics.csv"))

    with path.open(newline="", encoding="utf-8") as fh:
        reader = csv.DictReader(fh)
        rows = list(reader)

    assert reader.fieldnames == TOPIC_COLUMNS
    assert [r["topic"] for r in rows] == ["phage therapy", "prophage"]
    assert rows[0]["filtered_out"] == "2"


def test_log_summary_reports_failures(result: AggregateResult, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="report"):
        log_summary(result)

    assert "retained=2" in caplog.text
    assert "source=exa" in caplog.text
    assert "completeness dates: 1/2 (50%)" in caplog.text
