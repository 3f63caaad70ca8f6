"""Run every (source, topic) query and merge the results into one snapshot."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from biorxiv_client import search_preprints
from dedup import deduplicate
from exa_client import search_links
from filters import is_relevant, looks_like_paper_url
from metadata_fetcher import fetch_batch
from models import (
    DateWindow,
    FetchFailure,
    MalformedRecord,
    Paper,
    SourceKind,
    SourceUnavailable,
)
from normalizer import normalize_record
from pubmed_client import search_pubmed
from topics import include_text_for, preprint_categories_for, search_query_for

LOGGER = logging.getLogger(__name__)

SearchFn = Callable[[str, DateWindow], list[dict[str, Any]]]


@dataclass(frozen=True, slots=True)
class Source:
    """A source client bound to the record shape it returns."""

    name: str
    kind: SourceKind
    search: SearchFn


@dataclass(frozen=True, slots=True)
class AggregatorConfig:
    max_per_source: int | None = 5
    require_link_identifier: bool = False
    fetch_delay_seconds: float = 0.4
    fetch_timeout_seconds: float = 10.0
    pubmed_max_results: int = 10
    exa_num_results: int = 30

    @classmethod
    def from_env(cls) -> AggregatorConfig:
        max_per_source = int(os.getenv("MAX_PER_SOURCE", "5"))
        return cls(
            max_per_source=max_per_source if max_per_source > 0 else None,
            require_link_identifier=os.getenv("STRICT_DISCOVERY_LINKS", "0") == "1",
            fetch_delay_seconds=float(os.getenv("FETCH_DELAY_SECONDS", "0.4")),
            fetch_timeout_seconds=float(os.getenv("FETCH_TIMEOUT_SECONDS", "10")),
            pubmed_max_results=int(os.getenv("PUBMED_MAX_RESULTS", "10")),
            exa_num_results=int(os.getenv("EXA_NUM_RESULTS", "30")),
        )


@dataclass
class TopicStats:
    """Per-topic counters; every input record lands in exactly one bucket."""

    input: int = 0
    malformed: int = 0
    fetch_failed: int = 0
    filtered_out: int = 0
    unverified: int = 0
    skipped: int = 0
    candidates: int = 0
    retained: int = 0

    @property
    def duplicates_removed(self) -> int:
        return self.candidates - self.retained


@dataclass(frozen=True, slots=True)
class AggregateResult:
    papers: tuple[Paper, ...]
    papers_by_topic: Mapping[str, tuple[Paper, ...]]
    stats: Mapping[str, TopicStats]
    failures: tuple[SourceUnavailable, ...] = ()
    duplicates_removed: int = 0

    @property
    def input_count(self) -> int:
        return sum(s.input for s in self.stats.values())

    @property
    def filtered_count(self) -> int:
        return sum(s.filtered_out for s in self.stats.values())

    @property
    def retained_count(self) -> int:
        return len(self.papers)


def default_sources(config: AggregatorConfig | None = None) -> list[Source]:
    """The bundled PubMed, bioRxiv/medRxiv and Exa clients."""
    config = config or AggregatorConfig()

    def pubmed(topic: str, window: DateWindow) -> list[dict[str, Any]]:
        return search_pubmed(topic, window, max_results=config.pubmed_max_results)

    def preprints(topic: str, window: DateWindow) -> list[dict[str, Any]]:
        return search_preprints(window, preprint_categories_for(topic))

    def links(topic: str, window: DateWindow) -> list[dict[str, Any]]:
        return search_links(
            search_query_for(topic),
            window,
            num_results=config.exa_num_results,
            include_text=list(include_text_for(topic)),
        )

    return [
        Source("pubmed", SourceKind.STRUCTURED, pubmed),
        Source("biorxiv", SourceKind.PREPRINT, preprints),
        Source("exa", SourceKind.DISCOVERY, links),
    ]


def aggregate(
    topics: Iterable[str],
    sources: Iterable[Source],
    window: DateWindow,
    config: AggregatorConfig | None = None,
) -> AggregateResult:
    """Collect, filter and deduplicate papers for every topic.

    A failing (source, topic) pair is recorded in ``failures`` and the run
    continues with the others.
    """
    config = config or AggregatorConfig()
    topics = list(dict.fromkeys(topics))
    sources = list(sources)

    stats = {topic: TopicStats() for topic in topics}
    candidates: list[Paper] = []
    failures: list[SourceUnavailable] = []

    for topic in topics:
        for source in sources:
            try:
                accepted = _run_pair(source, topic, window, config, stats[topic])
            except Exception as exc:  # contained to this (source, topic) pair
                failure = SourceUnavailable(source.name, topic, exc)
                failures.append(failure)
                LOGGER.exception("%s", failure)
                continue

            stats[topic].candidates += len(accepted)
            candidates.extend(accepted)
            LOGGER.info("Collected topic=%r source=%s accepted=%s", topic, source.name, len(accepted))

    # Stable sort: within one kind, collection order decides the merge base.
    candidates.sort(key=lambda paper: paper.priority)
    result = deduplicate(candidates)

    papers_by_topic = {
        topic: tuple(paper for paper in result.papers if topic in paper.topics) for topic in topics
    }
    for topic, papers in papers_by_topic.items():
        stats[topic].retained = len(papers)

    LOGGER.info(
        "Aggregation complete: candidates=%s retained=%s duplicates_removed=%s failures=%s",
        len(candidates),
        len(result.papers),
        result.duplicates_removed,
        len(failures),
    )

    return AggregateResult(
        papers=result.papers,
        papers_by_topic=papers_by_topic,
        stats=stats,
        failures=tuple(failures),
        duplicates_removed=result.duplicates_removed,
    )


def _run_pair(
    source: Source,
    topic: str,
    window: DateWindow,
    config: AggregatorConfig,
    stats: TopicStats,
) -> list[Paper]:
    raw_records = source.search(topic, window)
    stats.input += len(raw_records)

    if source.kind is SourceKind.DISCOVERY:
        return _collect_links(raw_records, source, topic, config, stats)

    accepted: list[Paper] = []
    for raw in raw_records:
        if _cap_reached(accepted, config):
            stats.skipped += 1
            continue
        paper = _normalize(raw, source, topic, stats)
        if paper is not None and _keep(paper, topic, stats):
            accepted.append(paper)
    return accepted


def _collect_links(
    stubs: list[dict[str, Any]],
    source: Source,
    topic: str,
    config: AggregatorConfig,
    stats: TopicStats,
) -> list[Paper]:
    fetchable: list[dict[str, Any]] = []
    for stub in stubs:
        url = stub.get("url") if isinstance(stub, Mapping) else None
        if isinstance(url, str) and looks_like_paper_url(url):
            fetchable.append(stub)
        else:
            stats.filtered_out += 1
            LOGGER.info("Skipping non-article link: %s", url)

    accepted: list[Paper] = []
    processed = 0
    results = fetch_batch(
        (stub["url"] for stub in fetchable),
        delay=config.fetch_delay_seconds,
        timeout=config.fetch_timeout_seconds,
    )
    for stub, (_, result) in zip(fetchable, results):
        processed += 1
        if isinstance(result, FetchFailure):
            stats.fetch_failed += 1
            continue

        paper = _normalize(stub, source, topic, stats, metadata=result)
        if paper is None:
            continue
        if config.require_link_identifier and not (paper.identifier and paper.venue):
            stats.unverified += 1
            LOGGER.info("Skipping link without identifier or venue: %s", paper.url)
            continue
        if _keep(paper, topic, stats):
            accepted.append(paper)
        if _cap_reached(accepted, config):
            break

    stats.skipped += len(fetchable) - processed
    return accepted


def _normalize(
    raw: Mapping[str, Any],
    source: Source,
    topic: str,
    stats: TopicStats,
    **kwargs: Any,
) -> Paper | None:
    if not isinstance(raw, Mapping):
        stats.malformed += 1
        LOGGER.info("Dropping non-mapping %s record: %r", source.name, raw)
        return None

    record_source = str(raw.get("server") or source.name)
    try:
        return normalize_record(raw, source.kind, source=record_source, topic=topic, **kwargs)
    except MalformedRecord as exc:
        stats.malformed += 1
        LOGGER.info("Dropping malformed record: %s", exc)
    except Exception:  # contained to this record
        stats.malformed += 1
        LOGGER.exception("Failed to normalize %s record: %r", source.name, raw.get("url"))
    return None


def _keep(paper: Paper, topic: str, stats: TopicStats) -> bool:
    if is_relevant(paper, topic):
        return True
    stats.filtered_out += 1
    LOGGER.debug("Not relevant to %r: %s", topic, paper.title)
    return False


def _cap_reached(accepted: list[Paper], config: AggregatorConfig) -> bool:
    return config.max_per_source is not None and len(accepted) >= config.max_per_source
