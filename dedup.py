"""Record linkage across sources: identifier match, then fuzzy title match."""

from __future__ import annotations

import dataclasses
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from functools import reduce
from typing import Any

from rapidfuzz.distance import Levenshtein

from models import Paper, PartialDate

LOGGER = logging.getLogger(__name__)

# Normalized titles this short collide too easily to link on text alone.
MIN_FUZZY_TITLE_LENGTH = 20
TITLE_SIMILARITY_THRESHOLD = 0.90

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_MERGED_FIELDS = ("identifier", "title", "authors", "abstract", "venue", "published_at")


def normalize_title(title: str | None) -> str:
    """Lowercase and drop everything except ASCII letters and digits."""
    return _NON_ALNUM.sub("", (title or "").lower())


def similarity(a: str, b: str) -> float:
    """Edit-distance similarity in [0, 1]; empty strings never match."""
    longest = max(len(a), len(b))
    if not a or not b:
        return 0.0
    return (longest - Levenshtein.distance(a, b)) / longest


@dataclass(frozen=True, slots=True)
class DedupResult:
    papers: tuple[Paper, ...]
    duplicates_removed: int

    @property
    def input_count(self) -> int:
        return len(self.papers) + self.duplicates_removed


@dataclass
class _Accumulator:
    """State threaded through one left fold over the candidates."""

    # None marks a record folded into an earlier one.
    retained: list[Paper | None] = field(default_factory=list)
    by_identifier: dict[str, int] = field(default_factory=dict)
    long_titles: list[tuple[str, int]] = field(default_factory=list)
    merged: int = 0


def deduplicate(candidates: Iterable[Paper]) -> DedupResult:
    """Merge candidates describing the same work.

    Candidates must already be ordered by source priority; on ties the
    first-seen record stays the base of the merge. Survivors keep first-seen
    order.
    """
    acc = reduce(_absorb, candidates, _Accumulator())
    papers = tuple(paper for paper in acc.retained if paper is not None)
    LOGGER.info(
        "Dedup: input=%s retained=%s merged=%s",
        len(papers) + acc.merged,
        len(papers),
        acc.merged,
    )
    return DedupResult(papers=papers, duplicates_removed=acc.merged)


def _absorb(acc: _Accumulator, candidate: Paper) -> _Accumulator:
    index = _find_match(acc, candidate)
    merged = index is not None
    if index is None:
        index = len(acc.retained)
        acc.retained.append(candidate)
    else:
        LOGGER.debug(
            "Merging %r (%s) into %r (%s)",
            candidate.title,
            candidate.source,
            acc.retained[index].title,
            acc.retained[index].source,
        )
        acc.retained[index] = merge_papers(acc.retained[index], candidate)
        acc.merged += 1

    if candidate.identifier:
        acc.by_identifier.setdefault(candidate.identifier.lower(), index)
    title_key = normalize_title(candidate.title)
    if len(title_key) > MIN_FUZZY_TITLE_LENGTH:
        acc.long_titles.append((title_key, index))

    if merged:
        _fold_title_collisions(acc, index)
    return acc


def _find_match(acc: _Accumulator, candidate: Paper) -> int | None:
    if candidate.identifier:
        index = acc.by_identifier.get(candidate.identifier.lower())
        if index is not None:
            return index
    return _title_match(acc, normalize_title(candidate.title))


def _title_match(acc: _Accumulator, title_key: str, exclude: int | None = None) -> int | None:
    if len(title_key) <= MIN_FUZZY_TITLE_LENGTH:
        return None
    for existing_key, index in acc.long_titles:
        if index != exclude and similarity(title_key, existing_key) > TITLE_SIMILARITY_THRESHOLD:
            return index
    return None


def _fold_title_collisions(acc: _Accumulator, index: int) -> None:
    """Fold retained records whose title now matches the merged record's.

    A merge can swap in a longer title that was never compared against the
    other retained records. The earlier of the two records survives.
    """
    while True:
        other = _title_match(acc, normalize_title(acc.retained[index].title), exclude=index)
        if other is None:
            return

        keep, drop = min(index, other), max(index, other)
        LOGGER.debug(
            "Folding %r (%s) into %r (%s) after title change",
            acc.retained[drop].title,
            acc.retained[drop].source,
            acc.retained[keep].title,
            acc.retained[keep].source,
        )
        acc.retained[keep] = merge_papers(acc.retained[keep], acc.retained[drop])
        acc.retained[drop] = None
        acc.merged += 1

        acc.by_identifier = {
            key: keep if value == drop else value for key, value in acc.by_identifier.items()
        }
        acc.long_titles = [
            (key, keep if value == drop else value) for key, value in acc.long_titles
        ]
        index = keep


def merge_papers(retained: Paper, candidate: Paper) -> Paper:
    """Combine two records of the same work into one.

    The candidate becomes the base record only if it comes from a strictly
    more authoritative source and fills a field the retained record lacks.
    Each bibliographic field then takes the most complete value of the two,
    ties going to the more authoritative source and then to the base.
    """
    if candidate.priority < retained.priority and _fills_gap(retained, candidate):
        base, other = candidate, retained
    else:
        base, other = retained, candidate

    ranked = sorted((base, other), key=lambda paper: paper.priority)
    values = {
        name: max((getattr(paper, name) for paper in ranked), key=_completeness(name))
        for name in _MERGED_FIELDS
    }

    absorbed = (other.source, *other.duplicate_sources)
    duplicate_sources = tuple(
        dict.fromkeys(
            source for source in (*base.duplicate_sources, *absorbed) if source != base.source
        )
    )

    return dataclasses.replace(
        base,
        **values,
        tags=base.tags | other.tags,
        topics=base.topics | other.topics,
        duplicate_sources=duplicate_sources,
    )


def _fills_gap(retained: Paper, candidate: Paper) -> bool:
    return any(
        _is_present(getattr(candidate, name)) and not _is_present(getattr(retained, name))
        for name in _MERGED_FIELDS
    )


def _is_present(value: Any) -> bool:
    return bool(value)


def _completeness(name: str):
    if name == "identifier":
        return lambda value: 1 if value else 0
    return _field_completeness


def _field_completeness(value: Any) -> int:
    if not value:
        return 0
    if isinstance(value, PartialDate):
        return value.precision
    return len(value)
