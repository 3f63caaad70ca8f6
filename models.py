"""Shared typed models for the aggregation pipeline."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from enum import Enum

_MONTHS = {
    name: index
    for index, name in enumerate(
        ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"],
        start=1,
    )
}

_NUMERIC_DATE = re.compile(r"^(\d{4})(?:[-/](\d{1,2}))?(?:[-/](\d{1,2}))?(?:$|[T\s])")
_PUBMED_DATE = re.compile(r"^(\d{4})\s+([A-Za-z]{3})[a-z]*\.?(?:\s+(\d{1,2}))?$")
_ANY_YEAR = re.compile(r"\b(1[89]\d{2}|2\d{3})\b")


class SourceKind(Enum):
    """Closed set of raw record shapes, ordered by authority."""

    STRUCTURED = "structured-bibliographic"
    PREPRINT = "preprint-repository"
    DISCOVERY = "discovery-link"

    @property
    def priority(self) -> int:
        """0 is the most authoritative kind."""
        return _PRIORITY[self]

    @property
    def record_type(self) -> str:
        return "preprint" if self is SourceKind.PREPRINT else "research paper"


_PRIORITY = {
    SourceKind.STRUCTURED: 0,
    SourceKind.PREPRINT: 1,
    SourceKind.DISCOVERY: 2,
}


@dataclass(frozen=True, slots=True)
class PartialDate:
    """Publication date at whatever granularity the source reported."""

    year: int
    month: int | None = None
    day: int | None = None

    @property
    def precision(self) -> int:
        if self.day is not None:
            return 3
        if self.month is not None:
            return 2
        return 1

    def isoformat(self) -> str:
        if self.month is None:
            return f"{self.year:04d}"
        if self.day is None:
            return f"{self.year:04d}-{self.month:02d}"
        return f"{self.year:04d}-{self.month:02d}-{self.day:02d}"

    @classmethod
    def parse(cls, raw: str | date | PartialDate | None) -> PartialDate | None:
        """Parse a source date string without inventing missing parts.

        Handles YYYY, YYYY-MM, YYYY/MM/DD, ISO-8601 timestamps and PubMed's
        "2024 Oct 15". Anything else keeps only a recognisable year.
        """
        if raw is None:
            return None
        if isinstance(raw, PartialDate):
            return raw
        if isinstance(raw, datetime):
            return cls(raw.year, raw.month, raw.day)
        if isinstance(raw, date):
            return cls(raw.year, raw.month, raw.day)

        value = str(raw).strip()
        if not value:
            return None

        match = _PUBMED_DATE.match(value)
        if match:
            month = _MONTHS.get(match.group(2).lower())
            day = int(match.group(3)) if match.group(3) and month else None
            return cls._checked(int(match.group(1)), month, day)

        match = _NUMERIC_DATE.match(value)
        if match:
            year = int(match.group(1))
            month = int(match.group(2)) if match.group(2) else None
            day = int(match.group(3)) if match.group(3) else None
            return cls._checked(year, month, day)

        match = _ANY_YEAR.search(value)
        if match:
            return cls(int(match.group(1)))
        return None

    @classmethod
    def _checked(cls, year: int, month: int | None, day: int | None) -> PartialDate:
        if month is None or not 1 <= month <= 12:
            return cls(year)
        if day is None:
            return cls(year, month)
        try:
            date(year, month, day)
        except ValueError:
            return cls(year, month)
        return cls(year, month, day)


@dataclass(frozen=True, slots=True)
class DateWindow:
    """Inclusive publication window a source query is restricted to."""

    start: date
    end: date

    @classmethod
    def last_days(cls, days: int, today: date | None = None) -> DateWindow:
        end = today or datetime.now(UTC).date()
        return cls(start=end - timedelta(days=days), end=end)


@dataclass(frozen=True, slots=True)
class Paper:
    """Canonical paper record shared by every stage after normalization."""

    title: str
    url: str
    source_kind: SourceKind
    source: str
    identifier: str | None = None
    authors: tuple[str, ...] = ()
    abstract: str | None = None
    venue: str | None = None
    published_at: PartialDate | None = None
    category: str | None = None
    tags: frozenset[str] = field(default_factory=frozenset)
    topics: frozenset[str] = field(default_factory=frozenset)
    duplicate_sources: tuple[str, ...] = ()

    @property
    def priority(self) -> int:
        return self.source_kind.priority


class PipelineError(Exception):
    """Base class for recoverable pipeline failures."""


class MalformedRecord(PipelineError):
    """A raw record has no usable title (or URL) and cannot become a Paper."""


class FetchFailure(PipelineError):
    """A discovery-link page could not be retrieved."""

    def __init__(self, url: str, status: int | None = None, reason: str = "") -> None:
        self.url = url
        self.status = status
        self.reason = reason
        detail = f"HTTP {status}" if status is not None else reason or "network error"
        super().__init__(f"Failed to fetch {url}: {detail}")


class SourceUnavailable(PipelineError):
    """A whole (source, topic) query failed."""

    def __init__(self, source: str, topic: str, cause: BaseException) -> None:
        self.source = source
        self.topic = topic
        self.cause = cause
        super().__init__(f"Source {source!r} failed for topic {topic!r}: {cause}")
