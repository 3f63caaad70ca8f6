"""Map source-shaped raw records onto the canonical Paper model."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from metadata_fetcher import FetchedMetadata
from models import MalformedRecord, Paper, PartialDate, SourceKind

_WHITESPACE = re.compile(r"\s+")
_IDENTIFIER_PREFIX = re.compile(r"^(?:doi:\s*|https?://(?:dx\.)?doi\.org/)", re.IGNORECASE)


def normalize_record(
    raw: Mapping[str, Any],
    source_kind: SourceKind,
    *,
    source: str,
    topic: str,
    metadata: FetchedMetadata | None = None,
) -> Paper:
    """Build a Paper from one raw source record.

    Discovery links carry only a URL and an unreliable stub title, so they
    need the fetched page metadata; fields it lacks fall back to the stub.

    Raises:
        MalformedRecord: no usable title or URL could be extracted.
    """
    if source_kind is SourceKind.STRUCTURED:
        fields = _bibliographic_fields(raw)
    elif source_kind is SourceKind.PREPRINT:
        fields = _bibliographic_fields(raw)
        fields["category"] = _as_str(raw.get("category"))
    elif source_kind is SourceKind.DISCOVERY:
        if metadata is None:
            raise MalformedRecord(f"Discovery link has no fetched metadata: {raw.get('url')}")
        fields = _discovery_fields(raw, metadata)
    else:
        raise ValueError(f"Unsupported source kind: {source_kind!r}")

    title = fields.pop("title")
    url = fields.pop("url")
    if not title:
        raise MalformedRecord(f"No title in {source} record: {url or raw!r}")
    if not url:
        raise MalformedRecord(f"No URL in {source} record titled {title!r}")

    return Paper(
        title=title,
        url=url,
        source_kind=source_kind,
        source=source,
        tags=frozenset({source, source_kind.record_type, topic}),
        topics=frozenset({topic}),
        **fields,
    )


def _bibliographic_fields(raw: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "title": _as_str(raw.get("title")),
        "url": _as_str(raw.get("url")),
        "identifier": normalize_identifier(raw.get("identifier")),
        "authors": _as_authors(raw.get("authors")),
        "abstract": _as_str(raw.get("abstract")),
        "venue": _as_str(raw.get("venue")),
        "published_at": PartialDate.parse(raw.get("published_at")),
    }


def _discovery_fields(raw: Mapping[str, Any], metadata: FetchedMetadata) -> dict[str, Any]:
    return {
        "title": _as_str(metadata.title) or _as_str(raw.get("title")),
        "url": _as_str(raw.get("url")),
        "identifier": normalize_identifier(metadata.identifier),
        "authors": _as_authors(metadata.authors),
        "abstract": _as_str(metadata.abstract),
        "venue": _as_str(metadata.venue),
        "published_at": PartialDate.parse(metadata.published_at)
        or PartialDate.parse(raw.get("published_at")),
    }


def normalize_identifier(value: Any) -> str | None:
    """Strip resolver prefixes so the same DOI compares equal across sources."""
    text = _as_str(value)
    if text is None:
        return None
    return _as_str(_IDENTIFIER_PREFIX.sub("", text))


def _as_authors(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        value = value.split(";")
    if not isinstance(value, (list, tuple)):
        return ()
    authors = (_as_str(item) for item in value)
    return tuple(author for author in authors if author)


def _as_str(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    collapsed = _WHITESPACE.sub(" ", value).strip()
    return collapsed or None
