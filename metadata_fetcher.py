"""Fetch landing pages for discovered links and extract citation metadata.

Publishers embed bibliographic data in several overlapping vocabularies
(Highwire ``citation_*`` tags, Dublin Core, Open Graph, JSON-LD). Each field
has an ordered tuple of independent extractors; the first one that finds a
value wins. A page that loads but lacks some fields yields a partially
populated record, never an error.
"""

from __future__ import annotations

import json
import logging
import os
import re
import time
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import Any

import requests
from bs4 import BeautifulSoup, Tag

from models import FetchFailure

REQUEST_TIMEOUT_SECONDS = float(os.getenv("FETCH_TIMEOUT_SECONDS", "10"))
FETCH_DELAY_SECONDS = float(os.getenv("FETCH_DELAY_SECONDS", "0.4"))
USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36"

LOGGER = logging.getLogger(__name__)

_PIPE_SUFFIX = re.compile(r"\s*\|\s*.*$")
_DASH_SUFFIX = re.compile(r"\s+[-–—]\s+[A-Z][^-–—]*$")
_DOI_LINK = re.compile(r"doi\.org/(10\.\d{4,}/[^\s\"<]+)", re.IGNORECASE)

Extractor = Callable[[BeautifulSoup, str], Any]


@dataclass(frozen=True, slots=True)
class FetchedMetadata:
    """Fields recovered from one landing page; any of them may be missing."""

    url: str
    title: str | None = None
    authors: tuple[str, ...] = ()
    published_at: str | None = None
    venue: str | None = None
    identifier: str | None = None
    abstract: str | None = None


def fetch_metadata(url: str, timeout: float | None = None) -> FetchedMetadata:
    """Download one page and extract its metadata.

    Raises:
        FetchFailure: the page is unreachable, timed out or returned non-2xx.
    """
    try:
        response = requests.get(
            url,
            headers={"User-Agent": USER_AGENT},
            timeout=timeout if timeout is not None else REQUEST_TIMEOUT_SECONDS,
        )
    except requests.RequestException as exc:
        raise FetchFailure(url, reason=str(exc)) from exc

    if not response.ok:
        raise FetchFailure(url, status=response.status_code)

    return extract_metadata(response.text, url=url)


def fetch_batch(
    urls: Iterable[str],
    delay: float | None = None,
    timeout: float | None = None,
) -> Iterator[tuple[str, FetchedMetadata | FetchFailure]]:
    """Fetch pages one at a time with a fixed pause between requests.

    Failures are yielded in place of metadata so the batch keeps going.
    Callers may stop iterating early; no request is made past that point.
    """
    pause = FETCH_DELAY_SECONDS if delay is None else delay
    for index, url in enumerate(urls):
        if index and pause > 0:
            time.sleep(pause)
        try:
            yield url, fetch_metadata(url, timeout=timeout)
        except FetchFailure as exc:
            LOGGER.warning("Metadata fetch failed: %s", exc)
            yield url, exc


def extract_metadata(html: str, url: str = "") -> FetchedMetadata:
    """Apply the per-field extraction rules to raw page HTML."""
    soup = BeautifulSoup(html, "lxml")
    return FetchedMetadata(
        url=url,
        title=_first(TITLE_RULES, soup, html),
        authors=tuple(_first(AUTHOR_RULES, soup, html) or ()),
        published_at=_first(DATE_RULES, soup, html),
        venue=_first(VENUE_RULES, soup, html),
        identifier=_first(IDENTIFIER_RULES, soup, html),
        abstract=_first(ABSTRACT_RULES, soup, html),
    )


def _first(rules: tuple[Extractor, ...], soup: BeautifulSoup, html: str) -> Any:
    for rule in rules:
        value = rule(soup, html)
        if value:
            return value
    return None


# ---------------------------------------------------------------------------
# Extractor building blocks
# ---------------------------------------------------------------------------


def _meta_values(soup: BeautifulSoup, key: str, attr: str = "name") -> list[str]:
    pattern = re.compile(f"^{re.escape(key)}$", re.IGNORECASE)
    values: list[str] = []
    for tag in soup.find_all("meta", attrs={attr: pattern}):
        if not isinstance(tag, Tag):
            continue
        content = tag.get("content")
        if isinstance(content, str) and content.strip():
            values.append(content.strip())
    return values


def _meta(key: str, attr: str = "name") -> Extractor:
    def extract(soup: BeautifulSoup, html: str) -> str | None:
        values = _meta_values(soup, key, attr)
        return values[0] if values else None

    return extract


def _meta_all(key: str, attr: str = "name") -> Extractor:
    def extract(soup: BeautifulSoup, html: str) -> list[str]:
        return _meta_values(soup, key, attr)

    return extract


def _strip_site_suffix(title: str) -> str:
    return _DASH_SUFFIX.sub("", _PIPE_SUFFIX.sub("", title)).strip()


def _og_title(soup: BeautifulSoup, html: str) -> str | None:
    value = _meta("og:title", attr="property")(soup, html)
    return _strip_site_suffix(value) if value else None


def _html_title(soup: BeautifulSoup, html: str) -> str | None:
    if soup.title is None or not soup.title.string:
        return None
    return _strip_site_suffix(soup.title.string.strip()) or None


def _json_ld_objects(soup: BeautifulSoup) -> Iterator[dict[str, Any]]:
    for script in soup.find_all("script", type="application/ld+json"):
        content = script.string
        if not content:
            continue
        try:
            data = json.loads(content)
        except (json.JSONDecodeError, TypeError):
            continue
        items = data if isinstance(data, list) else [data]
        for item in items:
            if isinstance(item, dict):
                yield item


def _json_ld_authors(soup: BeautifulSoup, html: str) -> list[str]:
    for data in _json_ld_objects(soup):
        author = data.get("author")
        if isinstance(author, str):
            return [author]
        if isinstance(author, dict) and isinstance(author.get("name"), str):
            return [author["name"]]
        if isinstance(author, list):
            names = [
                a if isinstance(a, str) else a.get("name")
                for a in author
                if isinstance(a, (str, dict))
            ]
            names = [n.strip() for n in names if isinstance(n, str) and n.strip()]
            if names:
                return names
    return []


def _json_ld_date(soup: BeautifulSoup, html: str) -> str | None:
    for data in _json_ld_objects(soup):
        for key in ("datePublished", "dateCreated", "dateModified"):
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


def _dc_identifier_doi(soup: BeautifulSoup, html: str) -> str | None:
    for value in _meta_values(soup, "dc.identifier"):
        if value.lower().startswith("doi:"):
            return value[4:].strip()
    return None


def _doi_link(soup: BeautifulSoup, html: str) -> str | None:
    match = _DOI_LINK.search(html)
    return match.group(1).rstrip(".,;)'") if match else None


TITLE_RULES: tuple[Extractor, ...] = (
    _meta("citation_title"),
    _meta("dc.title"),
    _og_title,
    _html_title,
)

AUTHOR_RULES: tuple[Extractor, ...] = (
    _meta_all("citation_author"),
    _json_ld_authors,
    _meta_all("dc.creator"),
    _meta_all("article:author"),
    _meta_all("article:author", attr="property"),
)

DATE_RULES: tuple[Extractor, ...] = (
    _meta("citation_publication_date"),
    _meta("citation_online_date"),
    _meta("article:published_time", attr="property"),
    _meta("dc.date"),
    _json_ld_date,
)

VENUE_RULES: tuple[Extractor, ...] = (
    _meta("citation_journal_title"),
    _meta("citation_journal_abbrev"),
    _meta("og:site_name", attr="property"),
    _meta("dc.publisher"),
)

IDENTIFIER_RULES: tuple[Extractor, ...] = (
    _meta("citation_doi"),
    _dc_identifier_doi,
    _doi_link,
)

ABSTRACT_RULES: tuple[Extractor, ...] = (
    _meta("citation_abstract"),
    _meta("dc.description"),
    _meta("og:description", attr="property"),
)
