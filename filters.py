"""Heuristic relevance filter (no network, no LLM calls)."""

from __future__ import annotations

import re

from models import Paper
from topics import get_topic

_DOMAIN_TERM = re.compile(r"\bphages?\b|bacteriophage")

# Words that contain the domain term but mean something unrelated. A title
# using one is only kept when a qualifying phrase also appears.
_NEAR_HOMONYMS: tuple[str, ...] = ("macrophage",)
_QUALIFYING_PHRASES: tuple[str, ...] = ("bacteriophage", "phage therapy")

# Listing pages returned by link discovery that never point at a single paper.
_LISTING_URL_MARKERS: tuple[str, ...] = (
    "/toc/",
    "/research-topics/",
    "/collections/",
    "/collection/",
    "/authors",
    "/latest",
    "/recent",
)
_ARTICLE_URL_MARKERS: tuple[str, ...] = ("/article", "/doi/")
_PREPRINT_HOSTS: tuple[str, ...] = ("biorxiv.org", "medrxiv.org", "arxiv.org")
_JOURNAL_HOME = re.compile(r"/journal/[^/]+/?$")
_NUMERIC_ID = re.compile(r"/\d{7,}/?$")
_LONG_SLUG = re.compile(r"/[a-z0-9-]{10,}")


def is_relevant(paper: Paper, topic: str) -> bool:
    """Return True if the paper belongs to the topic.

    Unknown topics are permissive: every paper passes, so a misconfigured
    topic never silently empties the output.
    """
    rule = get_topic(topic)
    if rule is None:
        return True

    title = paper.title.lower()
    text = f"{title} {(paper.abstract or '').lower()}"

    if _fails_near_homonym_guard(title, text):
        return False

    if not _DOMAIN_TERM.search(text):
        return False

    if rule.phage_in_title and not _DOMAIN_TERM.search(title):
        return False

    return all(any(term in text for term in group) for group in rule.required)


def _fails_near_homonym_guard(title: str, text: str) -> bool:
    has_homonym = any(word in title for word in _NEAR_HOMONYMS)
    qualified = any(phrase in text for phrase in _QUALIFYING_PHRASES)
    return has_homonym and not qualified


def looks_like_paper_url(url: str) -> bool:
    """Return True if a discovered link plausibly points at one paper.

    Table-of-contents, collection and author pages are rejected before any
    metadata fetch is spent on them.
    """
    lowered = url.lower()

    if any(marker in lowered for marker in _LISTING_URL_MARKERS):
        return False
    if _JOURNAL_HOME.search(lowered):
        return False

    if any(marker in lowered for marker in _ARTICLE_URL_MARKERS):
        return True
    if _NUMERIC_ID.search(lowered) or _LONG_SLUG.search(lowered):
        return True
    return any(host in lowered for host in _PREPRINT_HOSTS)
