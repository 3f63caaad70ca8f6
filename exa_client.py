"""Exa search API client (discovery-link source)."""

from __future__ import annotations

import logging
import os
from datetime import UTC, datetime, time
from typing import Any

import requests

from models import DateWindow

EXA_SEARCH_URL = "https://api.exa.ai/search"
REQUEST_TIMEOUT_SECONDS = float(os.getenv("SOURCE_REQUEST_TIMEOUT_SECONDS", "30"))
DEFAULT_NUM_RESULTS = int(os.getenv("EXA_NUM_RESULTS", "30"))

LOGGER = logging.getLogger(__name__)


def search_links(
    query: str,
    window: DateWindow,
    num_results: int = DEFAULT_NUM_RESULTS,
    include_text: list[str] | None = None,
) -> list[dict[str, Any]]:
    """Return ``{url, title, published_at}`` stubs for research-paper hits.

    Titles and dates here come from the search index and are only hints;
    the landing page is fetched later for real metadata.
    """
    api_key = os.getenv("EXA_API_KEY")
    if not api_key:
        raise RuntimeError("EXA_API_KEY environment variable is required")

    payload: dict[str, Any] = {
        "query": query,
        "type": "auto",
        "category": "research paper",
        "numResults": num_results,
        "startPublishedDate": _iso(window.start, time.min),
        "endPublishedDate": _iso(window.end, time.max),
    }
    if include_text:
        payload["includeText"] = include_text

    response = requests.post(
        EXA_SEARCH_URL,
        headers={"x-api-key": api_key, "Content-Type": "application/json"},
        json=payload,
        timeout=REQUEST_TIMEOUT_SECONDS,
    )
    response.raise_for_status()
    stubs = parse_search_results(response.json())
    LOGGER.info("Exa: query=%r results=%s", query, len(stubs))
    return stubs


def parse_search_results(body: Any) -> list[dict[str, Any]]:
    try:
        results = body["results"]
    except (KeyError, TypeError) as exc:
        raise RuntimeError(f"Unexpected Exa response shape: {body}") from exc

    stubs: list[dict[str, Any]] = []
    for result in results or []:
        if not isinstance(result, dict) or not result.get("url"):
            continue
        stubs.append({
            "url": result["url"],
            "title": result.get("title"),
            "published_at": result.get("publishedDate"),
        })
    return stubs


def _iso(day, at: time) -> str:
    return datetime.combine(day, at, tzinfo=UTC).isoformat().replace("+00:00", "Z")
