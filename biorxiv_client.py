"""bioRxiv / medRxiv details API client (preprint repository source)."""

from __future__ import annotations

import logging
import os
from typing import Any

import requests

from models import DateWindow

BIORXIV_API_URL = "https://api.biorxiv.org/details"
SERVERS: tuple[str, ...] = ("biorxiv", "medrxiv")
REQUEST_TIMEOUT_SECONDS = float(os.getenv("SOURCE_REQUEST_TIMEOUT_SECONDS", "30"))

_VENUES = {"biorxiv": "bioRxiv", "medrxiv": "medRxiv"}

LOGGER = logging.getLogger(__name__)


def search_preprints(
    window: DateWindow,
    categories: tuple[str, ...],
    servers: tuple[str, ...] = SERVERS,
) -> list[dict[str, Any]]:
    """Fetch every preprint posted in the window for the given categories.

    The API has no text search; topical filtering happens downstream. A
    failing server/category pair is logged and skipped; the call only fails
    when every pair failed.
    """
    records: list[dict[str, Any]] = []
    attempted = 0
    failed = 0
    last_error: Exception | None = None

    for server in servers:
        for category in categories:
            attempted += 1
            url = f"{BIORXIV_API_URL}/{server}/{window.start.isoformat()}/{window.end.isoformat()}/0"
            try:
                response = requests.get(
                    url,
                    params={"category": category},
                    timeout=REQUEST_TIMEOUT_SECONDS,
                )
                response.raise_for_status()
                batch = parse_details_payload(response.json(), server)
            except (requests.RequestException, RuntimeError, ValueError) as exc:
                failed += 1
                last_error = exc
                LOGGER.warning(
                    "Preprint fetch failed for server=%s category=%s, skipping: %s",
                    server,
                    category,
                    exc,
                )
                continue

            LOGGER.info("Preprint fetch: server=%s category=%s count=%s", server, category, len(batch))
            records.extend(batch)

    if attempted and failed == attempted:
        raise RuntimeError(f"All preprint queries failed: {last_error}")
    return records


def parse_details_payload(payload: Any, server: str) -> list[dict[str, Any]]:
    """Parse one details API response into raw preprint records."""
    if not isinstance(payload, dict):
        raise RuntimeError("Unexpected preprint payload shape: expected an object")

    collection = payload.get("collection") or []
    records: list[dict[str, Any]] = []
    for item in collection:
        if not isinstance(item, dict):
            continue
        doi = item.get("doi")
        version = item.get("version") or "1"
        records.append({
            "identifier": doi,
            "title": item.get("title"),
            "authors": item.get("authors") or "",
            "abstract": item.get("abstract"),
            "venue": _VENUES.get(server, server),
            "published_at": item.get("date"),
            "url": f"https://www.{server}.org/content/{doi}v{version}" if doi else None,
            "category": item.get("category"),
            "server": server,
        })
    return records
