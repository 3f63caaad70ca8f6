"""PubMed E-utilities client (structured bibliographic source)."""

from __future__ import annotations

import logging
import os
import xml.etree.ElementTree as ET
from typing import Any

import requests

from models import DateWindow

EUTILS_BASE_URL = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils/"
REQUEST_TIMEOUT_SECONDS = float(os.getenv("SOURCE_REQUEST_TIMEOUT_SECONDS", "30"))
DEFAULT_MAX_RESULTS = int(os.getenv("PUBMED_MAX_RESULTS", "10"))

LOGGER = logging.getLogger(__name__)


def search_pubmed(
    query: str,
    window: DateWindow,
    max_results: int = DEFAULT_MAX_RESULTS,
) -> list[dict[str, Any]]:
    """Search PubMed by publication date and return fully populated records."""
    pmids = _esearch(query, window, max_results)
    LOGGER.info("PubMed: query=%r window=%s..%s pmids=%s", query, window.start, window.end, len(pmids))
    if not pmids:
        return []
    return _efetch(pmids)


def _params(**extra: Any) -> dict[str, Any]:
    params: dict[str, Any] = {"db": "pubmed", **extra}
    api_key = os.getenv("NCBI_API_KEY")
    if api_key:
        params["api_key"] = api_key
    return params


def _esearch(query: str, window: DateWindow, max_results: int) -> list[str]:
    response = requests.get(
        f"{EUTILS_BASE_URL}esearch.fcgi",
        params=_params(
            term=query,
            datetype="pdat",
            mindate=window.start.strftime("%Y/%m/%d"),
            maxdate=window.end.strftime("%Y/%m/%d"),
            retmode="json",
            retmax=max_results,
        ),
        timeout=REQUEST_TIMEOUT_SECONDS,
    )
    response.raise_for_status()
    body = response.json()

    try:
        idlist = body["esearchresult"]["idlist"]
    except (KeyError, TypeError) as exc:
        raise RuntimeError(f"Unexpected PubMed esearch response shape: {body}") from exc
    return [str(pmid) for pmid in idlist]


def _efetch(pmids: list[str]) -> list[dict[str, Any]]:
    response = requests.get(
        f"{EUTILS_BASE_URL}efetch.fcgi",
        params=_params(id=",".join(pmids), retmode="xml", rettype="abstract"),
        timeout=REQUEST_TIMEOUT_SECONDS,
    )
    response.raise_for_status()
    return parse_pubmed_xml(response.text)


def parse_pubmed_xml(xml_text: str) -> list[dict[str, Any]]:
    """Parse an efetch PubmedArticleSet into raw structured records."""
    root = ET.fromstring(xml_text)
    records: list[dict[str, Any]] = []

    for article in root.iter("PubmedArticle"):
        pmid = _text(article.find(".//PMID"))
        title = _text(article.find(".//ArticleTitle"))
        abstract = " ".join(
            part for part in (_text(node) for node in article.findall(".//AbstractText")) if part
        )

        records.append({
            "pmid": pmid,
            "identifier": _text(article.find(".//ArticleIdList/ArticleId[@IdType='doi']")),
            "title": title,
            "authors": _authors(article),
            "abstract": abstract or None,
            "venue": _text(article.find(".//Journal/Title")),
            "published_at": _pub_date(article),
            "url": f"https://pubmed.ncbi.nlm.nih.gov/{pmid}/" if pmid else None,
        })

    return records


def _authors(article: ET.Element) -> list[str]:
    names: list[str] = []
    for author in article.findall(".//AuthorList/Author"):
        last = _text(author.find("LastName"))
        if not last:
            continue
        first = _text(author.find("ForeName")) or _text(author.find("Initials"))
        names.append(f"{first} {last}" if first else last)
    return names


def _pub_date(article: ET.Element) -> str | None:
    """Render PubDate (or ArticleDate) at the precision PubMed gives."""
    for path in (".//JournalIssue/PubDate", ".//ArticleDate"):
        node = article.find(path)
        if node is None:
            continue
        parts = [_text(node.find(tag)) for tag in ("Year", "Month", "Day")]
        year, month, day = parts
        if not year:
            medline = _text(node.find("MedlineDate"))
            if medline:
                return medline
            continue
        if month and month.isdigit():
            return "-".join(part.zfill(2) for part in (year, month, day) if part)
        return " ".join(part for part in (year, month, day) if part)
    return None


def _text(node: ET.Element | None) -> str | None:
    if node is None:
        return None
    # itertext() keeps inline markup such as <i> inside titles.
    value = "".join(node.itertext()).strip()
    return value or None
