import random
from itertools import combinations

import pytest

from dedup import deduplicate, merge_papers, normalize_title, similarity
from models import Paper, PartialDate, SourceKind


def _paper(
    title: str,
    kind: SourceKind = SourceKind.STRUCTURED,
    source: str = "pubmed",
    identifier: str | None = None,
    topic: str = "phage therapy",
    **fields,
) -> Paper:
    return Paper(
        title=title,
        url=f"https://example.org/{source}/{abs(hash((title, identifier))) % 10_000_000:07d}",
        source_kind=kind,
        source=source,
        identifier=identifier,
        tags=frozenset({source, kind.record_type, topic}),
        **fields,
    )


def test_normalize_title_strips_case_and_punctuation() -> None:
    assert normalize_title("Phage Therapy: In-Clinical Use!") == "phagetherapyinclinicaluse"
    assert normalize_title(None) == ""


def test_similarity_bounds() -> None:
    assert similarity("abc", "abc") == 1.0
    assert similarity("abc", "xyz") == 0.0
    assert similarity("", "") == 0.0
    assert similarity("abc", "") == 0.0
    assert similarity("kitten", "sitting") == pytest.approx(4 / 7)


def test_trailing_period_titles_are_duplicates() -> None:
    a = normalize_title("Phage Therapy in Clinical Use")
    b = normalize_title("Phage Therapy in Clinical Use.")
    assert similarity(a, b) > 0.90

    result = deduplicate([
        _paper("Phage Therapy in Clinical Use"),
        _paper("Phage Therapy in Clinical Use.", SourceKind.PREPRINT, "biorxiv"),
    ])
    assert len(result.papers) == 1
    assert result.duplicates_removed == 1


def test_short_titles_never_fuzzy_merge() -> None:
    result = deduplicate([
        _paper("Phage Therapy"),
        _paper("Phage Therapy", SourceKind.PREPRINT, "biorxiv"),
        _paper("Phage Biology", SourceKind.DISCOVERY, "exa"),
    ])
    assert len(result.papers) == 3


def test_short_titles_still_merge_by_identifier() -> None:
    result = deduplicate([
        _paper("Phage Therapy", identifier="10.1/A"),
        _paper("Phage Biology", SourceKind.PREPRINT, "biorxiv", identifier="10.1/a"),
    ])
    assert len(result.papers) == 1
    assert {"pubmed", "biorxiv"} <= result.papers[0].tags


def test_empty_normalized_titles_never_match() -> None:
    result = deduplicate([_paper("???"), _paper("!!!", SourceKind.PREPRINT, "biorxiv")])
    assert len(result.papers) == 2


def test_different_long_titles_are_kept() -> None:
    result = deduplicate([
        _paper("Phage Therapy Against Carbapenem-Resistant Klebsiella"),
        _paper("Phage Defense Systems Across Marine Vibrio Genomes"),
    ])
    assert len(result.papers) == 2


def test_first_seen_order_is_preserved() -> None:
    titles = [
        "Alpha Phage Therapy Outcomes In Adults",
        "Beta Phage Host Range Determinants Study",
        "Gamma Phage Genome Annotation Pipeline",
    ]
    candidates = [_paper(t) for t in titles] + [_paper(titles[0] + ".", SourceKind.PREPRINT, "biorxiv")]
    result = deduplicate(candidates)
    assert [normalize_title(p.title) for p in result.papers] == [normalize_title(t) for t in titles]


def test_no_duplicate_identifiers_in_output() -> None:
    candidates = [
        _paper(f"Study {i}", identifier=f"10.1/{i % 4}")
        for i in range(12)
    ]
    result = deduplicate(candidates)
    identifiers = [p.identifier.lower() for p in result.papers if p.identifier]
    assert len(identifiers) == len(set(identifiers))
    assert len(result.papers) == 4
    assert result.input_count == 12


def test_identifier_set_independent_of_order_within_tier() -> None:
    candidates = [
        _paper("Short A", identifier="10.1/a"),
        _paper("Short B", identifier="10.1/B"),
        _paper("Short C", identifier="10.1/A"),
        _paper("Short D", identifier="10.1/c"),
        _paper("Short E", identifier="10.1/b"),
    ]
    expected = {p.identifier.lower() for p in deduplicate(candidates).papers}

    rng = random.Random(7)
    for _ in range(10):
        shuffled = candidates[:]
        rng.shuffle(shuffled)
        got = {p.identifier.lower() for p in deduplicate(shuffled).papers}
        assert got == expected


def test_fuzzy_merge_adopts_identifier_for_later_matches() -> None:
    result = deduplicate([
        _paper("Engineered Phage Cocktails Against Biofilms"),
        _paper("Engineered Phage Cocktails Against Biofilms.", SourceKind.PREPRINT, "biorxiv", identifier="10.1101/z"),
        _paper("Totally Different Wording", SourceKind.DISCOVERY, "exa", identifier="10.1101/Z"),
    ])
    assert len(result.papers) == 1
    assert result.papers[0].identifier == "10.1101/z"
    assert result.papers[0].tags >= {"pubmed", "biorxiv", "exa"}


def test_candidate_without_identifier_or_long_title_is_retained() -> None:
    result = deduplicate([_paper("Phage"), _paper("Phage")])
    assert len(result.papers) == 2


def test_example_scenario_structured_and_discovery_merge() -> None:
    structured = _paper("Engineered Phage Complexes", identifier="X.1", venue="Journal A")
    discovered = _paper(
        "Engineered Phage Complexes for Targeted Therapy",
        SourceKind.DISCOVERY,
        "exa",
        identifier="X.1",
    )

    result = deduplicate([structured, discovered])

    assert len(result.papers) == 1
    merged = result.papers[0]
    assert merged.identifier == "X.1"
    assert merged.title == "Engineered Phage Complexes for Targeted Therapy"
    assert {"pubmed", "exa"} <= merged.tags
    assert merged.source == "pubmed"
    assert merged.url == structured.url
    assert merged.duplicate_sources == ("exa",)


def test_equal_priority_keeps_first_seen_base() -> None:
    first = _paper("Phage Therapy Outcomes Registry Study", topic="phage therapy")
    second = _paper("Phage Therapy Outcomes Registry Study", topic="phage biology", abstract="Extra detail.")

    merged = merge_papers(first, second)

    assert merged.url == first.url
    assert merged.abstract == "Extra detail."
    assert merged.tags >= {"phage therapy", "phage biology"}


def test_higher_priority_candidate_replaces_incomplete_record() -> None:
    retained = _paper("Phage Therapy Outcomes Registry Study", SourceKind.DISCOVERY, "exa")
    candidate = _paper(
        "Phage Therapy Outcomes Registry Study",
        identifier="10.1/r",
        published_at=PartialDate(2024, 5),
    )

    merged = merge_papers(retained, candidate)

    assert merged.source == "pubmed"
    assert merged.source_kind is SourceKind.STRUCTURED
    assert merged.url == candidate.url
    assert merged.identifier == "10.1/r"
    assert merged.duplicate_sources == ("exa",)
    assert "exa" in merged.tags


def test_higher_priority_candidate_does_not_replace_complete_record() -> None:
    retained = _paper(
        "Phage Therapy Outcomes Registry Study",
        SourceKind.PREPRINT,
        "biorxiv",
        identifier="10.1/r",
        venue="bioRxiv",
    )
    candidate = _paper("Phage Therapy Outcomes Registry Study", identifier="10.1/r")

    merged = merge_papers(retained, candidate)

    assert merged.source == "biorxiv"
    assert merged.duplicate_sources == ("pubmed",)


def test_merge_prefers_most_complete_values() -> None:
    retained = _paper(
        "Phage Therapy Outcomes Registry Study",
        authors=("A",),
        published_at=PartialDate(2024),
        abstract="Short.",
    )
    candidate = _paper(
        "Phage Therapy Outcomes Registry Study",
        SourceKind.DISCOVERY,
        "exa",
        authors=("A", "B"),
        published_at=PartialDate(2024, 5, 1),
        abstract="Much longer abstract text.",
    )

    merged = merge_papers(retained, candidate)

    assert merged.authors == ("A", "B")
    assert merged.published_at == PartialDate(2024, 5, 1)
    assert merged.abstract == "Much longer abstract text."


def test_merge_tie_goes_to_higher_priority() -> None:
    retained = _paper("Phage Therapy Outcomes Registry Study", SourceKind.DISCOVERY, "exa", venue="Site B")
    candidate = _paper("Phage Therapy Outcomes Registry Study", venue="Jrnl A")

    merged = merge_papers(retained, candidate)

    assert merged.venue == "Jrnl A"


def _long_title_collisions(papers) -> list[tuple[str, str]]:
    keys = [normalize_title(p.title) for p in papers]
    return [
        (a, b)
        for a, b in combinations(keys, 2)
        if len(a) > 20 and len(b) > 20 and similarity(a, b) > 0.90
    ]


def test_title_lengthened_by_identifier_merge_folds_matching_record() -> None:
    result = deduplicate([
        _paper("Phage Engineering Study", identifier="X.1", topic="phage engineering"),
        _paper("Engineered Phage Complexes for Targeted Therapy", topic="phage therapy"),
        _paper(
            "Engineered Phage Complexes for Targeted Therapy.",
            SourceKind.DISCOVERY,
            "exa",
            identifier="X.1",
        ),
    ])

    assert _long_title_collisions(result.papers) == []
    assert len(result.papers) == 1
    merged = result.papers[0]
    assert merged.identifier == "X.1"
    assert merged.tags >= {"pubmed", "exa", "phage engineering", "phage therapy"}
    assert merged.duplicate_sources == ("exa",)
    assert result.duplicates_removed == 2
    assert result.input_count == 3


def test_folded_record_identifier_still_links_later_candidates() -> None:
    result = deduplicate([
        _paper("Phage Engineering Study", identifier="X.1"),
        _paper("Engineered Phage Complexes for Targeted Therapy", identifier="Y.2"),
        _paper("Engineered Phage Complexes for Targeted Therapy.", SourceKind.DISCOVERY, "exa", identifier="X.1"),
        _paper("Completely Unrelated Wording Here", SourceKind.DISCOVERY, "exa", identifier="y.2"),
    ])

    assert len(result.papers) == 1
    assert _long_title_collisions(result.papers) == []


def test_output_titles_never_collide_across_shuffles() -> None:
    candidates = [
        _paper("Phage Engineering Study", identifier="X.1"),
        _paper("Engineered Phage Complexes for Targeted Therapy"),
        _paper("Engineered Phage Complexes for Targeted Therapy!"),
        _paper("Phage Engineering Study Revisited", identifier="x.1"),
        _paper("Prophage Induction in Soil Bacteria"),
    ]
    rng = random.Random(11)
    for _ in range(20):
        shuffled = candidates[:]
        rng.shuffle(shuffled)
        assert _long_title_collisions(deduplicate(shuffled).papers) == []
