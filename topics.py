"""Known research topics and the per-source query settings for each."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class TopicRule:
    """Relevance rule and source queries for one topic.

    Every group in ``required`` must contribute at least one matching term.
    """

    name: str
    required: tuple[tuple[str, ...], ...]
    search_query: str
    preprint_categories: tuple[str, ...] = ("microbiology",)
    include_text: tuple[str, ...] = ("phage",)
    phage_in_title: bool = False


_RULES = [
    TopicRule(
        name="phage therapy",
        required=(("therapy", "therapeutic", "treatment"),),
        search_query="phage therapy OR bacteriophage treatment",
        include_text=("phage therapy",),
    ),
    TopicRule(
        name="phage bioinformatics",
        required=(("bioinformatics", "computational", "genomic", "metagenomics"),),
        search_query="phage bioinformatics OR bacteriophage genomics OR phage computational analysis",
        preprint_categories=("microbiology", "bioinformatics"),
    ),
    TopicRule(
        name="phage-host interactions",
        required=(("host", "infection", "interaction"),),
        search_query="phage host interactions OR bacteriophage infection OR phage bacteria interaction",
        preprint_categories=("microbiology", "immunology"),
    ),
    TopicRule(
        name="phage biology",
        required=(("biology", "lifecycle", "life cycle", "replication", "morphology"),),
        search_query="phage biology OR bacteriophage lifecycle OR phage replication",
    ),
    TopicRule(
        name="phage resistance",
        required=(("resistance", "resistant"),),
        search_query="phage resistance OR bacteriophage resistance OR bacterial resistance to phages",
    ),
    TopicRule(
        name="phage defense",
        required=(("defense", "defence", "crispr", "restriction", "immunity"),),
        search_query="phage defense OR bacterial defense OR CRISPR phage OR restriction modification",
        preprint_categories=("microbiology", "immunology"),
    ),
    TopicRule(
        name="phage engineering",
        required=(("engineering", "engineered", "synthetic", "design", "modification"),),
        search_query="phage engineering OR engineered bacteriophage OR synthetic phage",
        preprint_categories=("microbiology", "synthetic biology"),
    ),
    TopicRule(
        name="phage-antibiotic synergy",
        required=(
            ("antibiotic", "antimicrobial"),
            ("synergy", "combination", "combined"),
        ),
        search_query="phage antibiotic synergy OR phage antibiotic combination",
        preprint_categories=("microbiology", "pharmacology and toxicology"),
    ),
    TopicRule(
        name="phageome",
        required=(("phageome", "phage community", "phage diversity"),),
        search_query="phageome OR phage community OR phage diversity",
        preprint_categories=("microbiology", "bioinformatics"),
        phage_in_title=True,
    ),
    TopicRule(
        name="virome",
        required=(("virome", "viral community", "viral metagenome"),),
        search_query="virome OR viral metagenome OR viral community",
        preprint_categories=("microbiology", "bioinformatics"),
        phage_in_title=True,
    ),
    TopicRule(
        name="prophage",
        required=(("prophage", "lysogen", "lysogenic", "temperate phage"),),
        search_query="prophage OR lysogenic phage OR temperate bacteriophage",
        preprint_categories=("microbiology", "bioinformatics"),
    ),
    TopicRule(
        name="phage-immune interactions",
        required=(("immune", "immunity", "immunolog"),),
        search_query="phage immune interactions OR bacteriophage immunity",
        preprint_categories=("microbiology", "immunology"),
    ),
]

TOPICS: dict[str, TopicRule] = {rule.name: rule for rule in _RULES}

DEFAULT_SEARCH_QUERY = "bacteriophage OR phage"
DEFAULT_PREPRINT_CATEGORIES: tuple[str, ...] = ("microbiology",)


def get_topic(name: str) -> TopicRule | None:
    """Look up a topic by name (case-insensitive)."""
    return TOPICS.get(name.strip().lower())


def search_query_for(topic: str) -> str:
    rule = get_topic(topic)
    return rule.search_query if rule else DEFAULT_SEARCH_QUERY


def include_text_for(topic: str) -> tuple[str, ...]:
    rule = get_topic(topic)
    return rule.include_text if rule else ("phage",)


def preprint_categories_for(topic: str) -> tuple[str, ...]:
    rule = get_topic(topic)
    return rule.preprint_categories if rule else DEFAULT_PREPRINT_CATEGORIES
