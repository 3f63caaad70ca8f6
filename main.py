"""CLI entrypoint for the multi-source paper aggregation run."""

from __future__ import annotations

import argparse
import dataclasses
import logging

from dotenv import load_dotenv

from aggregator import AggregateResult, AggregatorConfig, aggregate, default_sources
from csv_sink import CSV_OUTPUT_PATH, write_papers
from models import DateWindow
from report import TOPIC_REPORT_PATH, log_summary, write_topic_report
from topics import TOPICS


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line flags."""
    parser = argparse.ArgumentParser(
        description="Collect recent papers from PubMed, bioRxiv/medRxiv and Exa, then deduplicate them",
    )
    parser.add_argument("--days", type=int, default=7, help="Publication window in days (default 7)")
    parser.add_argument(
        "--topic",
        action="append",
        dest="topics",
        default=None,
        help="Topic to search; repeat for several. Defaults to every known topic.",
    )
    parser.add_argument("--output", default=CSV_OUTPUT_PATH, help="CSV file for the merged papers")
    parser.add_argument("--topic-report", default=TOPIC_REPORT_PATH, help="CSV file for per-topic counts")
    parser.add_argument(
        "--max-per-source",
        type=int,
        default=None,
        help="Accepted papers per source per topic; 0 or less disables the cap (default MAX_PER_SOURCE or 5)",
    )
    parser.add_argument(
        "--strict-links",
        action="store_true",
        help="Drop discovered links whose page has no identifier or venue",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run the aggregation and log the summary without writing files",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> AggregatorConfig:
    """Apply CLI overrides on top of the environment configuration."""
    config = AggregatorConfig.from_env()
    overrides: dict = {}
    if args.max_per_source is not None:
        overrides["max_per_source"] = args.max_per_source if args.max_per_source > 0 else None
    if args.strict_links:
        overrides["require_link_identifier"] = True
    return dataclasses.replace(config, **overrides)


def run(args: argparse.Namespace) -> AggregateResult:
    """Run one aggregation cycle and write its outputs."""
    config = build_config(args)
    topics = args.topics or list(TOPICS)
    window = DateWindow.last_days(args.days)
    logging.info(
        "Aggregating %s topics for %s..%s (max_per_source=%s strict_links=%s)",
        len(topics),
        window.start,
        window.end,
        config.max_per_source,
        config.require_link_identifier,
    )

    result = aggregate(topics, default_sources(config), window, config)
    log_summary(result)

    if args.dry_run:
        logging.info("[dry-run] Would write %s papers to %s", result.retained_count, args.output)
        return result

    write_papers(result.papers, args.output)
    write_topic_report(result, args.topic_report)
    return result


def main() -> None:
    """Initialize config and execute the pipeline."""
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    run(parse_args())


if __name__ == "__main__":
    main()
