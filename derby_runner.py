#!/usr/bin/env python3
"""
derby_runner.py
Merge one or more GrandPrix Race Manager databases and produce rankings.

Usage:
    python derby_runner.py <db files...> --year 2025 --mapping classes.json [--pdf results.pdf]

Example:
    python derby_runner.py pack24_dens.sqlite pack24_finals.sqlite --year 2025 --accept-guesses --pdf results.pdf
"""

import argparse
import json
import logging
import pathlib
import sys
from dataclasses import dataclass
from typing import List, Optional

import pandas as pd

from derby_classes import ClassMappingError, collect_unique_classes, suggest_class_mapping
from derby_config import Config, setup_logging
from derby_extract import load_source
from derby_merge import SourceBundle, count_heats, count_races, merge_sources, write_export_csv, write_export_html
from derby_ranking import RankingOptions, RankingResult, rank_results
from derby_report import DesignAward, write_pdf_report
from derby_sanity import SanityReport, check_identities
from derby_stats import RacerClassStats, compute_racer_stats

logger = logging.getLogger(__name__)

EXIT_MAPPING = 2
EXIT_INVALID = 3


@dataclass
class PipelineResult:
    table: pd.DataFrame
    sanity: SanityReport
    stats: List[RacerClassStats]
    ranking: RankingResult

    @property
    def total_heats(self) -> int:
        return count_heats(self.table)

    @property
    def total_races(self) -> int:
        return count_races(self.table)

    @property
    def racer_count(self) -> int:
        return self.ranking.racer_count


def process_sources(bundles: List[SourceBundle], options: Optional[RankingOptions] = None) -> PipelineResult:
    """Merge, check, aggregate and rank. Raises ClassMappingError before any aggregate."""
    options = options or RankingOptions()
    table = merge_sources(bundles)
    sanity = check_identities(table, options.finals_class)
    stats = compute_racer_stats(table)
    ranking = rank_results(stats, options)
    return PipelineResult(table=table, sanity=sanity, stats=stats, ranking=ranking)


def load_mapping(mapping_file) -> dict:
    if not mapping_file:
        return {}
    with open(mapping_file, encoding="utf-8") as fh:
        mapping = json.load(fh)
    if not isinstance(mapping, dict):
        raise ValueError(f"Mapping file {mapping_file} must contain a JSON object")
    return mapping


def load_design_awards(awards_file) -> List[DesignAward]:
    """Read design awards from a JSON list of {category, winner, car_name} objects."""
    if not awards_file:
        return []
    with open(awards_file, encoding="utf-8") as fh:
        entries = json.load(fh)
    if not isinstance(entries, list):
        raise ValueError(f"Design awards file {awards_file} must contain a JSON list")
    return [DesignAward.from_dict(e) for e in entries]


def build_mapping(labels, explicit, accept_guesses=False) -> dict:
    """Explicit entries win; guesses fill the gaps only when accepted."""
    mapping = {}
    if accept_guesses:
        mapping.update(suggest_class_mapping(labels))
    mapping.update(explicit)
    return mapping


def print_mapping_help(err: ClassMappingError, labels):
    guesses = suggest_class_mapping(labels)
    print(f"❌ Class mapping incomplete: {err}", file=sys.stderr)
    print("Suggested mapping (review, then pass with --mapping):", file=sys.stderr)
    suggestion = {label: guesses.get(label, "") for label in labels}
    print(json.dumps(suggestion, indent=2), file=sys.stderr)
    print(f"Valid targets: {', '.join(Config.STANDARD_CLASS_NAMES)} or {Config.SKIP_CLASS!r}", file=sys.stderr)


def print_summary(result: PipelineResult):
    ranking = result.ranking
    key = ranking.options.scoring_key
    print(f"{result.racer_count} racers, {result.total_heats} heats, {result.total_races} lane results")
    for class_ranking in ranking.classes:
        print(f"\n{class_ranking.class_name}")
        for row in class_ranking.rows:
            place = f"{row.place:>2}" if row.place is not None else "  "
            extra = row.label or ("finals winner" if row.excluded else "")
            print(f"  {place}  {row.stats.get_display_name():<35} "
                  f"{row.stats.score(key):8.4f}  {extra}")
    print("\nFinalists: " + ", ".join(k.as_id() for k in ranking.finalists))
    print("Wildcards: " + ", ".join(k.as_id() for k in ranking.wildcards))
    for finding in result.sanity.findings:
        print(f"{finding.severity.upper()}: {finding.message}")


def main(db_files, year, mapping_file=None, accept_guesses=False, avg_method=Config.DEFAULT_AVG_METHOD,
         finals_size=Config.FINALS_FIELD_SIZE, num_winners=Config.NUM_FINALS_WINNERS,
         exclude_winners=True, pdf_file=None, csv_file=None, html_file=None,
         title="Pinewood Derby", date=None, location=None, design_awards_file=None,
         allow_invalid=False, verbose=False):
    """Main entry point for merging and ranking derby results."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Debug / Verbose logging enabled")

    options = RankingOptions(
        avg_method=avg_method,
        finals_field_size=finals_size,
        exclude_finals_winners=exclude_winners,
        num_finals_winners=num_winners,
    )
    explicit = load_mapping(mapping_file)
    design_awards = load_design_awards(design_awards_file)

    sources = []
    for db_file in db_files:
        logger.info("Loading race data from %s", db_file)
        records, labels = load_source(db_file, year)
        sources.append((db_file, records, labels))

    all_labels = collect_unique_classes(labels for _, _, labels in sources)
    mapping = build_mapping(all_labels, explicit, accept_guesses)
    bundles = [
        SourceBundle(records=records, mapping=mapping, year=year, name=pathlib.Path(db_file).name)
        for db_file, records, _ in sources
    ]

    try:
        result = process_sources(bundles, options)
    except ClassMappingError as e:
        print_mapping_help(e, all_labels)
        return EXIT_MAPPING

    if csv_file:
        write_export_csv(result.table, csv_file)
    if html_file:
        write_export_html(result.table, html_file, f"{title} {year} merged data")
    if pdf_file:
        meta = {
            "date": date,
            "location": location,
            "total_heats": result.total_heats,
            "total_races": result.total_races,
        }
        write_pdf_report(pdf_file, result.ranking, result.sanity, title=title, year=year,
                         meta=meta, design_awards=design_awards)

    print_summary(result)

    if not result.sanity.is_valid and not allow_invalid:
        logger.error("Results are not authoritative until the identity errors above are resolved.")
        return EXIT_INVALID

    logger.info("Analysis complete!")
    return 0


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Merge derby race databases and rank racers")
    parser.add_argument("db_files", nargs="+", help="GrandPrix Race Manager SQLite files")
    parser.add_argument("--year", type=int, required=True, help="Race year for all files")
    parser.add_argument("--mapping", help="JSON file mapping raw class names to standard classes")
    parser.add_argument("--accept-guesses", action="store_true", help="Use guessed mappings for unmapped classes")
    parser.add_argument("--avg-method", choices=sorted(Config.AVG_METHODS), default=Config.DEFAULT_AVG_METHOD,
                        help="Averaging method used for ranking")
    parser.add_argument("--finals-size", type=int, default=Config.FINALS_FIELD_SIZE, help="Target finals field size")
    parser.add_argument("--num-winners", type=int, default=Config.NUM_FINALS_WINNERS,
                        help="Finals winners excluded from den places")
    parser.add_argument("--no-exclude-winners", action="store_true", help="Award den places to finals winners too")
    parser.add_argument("--title", default="Pinewood Derby", help="Report title")
    parser.add_argument("--date", help="Race date shown in the report header")
    parser.add_argument("--location", help="Race location shown in the report header")
    parser.add_argument("--design-awards", dest="design_awards_file",
                        help="JSON list of design awards ({category, winner, car_name})")
    parser.add_argument("--pdf", dest="pdf_file", help="Output PDF file")
    parser.add_argument("--csv", dest="csv_file", help="Write merged heat data as CSV")
    parser.add_argument("--html", dest="html_file", help="Write merged heat data as HTML")
    parser.add_argument("--allow-invalid", action="store_true", help="Exit 0 even when identity errors were found")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    return parser.parse_args(argv)


if __name__ == "__main__":
    setup_logging()
    args = parse_args()

    try:
        rc = main(
            db_files=args.db_files,
            year=args.year,
            mapping_file=args.mapping,
            accept_guesses=args.accept_guesses,
            avg_method=args.avg_method,
            finals_size=args.finals_size,
            num_winners=args.num_winners,
            exclude_winners=not args.no_exclude_winners,
            pdf_file=args.pdf_file,
            csv_file=args.csv_file,
            html_file=args.html_file,
            title=args.title,
            date=args.date,
            location=args.location,
            design_awards_file=args.design_awards_file,
            allow_invalid=args.allow_invalid,
            verbose=args.verbose,
        )
    except KeyboardInterrupt:
        print("\nAborted by user.", file=sys.stderr)
        sys.exit(130)
    except Exception:
        logger.exception("Fatal error:")
        sys.exit(1)
    sys.exit(rc)
