"""
derby_merge.py

Merge raw heat records from one or more source files into the canonical
record table. Every row keeps its original class label next to the
standardized class; no rows are deduplicated.
"""

import html
import logging
import math
import unicodedata
from dataclasses import dataclass
from typing import Dict, List, NamedTuple, Optional

import pandas as pd

from derby_classes import ClassMappingError, check_mapping_complete, duplicate_targets
from derby_config import Config

logger = logging.getLogger(__name__)

RAW_COLUMNS = [
    "Year", "FirstName", "LastName", "CarNumber", "CarName", "Class",
    "RoundID", "Heat", "Lane", "Completed", "FinishTime", "FinishPlace",
]
REQUIRED_COLUMNS = ["FirstName", "LastName", "CarNumber", "Class"]
# Racer identity; the joined RacerKey column is for display and export only.
IDENTITY_COLUMNS = ["FirstName", "LastName", "CarNumber"]
CANONICAL_COLUMNS = Config.EXPORT_COLUMNS + ["RacerKey", "Source"]


class RacerKey(NamedTuple):
    """Identity of one racer across classes and source files."""
    first_name: str
    last_name: str
    car_number: str

    def as_id(self) -> str:
        return "|".join(self)

    @classmethod
    def from_row(cls, row) -> "RacerKey":
        return cls(row["FirstName"], row["LastName"], row["CarNumber"])


@dataclass
class SourceBundle:
    """Raw rows of one source file plus the class mapping to apply to them."""
    records: pd.DataFrame
    mapping: Dict[str, str]
    year: int
    name: str = ""

    def unique_classes(self) -> List[str]:
        df = _as_frame(self.records)
        if df.empty:
            return []
        return list(pd.unique(df["Class"]))


def normalize_name(name) -> str:
    """Normalize racer names to avoid mismatches due to spaces/encoding."""
    if name is None or (isinstance(name, float) and math.isnan(name)):
        return ""
    return unicodedata.normalize("NFKC", str(name)).replace("\xa0", " ").strip()


def normalize_car_number(value) -> str:
    """Car numbers may arrive as int, float or text depending on the source."""
    if value is None:
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return normalize_name(value)


def _as_frame(records) -> pd.DataFrame:
    if isinstance(records, pd.DataFrame):
        df = records.copy()
    else:
        df = pd.DataFrame(list(records or []))
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing and len(df) > 0:
        raise ValueError(f"Raw records are missing required column(s): {', '.join(missing)}")
    for col in RAW_COLUMNS:
        if col not in df.columns:
            df[col] = None
    return df


def apply_class_mapping(records, mapping: Dict[str, str], year, source: str = "") -> pd.DataFrame:
    """Map raw class labels of one source and derive the identity columns.

    Rows whose label maps to Config.SKIP_CLASS are dropped. Raises
    ClassMappingError if any label present has no valid mapping entry.
    """
    df = _as_frame(records)
    if df.empty:
        return pd.DataFrame(columns=CANONICAL_COLUMNS)
    check_mapping_complete(pd.unique(df["Class"]), mapping)

    df["Year"] = year
    df["OriginalClass"] = df["Class"]
    df["Class"] = df["OriginalClass"].map(mapping)
    df = df[df["Class"] != Config.SKIP_CLASS].copy()
    if df.empty:
        return pd.DataFrame(columns=CANONICAL_COLUMNS)

    df["FirstName"] = df["FirstName"].map(normalize_name)
    df["LastName"] = df["LastName"].map(normalize_name)
    df["CarNumber"] = df["CarNumber"].map(normalize_car_number)
    df["CarName"] = df["CarName"].map(normalize_name)
    df["FinishTime"] = pd.to_numeric(df["FinishTime"], errors="coerce")

    df["FullName"] = (df["FirstName"] + " " + df["LastName"]).str.strip()
    df["RacerKey"] = df["FirstName"] + "|" + df["LastName"] + "|" + df["CarNumber"]
    df["KidCarYear"] = df["RacerKey"] + "|" + str(year) + "|" + df["Class"]
    df["Source"] = source

    return df[CANONICAL_COLUMNS].reset_index(drop=True)


def merge_sources(bundles: List[SourceBundle]) -> pd.DataFrame:
    """Build the canonical record table from every source bundle.

    Mapping completeness is verified for all bundles before any row is
    mapped, so a ClassMappingError never leaves a partial table behind.
    """
    missing = []
    invalid = {}
    for bundle in bundles:
        try:
            check_mapping_complete(bundle.unique_classes(), bundle.mapping)
        except ClassMappingError as e:
            missing.extend(m for m in e.missing if m not in missing)
            invalid.update(e.invalid)
    if missing or invalid:
        raise ClassMappingError(missing, invalid)

    frames = []
    for bundle in bundles:
        for target, labels in duplicate_targets(bundle.mapping).items():
            logger.warning("Several classes in %s map to '%s': %s",
                           bundle.name or "source", target, ", ".join(labels))
        mapped = apply_class_mapping(bundle.records, bundle.mapping, bundle.year, bundle.name)
        logger.debug("Source %s: %d rows kept after mapping", bundle.name or "?", len(mapped))
        frames.append(mapped)

    frames = [f for f in frames if not f.empty]
    if not frames:
        return pd.DataFrame(columns=CANONICAL_COLUMNS)
    table = pd.concat(frames, ignore_index=True)
    logger.info("Merged %d heat records from %d source(s)", len(table), len(bundles))
    return table


def count_heats(table: pd.DataFrame) -> int:
    """Distinct heats, identified by source file, raw class label, round and heat number."""
    if table is None or table.empty:
        return 0
    return len(table.drop_duplicates(subset=["Source", "OriginalClass", "RoundID", "Heat"]))


def count_races(table: pd.DataFrame) -> int:
    """Lane results in the canonical table, finished or not."""
    return 0 if table is None else len(table)


def export_view(table: pd.DataFrame) -> pd.DataFrame:
    """Flat audit view of the canonical table with a stable column order."""
    return table.reindex(columns=Config.EXPORT_COLUMNS)


def write_export_csv(table: pd.DataFrame, path) -> None:
    export_view(table).to_csv(path, index=False)
    logger.info("Merged data written to %s", path)


def export_html(table: pd.DataFrame, title: str = "Merged Race Data") -> str:
    """Render the export view as a standalone HTML page."""
    view = export_view(table)
    body = view.to_html(index=False, na_rep="", classes="merged", border=0)
    return (
        "<!DOCTYPE html>\n<html>\n<head>\n"
        f"  <title>{html.escape(title)}</title>\n"
        "  <style>\n"
        "    body { font-family: sans-serif; margin: 20px; }\n"
        "    table { border-collapse: collapse; width: 100%; font-size: 13px; }\n"
        "    th { background: #1e40af; color: white; padding: 8px 12px; text-align: left; }\n"
        "    td { border: 1px solid #ddd; padding: 6px 10px; }\n"
        "  </style>\n</head>\n<body>\n"
        f"  <h1>{html.escape(title)}</h1>\n"
        f"  <p>{len(view)} records</p>\n"
        f"{body}\n</body>\n</html>\n"
    )


def write_export_html(table: pd.DataFrame, path, title: Optional[str] = None) -> None:
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(export_html(table, title or "Merged Race Data"))
    logger.info("Merged data HTML written to %s", path)
