"""
derby_extract.py

Read raw heat rows from a GrandPrix Race Manager SQLite database.

The connection is opened and closed by the caller; nothing here keeps a
module level handle. Unfinished heats are kept so that merged data can be
audited; statistics ignore them later.
"""

import logging
import pathlib
import sqlite3
from typing import List, Tuple

import pandas as pd

logger = logging.getLogger(__name__)

CLASSES_QUERY = "SELECT ClassID, Class FROM Classes ORDER BY ClassID"

RAW_RECORDS_QUERY = """
    SELECT
        r.FirstName,
        r.LastName,
        r.CarNumber,
        r.CarName,
        c.Class,
        rc.RoundID,
        rc.Heat,
        rc.Lane,
        rc.Completed,
        rc.FinishTime,
        rc.FinishPlace
    FROM RegistrationInfo r
    JOIN RaceChart rc ON r.RacerID = rc.RacerID
    JOIN Classes c ON rc.ClassID = c.ClassID
    WHERE r.Exclude = 0
    ORDER BY c.ClassID, rc.RoundID, rc.Heat, rc.Lane
"""


def open_database(path) -> sqlite3.Connection:
    """Open a race database read-only."""
    db_path = pathlib.Path(path)
    if not db_path.exists():
        raise FileNotFoundError(f"Database not found: {db_path}")
    return sqlite3.connect(f"{db_path.resolve().as_uri()}?mode=ro", uri=True)


def extract_class_names(conn: sqlite3.Connection) -> List[str]:
    """Raw class labels defined in the database, in ClassID order."""
    classes = pd.read_sql_query(CLASSES_QUERY, conn)
    return classes["Class"].tolist()


def extract_raw_records(conn: sqlite3.Connection, year) -> pd.DataFrame:
    """All scheduled heats of non-excluded racers, tagged with year."""
    df = pd.read_sql_query(RAW_RECORDS_QUERY, conn)
    df.insert(0, "Year", year)
    logger.debug("Extracted %d heat rows", len(df))
    return df


def load_source(path, year) -> Tuple[pd.DataFrame, List[str]]:
    """Extract raw rows and the class labels that actually have heats."""
    conn = open_database(path)
    try:
        defined = extract_class_names(conn)
        records = extract_raw_records(conn, year)
    finally:
        conn.close()
    labels = list(pd.unique(records["Class"])) if not records.empty else []
    for label in defined:
        if label not in labels:
            logger.debug("Class '%s' in %s has no heats", label, path)
    logger.info("Loaded %d heat rows in %d classes from %s", len(records), len(labels), path)
    return records, labels
