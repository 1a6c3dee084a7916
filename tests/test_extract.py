"""
Tests for reading raw heats from GrandPrix Race Manager databases.
"""

import sqlite3

import pytest

from derby_extract import extract_class_names, extract_raw_records, load_source, open_database

CLASSES = [(1, "Wolves"), (2, "Bears"), (3, "Siblings")]
RACERS = [
    (1, "Ann", "Lee", "12", "Blue Flash", 1, 0),
    (2, "Bo", "Ray", "7", "", 2, 0),
    (3, "Old", "Entry", "99", "", 1, 1),
]
HEATS = [
    (1, 1, 1, 1, 1, 3.10, 1, 1),
    (1, 1, 1, 2, 2, None, None, 0),
    (2, 2, 1, 1, 1, 3.40, 1, 1),
    (3, 1, 1, 1, 3, 3.90, 2, 1),
]


class TestExtract:

    def test_load_source_keeps_unfinished_heats(self, make_race_db):
        path = make_race_db("pack.sqlite", CLASSES, RACERS, HEATS)
        records, labels = load_source(path, 2025)
        assert len(records) == 3
        assert labels == ["Wolves", "Bears"]
        assert set(records["Year"]) == {2025}
        assert records["FinishTime"].isna().sum() == 1

    def test_excluded_racers_are_dropped(self, make_race_db):
        path = make_race_db("pack.sqlite", CLASSES, RACERS, HEATS)
        records, _ = load_source(path, 2025)
        assert "Old" not in set(records["FirstName"])

    def test_columns(self, make_race_db):
        path = make_race_db("pack.sqlite", CLASSES, RACERS, HEATS)
        records, _ = load_source(path, 2025)
        assert list(records.columns) == [
            "Year", "FirstName", "LastName", "CarNumber", "CarName", "Class",
            "RoundID", "Heat", "Lane", "Completed", "FinishTime", "FinishPlace",
        ]

    def test_caller_owns_connection(self, make_race_db):
        path = make_race_db("pack.sqlite", CLASSES, RACERS, HEATS)
        conn = open_database(path)
        try:
            assert extract_class_names(conn) == ["Wolves", "Bears", "Siblings"]
            assert len(extract_raw_records(conn, 2024)) == 3
        finally:
            conn.close()

    def test_database_is_opened_read_only(self, make_race_db):
        path = make_race_db("pack.sqlite", CLASSES, RACERS, HEATS)
        conn = open_database(path)
        try:
            with pytest.raises(sqlite3.OperationalError):
                conn.execute("DELETE FROM Classes")
        finally:
            conn.close()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            open_database(tmp_path / "nope.sqlite")
