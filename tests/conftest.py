import sqlite3

import pandas as pd
import pytest

from derby_merge import SourceBundle


@pytest.fixture
def make_heat():
    """Factory for one raw heat row."""
    def _make(first, last, car, cls, time, heat=1, lane=1, round_id=1, car_name=""):
        return {
            "FirstName": first,
            "LastName": last,
            "CarNumber": car,
            "CarName": car_name,
            "Class": cls,
            "RoundID": round_id,
            "Heat": heat,
            "Lane": lane,
            "Completed": 1 if time and time > 0 else 0,
            "FinishTime": time,
            "FinishPlace": lane,
        }
    return _make


@pytest.fixture
def make_bundle():
    """Factory for a SourceBundle from a list of heat rows."""
    def _make(rows, mapping, year=2025, name="source.sqlite"):
        return SourceBundle(records=pd.DataFrame(rows), mapping=mapping, year=year, name=name)
    return _make


@pytest.fixture
def standard_mapping():
    return {
        "Lions": "Lion",
        "Tigers": "Tiger",
        "Wolves": "Wolf",
        "Bears": "Bear",
        "Webelos": "Webelos",
        "AOL": "Arrow of Light",
        "Grand Final": "Grand Finals",
        "Siblings": "__skip__",
    }


@pytest.fixture
def make_race_db(tmp_path):
    """Build a GrandPrix Race Manager style SQLite file.

    racers: list of (racer_id, first, last, car, car_name, class_id, exclude)
    heats: list of (racer_id, class_id, round_id, heat, lane, finish_time, finish_place, completed)
    """
    def _make(name, classes, racers, heats):
        path = tmp_path / name
        conn = sqlite3.connect(path)
        try:
            conn.execute("CREATE TABLE Classes (ClassID INTEGER PRIMARY KEY, Class TEXT)")
            conn.execute(
                "CREATE TABLE RegistrationInfo (RacerID INTEGER PRIMARY KEY, CarNumber TEXT, CarName TEXT, "
                "LastName TEXT, FirstName TEXT, ClassID INTEGER, RankID INTEGER, Exclude INTEGER)"
            )
            conn.execute(
                "CREATE TABLE RaceChart (ResultID INTEGER PRIMARY KEY, RacerID INTEGER, ClassID INTEGER, "
                "RoundID INTEGER, Heat INTEGER, Lane INTEGER, FinishTime REAL, FinishPlace INTEGER, "
                "Completed INTEGER)"
            )
            conn.executemany("INSERT INTO Classes (ClassID, Class) VALUES (?, ?)", classes)
            conn.executemany(
                "INSERT INTO RegistrationInfo (RacerID, FirstName, LastName, CarNumber, CarName, ClassID, "
                "RankID, Exclude) VALUES (?, ?, ?, ?, ?, ?, 0, ?)",
                racers,
            )
            conn.executemany(
                "INSERT INTO RaceChart (RacerID, ClassID, RoundID, Heat, Lane, FinishTime, FinishPlace, "
                "Completed) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                heats,
            )
            conn.commit()
        finally:
            conn.close()
        return path
    return _make
