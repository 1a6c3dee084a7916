"""
Tests for merging source bundles into the canonical record table.
"""

import pandas as pd
import pytest

from derby_classes import ClassMappingError
from derby_config import Config
from derby_merge import (
    RacerKey,
    apply_class_mapping,
    count_heats,
    count_races,
    export_html,
    export_view,
    merge_sources,
    normalize_car_number,
    write_export_csv,
)


class TestApplyClassMapping:

    def test_maps_class_and_keeps_original(self, make_heat, standard_mapping):
        rows = [make_heat("Ann", "Lee", "12", "Wolves", 3.1)]
        table = apply_class_mapping(rows, standard_mapping, 2025)
        assert table.loc[0, "Class"] == "Wolf"
        assert table.loc[0, "OriginalClass"] == "Wolves"
        assert table.loc[0, "Year"] == 2025

    def test_skip_rows_are_dropped(self, make_heat, standard_mapping):
        rows = [
            make_heat("Ann", "Lee", "12", "Wolves", 3.1),
            make_heat("Tom", "Lee", "13", "Siblings", 3.0),
        ]
        table = apply_class_mapping(rows, standard_mapping, 2025)
        assert list(table["FirstName"]) == ["Ann"]

    def test_identity_columns(self, make_heat, standard_mapping):
        rows = [make_heat(" Ann\xa0", "Lee", 12, "Wolves", 3.1)]
        table = apply_class_mapping(rows, standard_mapping, 2025)
        assert table.loc[0, "FirstName"] == "Ann"
        assert table.loc[0, "FullName"] == "Ann Lee"
        assert table.loc[0, "RacerKey"] == "Ann|Lee|12"
        assert table.loc[0, "KidCarYear"] == "Ann|Lee|12|2025|Wolf"

    def test_incomplete_mapping_raises(self, make_heat):
        with pytest.raises(ClassMappingError):
            apply_class_mapping([make_heat("Ann", "Lee", "12", "Wolves", 3.1)], {}, 2025)

    def test_unfinished_heats_are_kept(self, make_heat, standard_mapping):
        rows = [
            make_heat("Ann", "Lee", "12", "Wolves", 3.1, heat=1),
            make_heat("Ann", "Lee", "12", "Wolves", None, heat=2),
            make_heat("Ann", "Lee", "12", "Wolves", 0, heat=3),
        ]
        table = apply_class_mapping(rows, standard_mapping, 2025)
        assert len(table) == 3

    def test_missing_required_column(self, standard_mapping):
        with pytest.raises(ValueError):
            apply_class_mapping([{"FirstName": "Ann", "Class": "Wolves"}], standard_mapping, 2025)


class TestNormalizeCarNumber:

    @pytest.mark.parametrize("value,expected", [
        (12, "12"),
        (12.0, "12"),
        ("12 ", "12"),
        ("A7", "A7"),
        (float("nan"), ""),
        (None, ""),
    ])
    def test_values(self, value, expected):
        assert normalize_car_number(value) == expected


class TestMergeSources:

    def test_concatenates_in_source_order(self, make_heat, make_bundle, standard_mapping):
        first = make_bundle([make_heat("Ann", "Lee", "12", "Wolves", 3.1)], standard_mapping, name="dens")
        second = make_bundle([make_heat("Ann", "Lee", "12", "Grand Final", 3.0)], standard_mapping, name="finals")
        table = merge_sources([first, second])
        assert list(table["Class"]) == ["Wolf", "Grand Finals"]

    def test_no_deduplication(self, make_heat, make_bundle, standard_mapping):
        rows = [make_heat("Ann", "Lee", "12", "Wolves", 3.1, heat=h) for h in range(1, 5)]
        table = merge_sources([make_bundle(rows, standard_mapping)])
        assert len(table) == 4

    def test_each_bundle_uses_its_own_mapping(self, make_heat, make_bundle):
        dens = make_bundle([make_heat("Ann", "Lee", "12", "Den A", 3.1)], {"Den A": "Wolf"})
        finals = make_bundle([make_heat("Ann", "Lee", "12", "Den A", 3.0)], {"Den A": "Grand Finals"})
        table = merge_sources([dens, finals])
        assert list(table["Class"]) == ["Wolf", "Grand Finals"]

    def test_incomplete_mapping_reports_all_labels(self, make_heat, make_bundle):
        first = make_bundle([make_heat("Ann", "Lee", "12", "Wolves", 3.1)], {"Wolves": "Wolf"})
        second = make_bundle(
            [make_heat("Bo", "Ray", "3", "Bear Den", 3.1), make_heat("Cy", "Ray", "4", "Finals?", 3.1)],
            {},
        )
        with pytest.raises(ClassMappingError) as exc:
            merge_sources([first, second])
        assert exc.value.missing == ["Bear Den", "Finals?"]

    def test_empty_input(self):
        table = merge_sources([])
        assert table.empty
        assert "RacerKey" in table.columns

    def test_accepts_list_of_dicts(self, make_heat, standard_mapping):
        from derby_merge import SourceBundle
        bundle = SourceBundle(records=[make_heat("Ann", "Lee", "12", "Wolves", 3.1)],
                              mapping=standard_mapping, year=2024)
        table = merge_sources([bundle])
        assert table.loc[0, "Year"] == 2024


class TestTotals:

    def test_heats_counted_per_source(self, make_heat, make_bundle, standard_mapping):
        dens = make_bundle([
            make_heat("Ann", "Lee", "12", "Wolves", 3.0, heat=1),
            make_heat("Bo", "Ray", "7", "Wolves", 3.2, heat=1, lane=2),
            make_heat("Ann", "Lee", "12", "Wolves", 3.1, heat=2),
        ], standard_mapping, name="dens.sqlite")
        finals = make_bundle([
            make_heat("Ann", "Lee", "12", "Wolves", 3.0, heat=1),
        ], standard_mapping, name="finals.sqlite")
        table = merge_sources([dens, finals])
        assert list(pd.unique(table["Source"])) == ["dens.sqlite", "finals.sqlite"]
        assert count_heats(table) == 3
        assert count_races(table) == 4

    def test_unfinished_lanes_are_counted(self, make_heat, make_bundle, standard_mapping):
        table = merge_sources([make_bundle([
            make_heat("Ann", "Lee", "12", "Wolves", 3.0),
            make_heat("Bo", "Ray", "7", "Wolves", None, lane=2),
        ], standard_mapping)])
        assert count_heats(table) == 1
        assert count_races(table) == 2

    def test_empty_table(self):
        assert count_heats(merge_sources([])) == 0
        assert count_races(merge_sources([])) == 0


class TestRacerKey:

    def test_from_row_and_id(self):
        key = RacerKey.from_row({"FirstName": "Ann", "LastName": "Lee", "CarNumber": "12"})
        assert key == ("Ann", "Lee", "12")
        assert key.as_id() == "Ann|Lee|12"


class TestExport:

    def test_export_column_order(self, make_heat, make_bundle, standard_mapping):
        table = merge_sources([make_bundle([make_heat("Ann", "Lee", "12", "Wolves", 3.1)], standard_mapping)])
        view = export_view(table)
        assert list(view.columns) == Config.EXPORT_COLUMNS

    def test_csv_round_trip_columns(self, tmp_path, make_heat, make_bundle, standard_mapping):
        table = merge_sources([make_bundle([make_heat("Ann", "Lee", "12", "Wolves", 3.1)], standard_mapping)])
        path = tmp_path / "merged.csv"
        write_export_csv(table, path)
        loaded = pd.read_csv(path)
        assert list(loaded.columns) == Config.EXPORT_COLUMNS
        assert loaded.loc[0, "OriginalClass"] == "Wolves"

    def test_html_export(self, make_heat, make_bundle, standard_mapping):
        table = merge_sources([make_bundle([make_heat("Ann", "Lee", "12", "Wolves", 3.1)], standard_mapping)])
        page = export_html(table, title="Pack <24>")
        assert "Pack &lt;24&gt;" in page
        assert "1 records" in page
        assert "OriginalClass" in page
