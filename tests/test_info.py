"""Tests for range and distinct-value analysis."""

import math

import numpy as np
import pandas as pd
import pytest

from chartbind.dataframe import (
    DataFrame,
    range_by_group,
    range_of_group_key_per_member,
    unique_values,
    value_range,
)
from chartbind.errors import GroupingPreconditionError


class TestValueRange:
    def test_plain_rows(self):
        rows = [{"v": 3}, {"v": 1}, {"v": 7}]
        assert value_range(rows, "v") == [1, 7]

    def test_skips_missing_and_nan(self):
        rows = [{"v": None}, {"v": float("nan")}, {"v": 4}, {"v": pd.NA}, {"v": 2}, {}]
        assert value_range(rows, "v") == [2, 4]

    def test_leading_nan_does_not_poison_range(self):
        rows = [{"v": math.nan}, {"v": 5.0}, {"v": -1.0}]
        assert value_range(rows, "v") == [-1.0, 5.0]

    def test_empty_input(self):
        assert value_range([], "v") == [None, None]
        assert value_range([{"v": None}], "v") == [None, None]

    def test_numpy_values(self):
        rows = [{"v": np.int64(3)}, {"v": np.float64(1.5)}]
        assert value_range(rows, "v") == [1.5, 3]

    def test_strings_compare_lexically(self):
        rows = [{"v": "b"}, {"v": "a"}, {"v": "c"}]
        assert value_range(rows, "v") == ["a", "c"]

    def test_frame(self):
        df = DataFrame([{"k": 1, "v": 10}, {"k": 2, "v": -2}], key=["k"])
        assert value_range(df, "v") == [-2, 10]

    def test_grouped_frame_combines_members(self):
        df = DataFrame(
            [
                {"geo": "swe", "time": 2000, "v": 5},
                {"geo": "nor", "time": 2000, "v": 1},
                {"geo": "swe", "time": 2001, "v": 9},
                {"geo": "nor", "time": 2001, "v": None},
            ],
            key=["geo", "time"],
        )
        assert value_range(df.group_by(["time"]), "v") == [1, 9]

    def test_grouped_member_without_values_is_ignored(self):
        df = DataFrame(
            [{"geo": "swe", "time": 2000, "v": None}, {"geo": "swe", "time": 2001, "v": 3}],
            key=["geo", "time"],
        )
        assert value_range(df.group_by(["time"]), "v") == [3, 3]


class TestRangeByGroup:
    ROWS = [
        {"geo": "swe", "time": 2000, "v": 5},
        {"geo": "swe", "time": 2001, "v": 7},
        {"geo": "nor", "time": 2000, "v": 2},
        {"geo": "nor", "time": 2001, "v": None},
    ]

    def test_single_dimension(self):
        assert range_by_group(self.ROWS, "v", "geo") == {"swe": [5, 7], "nor": [2, 2]}

    def test_group_subset(self):
        assert range_by_group(self.ROWS, "v", "geo", group_subset=["nor"]) == {"nor": [2, 2]}

    def test_composite_group_key(self):
        result = range_by_group(self.ROWS, "v", ["geo", "time"])
        assert result[("swe", 2001)] == [7, 7]
        assert result[("nor", 2001)] == [None, None]

    def test_grouped_frame_merges_per_group(self):
        df = DataFrame(self.ROWS, key=["geo", "time"]).group_by(["time"])
        assert range_by_group(df, "v", "geo") == {"swe": [5, 7], "nor": [2, 2]}


class TestRangeOfGroupKeyPerMember:
    @pytest.fixture
    def by_time(self):
        rows = [
            {"geo": "swe", "time": 2000, "v": 1},
            {"geo": "swe", "time": 2001, "v": 1},
            {"geo": "nor", "time": 2001, "v": 1},
            {"geo": "swe", "time": 2002, "v": 1},
            {"geo": "nor", "time": 2002, "v": 1},
            {"geo": "nor", "time": 2003, "v": 1},
        ]
        return DataFrame(rows, key=["geo", "time"]).group_by(["time"])

    def test_first_and_last_group_per_member(self, by_time):
        result = range_of_group_key_per_member(by_time, ["swe", "nor"], "time", ["geo"])
        assert result == {"swe": [2000, 2002], "nor": [2001, 2003]}

    def test_defaults_from_group_shape(self, by_time):
        result = range_of_group_key_per_member(by_time, [("swe",)])
        assert result == {("swe",): [2000, 2002]}

    @staticmethod
    def _years(usa_years):
        rows = []
        for year in range(2000, 2006):
            rows.append({"geo": "can", "time": year, "v": 1})
            if year in usa_years:
                rows.append({"geo": "usa", "time": year, "v": 1})
        return DataFrame(rows, key=["geo", "time"]).group_by(["time"])

    def test_contiguous_member(self):
        groups = self._years({2001, 2002, 2003})
        result = range_of_group_key_per_member(groups, ["usa", "can"], "time", ["geo"])
        assert result == {"usa": [2001, 2003], "can": [2000, 2005]}

    def test_scan_stops_at_first_gap(self):
        # groups are assumed interpolated, so a later reappearance is never reached
        groups = self._years({2001, 2002, 2003, 2005})
        assert range_of_group_key_per_member(groups, ["usa"]) == {"usa": [2001, 2003]}

    def test_member_given_as_row(self, by_time):
        result = range_of_group_key_per_member(by_time, [{"geo": "nor", "v": 1}], "time", ["geo"])
        assert result == {("nor",): [2001, 2003]}

    def test_member_never_found(self, by_time):
        assert range_of_group_key_per_member(by_time, ["fin"]) == {"fin": [None, None]}

    def test_rejects_ungrouped_frame(self):
        df = DataFrame([{"geo": "swe", "time": 2000}], key=["geo", "time"])
        with pytest.raises(GroupingPreconditionError, match="not a grouped dataframe"):
            range_of_group_key_per_member(df, ["swe"], "time", ["geo"])

    def test_rejects_wrong_grouping_concept(self, by_time):
        with pytest.raises(GroupingPreconditionError, match="not by given concept"):
            range_of_group_key_per_member(by_time, ["swe"], "geo", ["geo"])

    def test_rejects_nested_grouping(self):
        df = DataFrame([{"geo": "swe", "gender": "male", "time": 2000}], key=["geo", "gender", "time"])
        nested = df.group_by(["time"], ["gender"])
        with pytest.raises(GroupingPreconditionError, match="more than 1 level deep"):
            range_of_group_key_per_member(nested, ["swe"], "time", ["geo"])

    def test_rejects_member_key_mismatch(self, by_time):
        with pytest.raises(GroupingPreconditionError, match="not same as group_by"):
            range_of_group_key_per_member(by_time, ["swe"], "time", ["country"])

    @pytest.mark.parametrize("subset", [None, "swe", 42])
    def test_rejects_missing_subset(self, by_time, subset):
        with pytest.raises(GroupingPreconditionError, match="group_subset iterable not given"):
            range_of_group_key_per_member(by_time, subset, "time", ["geo"])

    def test_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            range_of_group_key_per_member([], ["swe"])


class TestUniqueValues:
    def test_first_seen_order(self):
        rows = [{"c": "b"}, {"c": "a"}, {"c": "b"}, {"c": "c"}]
        assert unique_values(rows, "c") == ["b", "a", "c"]

    def test_drops_missing(self):
        rows = [{"c": None}, {"c": "a"}, {"c": float("nan")}, {}]
        assert unique_values(rows, "c") == ["a"]

    def test_unhashable_values(self):
        rows = [{"c": {"geo": "Sweden"}}, {"c": {"geo": "Sweden"}}, {"c": {"geo": "Norway"}}]
        assert unique_values(rows, "c") == [{"geo": "Sweden"}, {"geo": "Norway"}]

    def test_frame(self):
        df = DataFrame([{"k": 1, "c": "x"}, {"k": 2, "c": "y"}], key=["k"])
        assert unique_values(df, "c") == ["x", "y"]
