"""Tests for raw-value coercion helpers."""

import math

import pytest

from plurules.pipeline.coerce import (
    get_path,
    normalize_zone_code,
    pick_first_number,
    safe_boolean,
    safe_string,
    to_number,
    unique_strings,
    zones_match,
)


class TestToNumber:
    @pytest.mark.parametrize("raw,expected", [
        ("5,5", 5.5),
        ("5.5", 5.5),
        (5.5, 5.5),
        (3, 3.0),
        ("  4 ", 4.0),
        ("5 m", 5.0),
        ("-2", -2.0),
        (".5", 0.5),
    ])
    def test_accepts(self, raw, expected):
        assert to_number(raw) == expected

    @pytest.mark.parametrize("raw", ["", "   ", None, "abc", "m5", True, False, [], {}])
    def test_rejects(self, raw):
        assert to_number(raw) is None

    def test_rejects_non_finite(self):
        assert to_number(math.nan) is None
        assert to_number(math.inf) is None
        assert to_number("inf") is None
        assert to_number("1e999") is None

    def test_huge_int_does_not_overflow(self):
        assert to_number(10**400) is None
        assert to_number(-(10**400)) is None


class TestPickFirstNumber:
    def test_skips_unreadable(self):
        assert pick_first_number(None, "", "x", "7", 9) == 7.0

    def test_all_missing(self):
        assert pick_first_number(None, "") is None

    def test_zero_is_a_value(self):
        assert pick_first_number(0, 5) == 0.0


class TestSafeScalars:
    def test_boolean_strict(self):
        assert safe_boolean(True) is True
        assert safe_boolean(False) is False
        assert safe_boolean("true") is None
        assert safe_boolean(1) is None

    def test_string(self):
        assert safe_string("  note ") == "note"
        assert safe_string("   ") is None
        assert safe_string(3) is None


class TestGetPath:
    def test_nested(self):
        assert get_path({"a": {"b": {"c": 1}}}, "a", "b", "c") == 1

    def test_missing_intermediate(self):
        assert get_path({"a": None}, "a", "b") is None
        assert get_path({"a": [1, 2]}, "a", "b") is None
        assert get_path(None, "a") is None


class TestStringsAndZones:
    def test_unique_strings_keeps_order(self):
        assert unique_strings([" b", "a", "b", None, "", 3, "a"]) == ["b", "a"]

    def test_normalize_zone_code(self):
        assert normalize_zone_code(" ua ") == "UA"
        assert normalize_zone_code("  ") is None
        assert normalize_zone_code(None) is None

    def test_zones_match(self):
        assert zones_match("ua", " UA ")
        assert not zones_match("UA", "UB")
        assert not zones_match("", "")
        assert not zones_match(None, "UA")
