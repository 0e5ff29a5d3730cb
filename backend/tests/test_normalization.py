"""
Tests for Extract-stage normalization rules.
"""

from datetime import datetime, timezone

import pytest

from carscout.services.normalization import clamp_year, parse_number, parse_price


class TestParseNumber:

    @pytest.mark.parametrize("text,expected", [
        ("1.250.000", 1250000),
        ("1,250,000", 1250000),
        ("18,500", 18500),
        ("30.000 km", 30000),
        ("12,5", 12.5),
        ("2.5", 2.5),
        ("1.234,56", 1234.56),
        ("1,234.56", 1234.56),
    ])
    def test_thousands_separators_are_stripped(self, text, expected):
        assert parse_number(text) == pytest.approx(expected)

    def test_currency_symbols_are_ignored(self):
        assert parse_number("US$ 15,900") == 15900
        assert parse_number("MXN $289,000") == 289000

    def test_range_collapses_to_lower_bound(self):
        assert parse_number("10.000 - 12.000") == 10000
        assert parse_number("$12,000 to $10,000") == 10000

    def test_numbers_pass_through(self):
        assert parse_number(42) == 42.0

    @pytest.mark.parametrize("value", [None, "", "call for price", True])
    def test_non_numeric_is_none(self, value):
        assert parse_number(value) is None

    @pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan"), 10 ** 400, "9" * 400])
    def test_non_finite_is_none(self, value):
        assert parse_number(value) is None


class TestParsePrice:

    def test_zero_price_is_unknown(self):
        assert parse_price("$0") is None

    def test_price_with_symbol(self):
        assert parse_price("$18,500") == 18500


class TestClampYear:

    def test_clamps_to_bounds(self):
        now = datetime(2025, 6, 1, tzinfo=timezone.utc)
        assert clamp_year(1850, now) == 1900
        assert clamp_year(2031, now) == 2026
        assert clamp_year(2019, now) == 2019
