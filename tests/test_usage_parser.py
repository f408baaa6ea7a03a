"""
Unit tests for usage file parsing.

Tests header handling, skip rules, blank-line termination and row faults.
"""

from decimal import Decimal
from unittest.mock import patch

import pytest

from reseller_billing.core.tiers import TIERS, UsageRecord
from reseller_billing.core.usage_parser import (
    parse_quantity,
    parse_usage_csv,
    split_csv_line
)

HEADER = "admin_username,l1,l2,l3,l4,l5,l6,u1,u2,u3,u4,u5,u6"


def _row(account, limited=(0, 0, 0, 0, 0, 0), unlimited=(0, 0, 0, 0, 0, 0)) -> str:
    return ",".join([account] + [str(v) for v in limited] + [str(v) for v in unlimited])


class TestSplitCsvLine:
    """Test the quote-aware field splitter."""

    def test_plain_fields_are_trimmed(self):
        assert split_csv_line(" a , b,c ") == ["a", "b", "c"]

    def test_comma_inside_quotes_is_literal(self):
        assert split_csv_line('"ali, vpn",10,"5"') == ["ali, vpn", "10", "5"]

    def test_unbalanced_quote_does_not_raise(self):
        """An unterminated quote swallows the rest of the line into one field."""
        assert split_csv_line('ali,"10,5') == ["ali", "10,5"]

    def test_empty_line_yields_single_empty_field(self):
        assert split_csv_line("") == [""]


class TestParseQuantity:
    """Test usage cell parsing."""

    def test_integer(self):
        assert parse_quantity("10") == 10
        assert isinstance(parse_quantity("10"), int)

    def test_integral_decimal_becomes_int(self):
        assert parse_quantity("10.0") == 10
        assert isinstance(parse_quantity("10.0"), int)

    def test_fractional_value(self):
        assert parse_quantity("2.5") == Decimal("2.5")

    @pytest.mark.parametrize("raw", [None, "", "0", "-3", "abc", "NaN", "Infinity"])
    def test_no_usage_values(self, raw):
        """Blank, invalid, non-finite and non-positive cells carry no usage."""
        assert parse_quantity(raw) is None

    def test_digit_grouping_is_not_a_number(self):
        """``1_000`` is not read as a thousand."""
        assert parse_quantity("1_000") is None

    @pytest.mark.parametrize("raw", ["1e1000000", "1e5000000", "1" + "0" * 18])
    def test_oversized_values_carry_no_usage(self, raw):
        assert parse_quantity(raw) is None

    def test_largest_accepted_value(self):
        assert parse_quantity("9" * 18) == 10 ** 18 - 1

    def test_oversized_exponent_row_keeps_other_tiers(self):
        result = parse_usage_csv("ali_vpn,1e1000000,2")
        assert result.records[0].limited_usage == {"2month": 2}
        assert result.errors == []


class TestHeaderHandling:
    """Test optional header row detection."""

    def test_reference_scenario(self):
        """Header plus one data row gives one record with zero tiers omitted."""
        content = f"{HEADER}\nali_vpn,10,5,0,0,0,0,2,1,0,0,0,0"
        result = parse_usage_csv(content)

        assert len(result.records) == 1
        record = result.records[0]
        assert record.account_id == "ali_vpn"
        assert record.limited_usage == {"1month": 10, "2month": 5}
        assert record.total_limited == 15
        assert record.unlimited_usage == {"1month": 2, "2month": 1}
        assert record.total_unlimited == 3
        assert result.total_rows == 1
        assert result.skipped_rows == 0
        assert result.errors == []

    def test_first_data_row_is_line_two_after_header(self):
        """A faulty first data row is reported on line 2."""
        content = f"{HEADER}\n{_row('ali_vpn', limited=(1, 0, 0, 0, 0, 0))}"
        with patch(
            "reseller_billing.core.usage_parser._parse_row",
            side_effect=RuntimeError("boom")
        ):
            result = parse_usage_csv(content)
        assert result.errors == ["Row 2: boom"]

    def test_no_header_starts_at_first_line(self):
        content = _row("ali_vpn", limited=(4, 0, 0, 0, 0, 0))
        result = parse_usage_csv(content)
        assert [r.account_id for r in result.records] == ["ali_vpn"]

    def test_header_token_anywhere_in_first_line(self):
        content = f"id;admin_username;notes\n{_row('ali_vpn', unlimited=(1, 0, 0, 0, 0, 0))}"
        result = parse_usage_csv(content)
        assert result.total_rows == 1
        assert len(result.records) == 1


class TestSkipRules:
    """Test rows that are counted as skipped."""

    def test_null_sentinel_row_is_skipped(self):
        result = parse_usage_csv("null,0,0,0,0,0,0,0,0,0,0,0,0")
        assert result.records == []
        assert result.skipped_rows == 1
        assert result.total_rows == 1

    @pytest.mark.parametrize("account", ["null", "NULL", "Null", ""])
    def test_null_or_empty_account_skipped_even_with_usage(self, account):
        result = parse_usage_csv(_row(account, limited=(10, 0, 0, 0, 0, 0)))
        assert result.records == []
        assert result.skipped_rows == 1

    def test_zero_usage_row_is_skipped(self):
        result = parse_usage_csv(_row("ali_vpn"))
        assert result.records == []
        assert result.skipped_rows == 1

    def test_invalid_numbers_count_as_no_usage(self):
        result = parse_usage_csv("ali_vpn,abc,-2,,x,0,0,n/a")
        assert result.records == []
        assert result.skipped_rows == 1
        assert result.errors == []

    def test_short_row_reads_missing_columns_as_zero(self):
        result = parse_usage_csv("ali_vpn,3")
        assert result.records[0].limited_usage == {"1month": 3}
        assert result.records[0].unlimited_usage == {}

    def test_account_id_is_case_sensitive(self):
        result = parse_usage_csv(
            "\n".join([_row("Ali_VPN", limited=(1, 0, 0, 0, 0, 0)),
                       _row("ali_vpn", limited=(2, 0, 0, 0, 0, 0))])
        )
        assert [r.account_id for r in result.records] == ["Ali_VPN", "ali_vpn"]

    def test_quoted_account_id(self):
        result = parse_usage_csv('"sara, network",1,0,0,0,0,0,0,0,0,0,0,0')
        assert result.records[0].account_id == "sara, network"


class TestBlankLineTermination:
    """Test the two-consecutive-blank-lines stop rule."""

    def test_single_blank_line_is_ignored(self):
        content = "\n".join([
            HEADER,
            _row("ali_vpn", limited=(1, 0, 0, 0, 0, 0)),
            "",
            _row("sara_network", limited=(2, 0, 0, 0, 0, 0)),
        ])
        result = parse_usage_csv(content)
        assert [r.account_id for r in result.records] == ["ali_vpn", "sara_network"]
        assert result.total_rows == 2
        assert result.skipped_rows == 0

    def test_two_blank_lines_stop_parsing(self):
        """Rows after the separator are neither parsed nor counted."""
        content = "\n".join([
            HEADER,
            _row("ali_vpn", limited=(1, 0, 0, 0, 0, 0)),
            "",
            "   ",
            _row("sara_network", limited=(2, 0, 0, 0, 0, 0)),
            "null,0,0,0,0,0,0,0,0,0,0,0,0",
        ])
        result = parse_usage_csv(content)
        assert [r.account_id for r in result.records] == ["ali_vpn"]
        assert result.total_rows == 1
        assert result.skipped_rows == 0

    def test_leading_blank_lines_hide_all_data(self):
        content = "\n\n" + _row("ali_vpn", limited=(1, 0, 0, 0, 0, 0))
        result = parse_usage_csv(content)
        assert result.records == []
        assert result.total_rows == 0

    def test_windows_line_endings(self):
        content = f"{HEADER}\r\n{_row('ali_vpn', limited=(1, 0, 0, 0, 0, 0))}\r\n\r\n\r\n{_row('x', limited=(1, 0, 0, 0, 0, 0))}"
        result = parse_usage_csv(content)
        assert [r.account_id for r in result.records] == ["ali_vpn"]


class TestRowFaults:
    """Test that unexpected row faults are collected, not raised."""

    def test_fault_is_recorded_and_parsing_continues(self):
        content = "\n".join([
            _row("first", limited=(1, 0, 0, 0, 0, 0)),
            _row("second", limited=(1, 0, 0, 0, 0, 0)),
        ])
        original = UsageRecord

        def flaky(account_id, **kwargs):
            if account_id == "first":
                raise ValueError("bad row")
            return original(account_id=account_id, **kwargs)

        with patch("reseller_billing.core.usage_parser.UsageRecord", side_effect=flaky):
            result = parse_usage_csv(content)

        assert result.errors == ["Row 1: bad row"]
        assert [r.account_id for r in result.records] == ["second"]
        assert result.total_rows == 2
        assert result.skipped_rows == 0


class TestParserProperties:
    """Test whole-file behaviour."""

    def test_empty_input(self):
        result = parse_usage_csv("")
        assert result.records == []
        assert result.total_rows == 0
        assert result.skipped_rows == 0

    def test_parsing_is_idempotent(self):
        content = "\n".join([
            HEADER,
            _row("ali_vpn", limited=(10, 5, 0, 0, 0, 0), unlimited=(2, 1, 0, 0, 0, 0)),
            "null,0,0,0,0,0,0,0,0,0,0,0,0",
            _row("maryam_net", limited=(8, 4, 0, 0, 0, 0)),
        ])
        first = parse_usage_csv(content)
        second = parse_usage_csv(content)
        assert first == second

    def test_all_tiers_map_to_their_columns(self):
        content = _row("ali_vpn", limited=(1, 2, 3, 4, 5, 6), unlimited=(7, 8, 9, 10, 11, 12))
        record = parse_usage_csv(content).records[0]
        assert list(record.limited_usage) == list(TIERS)
        assert list(record.limited_usage.values()) == [1, 2, 3, 4, 5, 6]
        assert list(record.unlimited_usage.values()) == [7, 8, 9, 10, 11, 12]
        assert record.total_limited == 21
        assert record.total_unlimited == 57

    def test_fractional_usage_totals(self):
        record = parse_usage_csv("ali_vpn,1.5,2.25").records[0]
        assert record.total_limited == Decimal("3.75")
