"""
Unit tests for the table model.

Covers CSV parsing/serialization, empty-cell classification and the number
helpers shared by the executor and both front ends.
"""

import pytest
import pandas as pd

from csv_cleaner.exceptions import CriticalInputError
from csv_cleaner.services.table import (
    EMPTY_SENTINELS,
    ensure_string_table,
    format_number,
    is_empty_value,
    parse_csv,
    parse_number,
    serialize_csv,
)


# ============================================
# Tests for parse_csv / serialize_csv
# ============================================

class TestParseCsv:
    """Tests for parse_csv."""

    def test_all_cells_are_strings(self):
        df = parse_csv("a,b\n1,2.50\n3,true\n")

        assert list(df.columns) == ['a', 'b']
        assert df.at[0, 'b'] == '2.50'
        assert df.at[1, 'b'] == 'true'

    def test_placeholders_are_kept_verbatim(self):
        df = parse_csv("a,b\nNA,null\nN/A,\n")

        assert df.at[0, 'a'] == 'NA'
        assert df.at[0, 'b'] == 'null'
        assert df.at[1, 'a'] == 'N/A'
        assert df.at[1, 'b'] == ''

    def test_quoted_delimiters(self, outlet_csv):
        df = parse_csv(outlet_csv)

        assert df.at[0, 'Note'] == 'Fresh, frozen'
        assert df.at[2, 'Note'] == 'He said "hi"'

    def test_short_record_gets_empty_values(self):
        df = parse_csv("a,b,c\n1\n")

        assert df.at[0, 'b'] == ''
        assert df.at[0, 'c'] == ''

    def test_long_record_is_rejected(self):
        with pytest.raises(CriticalInputError) as exc:
            parse_csv("a,b\n1,2,3\n4,5\n")

        assert exc.value.message.startswith("Invalid CSV format")

    def test_blank_lines_skipped(self):
        df = parse_csv("a,b\n1,2\n\n3,4\n")

        assert len(df) == 2

    def test_header_only(self):
        df = parse_csv("a,b\n")

        assert list(df.columns) == ['a', 'b']
        assert len(df) == 0

    @pytest.mark.parametrize("text", ["", "   ", "\n\n", None])
    def test_blank_input_is_critical(self, text):
        with pytest.raises(CriticalInputError):
            parse_csv(text)

    def test_index_is_positional(self):
        df = parse_csv("a\nx\ny\n")

        assert list(df.index) == [0, 1]


class TestSerializeCsv:
    """Tests for serialize_csv."""

    def test_round_trip_is_byte_identical(self, outlet_csv):
        assert serialize_csv(parse_csv(outlet_csv)) == outlet_csv

    def test_untouched_rows_survive_an_edit(self, outlet_csv):
        df = parse_csv(outlet_csv)
        df.at[1, 'Outlet_Size'] = 'Small'

        lines = serialize_csv(df).splitlines()
        original = outlet_csv.splitlines()

        assert lines[1] == original[1]
        assert lines[2] == 'DRC01,Small,plain'
        assert lines[3] == original[3]

    def test_header_only_round_trip(self):
        assert serialize_csv(parse_csv("a,b\n")) == "a,b\n"


class TestEnsureStringTable:
    """Tests for ensure_string_table."""

    def test_converts_values_and_nan(self):
        df = pd.DataFrame({'n': [1, 2], 'x': ['a', None]}, index=[5, 9])

        result = ensure_string_table(df)

        assert list(result.index) == [0, 1]
        assert result.at[0, 'n'] == '1'
        assert result.at[1, 'x'] == ''

    def test_does_not_modify_input(self):
        df = pd.DataFrame({'n': [1]})
        ensure_string_table(df)

        assert df.at[0, 'n'] == 1


# ============================================
# Tests for cell helpers
# ============================================

class TestIsEmptyValue:
    """Tests for is_empty_value."""

    @pytest.mark.parametrize("value", [
        '', '   ', 'null', 'NULL', ' Null ', 'na', 'NA', 'n/a', 'N/A',
        '-', 'nan', 'NaN', 'none', 'None', 'undefined', None, float('nan'),
    ])
    def test_empty_values(self, value):
        assert is_empty_value(value)

    @pytest.mark.parametrize("value", ['0', 'Unknown', 'nothing', '--', 'n.a.', 'Nancy'])
    def test_non_empty_values(self, value):
        assert not is_empty_value(value)

    def test_sentinel_set(self):
        assert EMPTY_SENTINELS == {'', 'null', 'na', 'n/a', '-', 'nan', 'none', 'undefined'}


class TestParseNumber:
    """Tests for parse_number."""

    @pytest.mark.parametrize("value,expected", [
        ('12', 12.0),
        (' -3.5 ', -3.5),
        ('+4', 4.0),
        ('.5', 0.5),
        ('1e3', 1000.0),
        ('7.', 7.0),
    ])
    def test_numbers(self, value, expected):
        assert parse_number(value) == expected

    @pytest.mark.parametrize("value", ['', 'abc', '12abc', '1,000', '$5', 'inf', 'nan', '1e999', None])
    def test_not_numbers(self, value):
        assert parse_number(value) is None


class TestFormatNumber:
    """Tests for format_number."""

    def test_whole_number_drops_decimal(self):
        assert format_number(20.0) == '20'
        assert format_number(-3.0) == '-3'

    def test_fraction(self):
        assert format_number(22.5) == '22.5'
        assert format_number(0.1 + 0.2) == repr(0.1 + 0.2)
