"""
Unit tests for the fuzzy cell matcher.
"""

import pandas as pd

from csv_cleaner.services.matcher import (
    PLACEHOLDER_FRAGMENT,
    cell_matches,
    find_matching_row,
    normalize_fragment,
)


class TestNormalizeFragment:
    """Tests for normalize_fragment."""

    def test_trim_and_lowercase(self):
        assert normalize_fragment('  Hello ') == 'hello'

    def test_strips_one_quote_each_side(self):
        assert normalize_fragment("'Hello'") == 'hello'
        assert normalize_fragment('"Hello"') == 'hello'
        assert normalize_fragment("''x''") == "'x'"

    def test_none(self):
        assert normalize_fragment(None) == ''


class TestCellMatches:
    """Tests for cell_matches."""

    def test_placeholder_matches_anything(self):
        assert cell_matches('whatever', PLACEHOLDER_FRAGMENT)
        assert cell_matches('', PLACEHOLDER_FRAGMENT)

    def test_normalized_equality(self):
        assert cell_matches(' Low Fat ', "'low fat'")

    def test_raw_equality(self):
        assert cell_matches('x', 'x')

    def test_mismatch(self):
        assert not cell_matches('Regular', 'Low Fat')


class TestFindMatchingRow:
    """Tests for find_matching_row."""

    def setup_method(self):
        self.df = pd.DataFrame({'c': ['apple', 'Banana', 'cherry', 'banana']})

    def test_declared_row_matches(self):
        assert find_matching_row(self.df, 'c', 1, 'banana') == 1

    def test_falls_back_to_first_other_row(self):
        assert find_matching_row(self.df, 'c', 0, 'BANANA') == 1

    def test_fallback_skips_declared_row(self):
        assert find_matching_row(self.df, 'c', 2, 'banana') == 1

    def test_no_match(self):
        assert find_matching_row(self.df, 'c', 0, 'durian') is None

    def test_placeholder_always_declared_row(self):
        assert find_matching_row(self.df, 'c', 3, PLACEHOLDER_FRAGMENT) == 3
