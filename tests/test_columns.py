"""
Unit tests for the column resolver.
"""

import pytest
import pandas as pd

from csv_cleaner.exceptions import ColumnNotFoundError
from csv_cleaner.services.columns import best_partial_match, find_column, resolve_column


@pytest.fixture
def df():
    return pd.DataFrame(columns=['Outlet_Size', 'Item_MRP', 'name'])


class TestResolveColumn:
    """Tests for resolve_column."""

    def test_exact_match(self, df):
        assert resolve_column(df, 'Item_MRP') == 'Item_MRP'

    def test_case_insensitive_match(self, df):
        assert resolve_column(df, 'outlet_size') == 'Outlet_Size'
        assert resolve_column(df, 'NAME') == 'name'

    def test_not_found_lists_available(self, df):
        with pytest.raises(ColumnNotFoundError) as exc_info:
            resolve_column(df, 'Weight')

        assert exc_info.value.column == 'Weight'
        assert exc_info.value.available == ['Outlet_Size', 'Item_MRP', 'name']
        assert 'Available columns: Outlet_Size, Item_MRP, name' in str(exc_info.value)

    def test_none_is_not_found(self, df):
        with pytest.raises(ColumnNotFoundError):
            resolve_column(df, None)

    def test_exact_match_wins_over_case_insensitive(self):
        df = pd.DataFrame(columns=['size', 'Size'])

        assert resolve_column(df, 'Size') == 'Size'


class TestFindColumn:
    """Tests for find_column."""

    def test_returns_none_when_missing(self, df):
        assert find_column(df, 'Weight') is None


class TestBestPartialMatch:
    """Tests for best_partial_match."""

    def test_requested_name_inside_header(self, df):
        assert best_partial_match(df, 'size') == 'Outlet_Size'

    def test_header_inside_requested_name(self, df):
        assert best_partial_match(df, 'customer name') == 'name'

    def test_no_overlap(self, df):
        assert best_partial_match(df, 'weight') is None

    def test_blank_name(self, df):
        assert best_partial_match(df, '  ') is None
