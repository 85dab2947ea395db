"""
Pytest configuration and shared fixtures for all tests.
"""

import pytest
import pandas as pd

from csv_cleaner.models.schemas import ActionType, CleaningAction


@pytest.fixture
def weight_df():
    """Numeric column with two empty cells (mean of the rest is 20)."""
    return pd.DataFrame({
        'Item': ['A', 'B', 'C', 'D', 'E'],
        'Weight': ['10', '', '20', '', '30'],
    })


@pytest.fixture
def five_row_df():
    """Five rows numbered by an id column."""
    return pd.DataFrame({
        'id': ['1', '2', '3', '4', '5'],
        'name': ['Alice', 'Bob', 'Charlie', 'Dana', 'Eve'],
    })


@pytest.fixture
def outlet_df():
    """Sales-style table with blanks, placeholders and mixed casing."""
    return pd.DataFrame({
        'Item_Identifier': ['FDA15', 'DRC01', 'FDN15', 'FDX07', 'NCD19'],
        'Outlet_Size': ['Medium', '', 'Unknown', 'null', 'High'],
        'Item_Fat_Content': ['Low Fat', 'Regular', 'low fat', 'LF', 'Regular'],
        'Item_MRP': ['249.8092', '48.2692', '141.618', '', '53.8614'],
        'Status': ['pending', 'In Review', 'done', 'Pending', 'closed'],
    })


@pytest.fixture
def outlet_csv():
    """CSV text with quoting and an empty cell."""
    return (
        'Item,Outlet_Size,Note\n'
        'FDA15,Medium,"Fresh, frozen"\n'
        'DRC01,,plain\n'
        'FDN15,Unknown,"He said ""hi"""\n'
    )


@pytest.fixture
def make_action():
    """Factory for CleaningAction with sequential ids."""
    counter = {'n': 0}

    def _make(action_type: ActionType, **kwargs) -> CleaningAction:
        counter['n'] += 1
        kwargs.setdefault('id', f"action-{counter['n']}")
        return CleaningAction(action_type=action_type, **kwargs)

    return _make
