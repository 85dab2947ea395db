"""
Fuzzy cell matcher used by MODIFY_CELL.

Suggested edits name both the row and the value they expect to find there.
Row numbers drift (earlier removals, a model counting from the wrong
place), so a miss at the declared row falls back to the first other row in
the same column holding the same normalized value.
"""

import logging
from typing import Optional

import pandas as pd

logger = logging.getLogger(__name__)


# Placeholder meaning "whatever the cell currently holds"
PLACEHOLDER_FRAGMENT = "Cell value to be modified"

_QUOTES = ("'", '"')


def normalize_fragment(value: Optional[str]) -> str:
    """Trim, lowercase and strip one leading/trailing quote."""
    if value is None:
        return ''
    text = str(value).strip().lower()
    if text.startswith(_QUOTES):
        text = text[1:]
    if text.endswith(_QUOTES):
        text = text[:-1]
    return text


def cell_matches(cell: str, fragment: str) -> bool:
    """
    Whether a cell satisfies the expected original fragment.

    Precedence: placeholder, normalized equality, raw equality.
    """
    if fragment == PLACEHOLDER_FRAGMENT:
        return True
    if normalize_fragment(cell) == normalize_fragment(fragment):
        return True
    return cell == fragment


def find_matching_row(
    df: pd.DataFrame,
    column: str,
    row_index: int,
    fragment: str,
) -> Optional[int]:
    """
    Locate the row a MODIFY_CELL action should edit.

    Args:
        df: String table
        column: Resolved column name
        row_index: 0-based declared row (already range-checked)
        fragment: The action's original fragment

    Returns:
        Index of the row to edit: the declared row if it matches, otherwise
        the first other row (ascending) with a normalized match, or None.
    """
    if cell_matches(df.at[row_index, column], fragment):
        return row_index

    target = normalize_fragment(fragment)
    for index, value in enumerate(df[column]):
        if index == row_index:
            continue
        if normalize_fragment(value) == target:
            logger.debug(
                "Value '%s' not at row %d of '%s'; matched row %d instead",
                fragment, row_index + 1, column, index + 1,
            )
            return index
    return None
