"""
Column resolver.

Every component resolves user- or model-supplied column names through here
before touching a cell, so an unknown name is rejected at one boundary
instead of surfacing as a KeyError deep inside a handler.

Matching order: exact header, then case-insensitive header. The command
parser additionally accepts a "best partial match" (substring containment
in either direction) because free text rarely spells headers exactly.
"""

from typing import Optional

import pandas as pd

from csv_cleaner.exceptions import ColumnNotFoundError


def find_column(df: pd.DataFrame, name: Optional[str]) -> Optional[str]:
    """Return the actual header for name (exact, then case-insensitive), or None."""
    if name is None:
        return None

    headers = [str(col) for col in df.columns]
    if name in headers:
        return name

    lowered = name.strip().lower()
    for header in headers:
        if header.lower() == lowered:
            return header
    return None


def resolve_column(df: pd.DataFrame, name: Optional[str]) -> str:
    """
    Resolve a column name against the table headers.

    Raises:
        ColumnNotFoundError: carrying the list of available headers.
    """
    column = find_column(df, name)
    if column is None:
        raise ColumnNotFoundError(str(name), [str(col) for col in df.columns])
    return column


def best_partial_match(df: pd.DataFrame, name: str) -> Optional[str]:
    """
    First header that contains name, or is contained in it (case-insensitive).

    Returns None when nothing overlaps. Empty names never match.
    """
    lowered = name.strip().lower()
    if not lowered:
        return None

    for header in df.columns:
        header_lower = str(header).lower()
        if lowered in header_lower or header_lower in lowered:
            return str(header)
    return None
