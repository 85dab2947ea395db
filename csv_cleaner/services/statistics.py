"""
Statistics calculator for numeric imputation.

Only cells that are non-empty and parse as numbers take part. Results are
memoized per column in a StatsCache that the executor creates for a single
run and then throws away, so two calls on different tables never see each
other's numbers.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from csv_cleaner.services.table import is_empty_value, parse_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ColumnStats:
    """Mean, median and mode of a column's numeric values."""
    mean: float
    median: float
    mode: float

    def get(self, method: str) -> float:
        """Look up a statistic by imputation method name (mean/median/mode)."""
        return getattr(self, method)


def numeric_values(series: pd.Series) -> List[float]:
    """Numbers in a column, skipping empty sentinels and non-numeric text."""
    values = []
    for value in series:
        if is_empty_value(value):
            continue
        number = parse_number(value)
        if number is not None:
            values.append(number)
    return values


def compute_mode(values: List[float]) -> Optional[float]:
    """
    Most frequent value, provided it occurs more than once.

    Ties go to the smallest value (first seen when scanning in ascending
    order). Returns None when nothing repeats; callers fall back to the mean.
    """
    best_value = None
    best_count = 1
    counts: Dict[float, int] = {}
    for value in values:
        counts[value] = counts.get(value, 0) + 1

    for value in sorted(counts):
        if counts[value] > best_count:
            best_value = value
            best_count = counts[value]
    return best_value


def compute_column_stats(df: pd.DataFrame, column: str) -> Optional[ColumnStats]:
    """
    Compute mean, median and mode for one column.

    Args:
        df: String table
        column: Resolved column name

    Returns:
        ColumnStats, or None if the column holds no numeric values
    """
    values = numeric_values(df[column])
    if not values:
        return None

    array = np.array(values, dtype=float)
    mean = float(np.mean(array))
    median = float(np.median(array))
    mode = compute_mode(values)

    return ColumnStats(
        mean=mean,
        median=median,
        mode=mode if mode is not None else mean,
    )


class StatsCache:
    """Per-run memo of ColumnStats keyed by column name."""

    def __init__(self):
        self._stats: Dict[str, Optional[ColumnStats]] = {}

    def precompute(self, df: pd.DataFrame, columns: List[str]) -> None:
        """Compute stats for every listed column against the current table."""
        for column in columns:
            self._stats[column] = compute_column_stats(df, column)
            logger.debug("Computed stats for column '%s': %s", column, self._stats[column])

    def get(self, df: pd.DataFrame, column: str) -> Optional[ColumnStats]:
        """Return cached stats for column, computing them on first use."""
        if column not in self._stats:
            self._stats[column] = compute_column_stats(df, column)
        return self._stats[column]

    def __contains__(self, column: str) -> bool:
        return column in self._stats
