"""
Table model: CSV wire format and cell-level helpers.

A table is a pandas DataFrame in which every cell is a string and the index
is a plain RangeIndex (position 0 is row number 1). Numbers, booleans and
dates are never stored as such; they are derived from the string on demand,
so serialize -> mutate -> serialize leaves untouched cells byte-identical.

Empty cells are classified against a fixed sentinel set shared by the
statistics calculator, the executor and the command parser.
"""

import io
import math
import re
import warnings
from typing import Any, Optional

import pandas as pd

from csv_cleaner.exceptions import CriticalInputError


# Values (compared after strip + lowercase) that count as "no value"
EMPTY_SENTINELS = frozenset({
    '', 'null', 'na', 'n/a', '-', 'nan', 'none', 'undefined',
})

# Plain decimal / scientific notation; no thousands separators, no inf/nan
_NUMBER_PATTERN = re.compile(r'^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$')


# ============================================
# Cell Helpers
# ============================================

def is_empty_value(value: Any) -> bool:
    """
    Check whether a cell counts as empty.

    Covers None/NaN, blank or whitespace-only strings and the common
    textual placeholders (null, NA, N/A, -, nan, none, undefined) in any
    casing.
    """
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return str(value).strip().lower() in EMPTY_SENTINELS


def parse_number(value: Any) -> Optional[float]:
    """Parse a cell as a finite number, or return None."""
    if value is None:
        return None
    text = str(value).strip()
    if not _NUMBER_PATTERN.match(text):
        return None
    number = float(text)
    if not math.isfinite(number):
        return None
    return number


def format_number(number: float) -> str:
    """
    Render a number the way it should appear in a cell.

    Whole numbers lose the trailing ".0" (20.0 -> "20"); everything else
    uses the shortest round-tripping representation.
    """
    if float(number).is_integer():
        return str(int(number))
    return repr(float(number))


# ============================================
# DataFrame Helpers
# ============================================

def ensure_string_table(df: pd.DataFrame) -> pd.DataFrame:
    """
    Return a copy of df where every cell is a string and the index is 0..n-1.

    Missing values (NaN/None) become empty strings. Used when a DataFrame
    comes from somewhere other than parse_csv (tests, other loaders).
    """
    result = df.copy()
    result.columns = [str(col) for col in result.columns]
    for col in result.columns:
        result[col] = result[col].map(_cell_to_string).astype(object)
    return result.reset_index(drop=True)


def _cell_to_string(value: Any) -> str:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return ''
    return str(value)


def parse_csv(csv_text: str) -> pd.DataFrame:
    """
    Parse delimited text (header line + one record per line) into a table.

    Raises:
        CriticalInputError: if the text is blank or cannot be parsed.
    """
    if csv_text is None or not csv_text.strip():
        raise CriticalInputError("Missing or empty CSV data")

    # index_col=False drops surplus fields with only a ParserWarning
    try:
        with warnings.catch_warnings():
            warnings.simplefilter('error', pd.errors.ParserWarning)
            df = pd.read_csv(
                io.StringIO(csv_text),
                dtype=str,
                keep_default_na=False,
                na_filter=False,
                skip_blank_lines=True,
                index_col=False,
            )
    except (pd.errors.ParserError, pd.errors.ParserWarning, pd.errors.EmptyDataError, ValueError) as e:
        raise CriticalInputError(f"Invalid CSV format: {e}")

    if len(df.columns) == 0:
        raise CriticalInputError("CSV data has no header row")

    # Short records come back as NaN even with na_filter off
    return df.fillna('').reset_index(drop=True)


def serialize_csv(df: pd.DataFrame) -> str:
    """Serialize a table back to CSV text (minimal quoting, '\\n' line endings)."""
    return df.to_csv(index=False, lineterminator='\n')
