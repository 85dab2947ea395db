"""
Error taxonomy for the cleaning engine.

Every engine error derives from CleanerError, which carries a human-readable
message plus an optional ``details`` dict with structured context (the
column that was requested, the headers that exist, the row that was out of
range...).

Only CriticalInputError aborts a whole call. All other members are recorded
in the report's error list and processing continues with the next action or
statement.

Example:
    >>> raise MissingReplacementValueError(
    ...     "No numeric values to compute mean",
    ...     details={"column": "Weight", "method": "mean"}
    ... )
"""

from typing import Any, Dict, Optional


class CleanerError(Exception):
    """Base exception for all cleaning-engine errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


class ColumnNotFoundError(CleanerError):
    """Raised when a column name cannot be resolved against the table headers."""

    def __init__(self, column: str, available: list):
        super().__init__(
            f"Column '{column}' not found. Available columns: {', '.join(available)}",
        )
        self.column = column
        self.available = list(available)


class RowOutOfRangeError(CleanerError):
    """A 1-based row number does not address a row of the current table."""

    def __init__(self, row_number: Any, row_count: int):
        super().__init__(
            f"Row number {row_number} is out of range (table has {row_count} row(s))",
        )
        self.row_number = row_number
        self.row_count = row_count


class MatchNotFoundError(CleanerError):
    """No cell in the target column matches the original fragment."""

    def __init__(self, fragment: str, row_number: int, column: str):
        super().__init__(
            f"Value '{fragment}' not found at row {row_number} or elsewhere in column '{column}'",
        )
        self.fragment = fragment
        self.row_number = row_number
        self.column = column


class MissingReplacementValueError(CleanerError):
    """An action needs a replacement value (or statistic) that is not available."""

    pass


class UnsupportedStatementError(CleanerError):
    """A statement shape the SQL front end refuses to execute."""

    pass


class ParseError(CleanerError):
    """Free text or a statement could not be parsed by a front end grammar."""

    pass


class CriticalInputError(CleanerError):
    """The input table itself is unusable (empty or unparsable CSV)."""

    pass
