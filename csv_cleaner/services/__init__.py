"""Services package for the cleaning engine."""

from csv_cleaner.services.table import parse_csv, serialize_csv, is_empty_value, parse_number
from csv_cleaner.services.columns import resolve_column, find_column, best_partial_match
from csv_cleaner.services.statistics import ColumnStats, StatsCache, compute_column_stats
from csv_cleaner.services.executor import apply_actions, apply_actions_to_csv
from csv_cleaner.services.commands import parse_command, run_command, run_command_on_csv
from csv_cleaner.services.sql import (
    StatementKind,
    parse_statement,
    statement_kind,
    execute_statement,
    run_sql_on_csv,
)
from csv_cleaner.services.suggestions import generate_cleaning_suggestions

__all__ = [
    # Table
    "parse_csv",
    "serialize_csv",
    "is_empty_value",
    "parse_number",
    # Columns
    "resolve_column",
    "find_column",
    "best_partial_match",
    # Statistics
    "ColumnStats",
    "StatsCache",
    "compute_column_stats",
    # Executor
    "apply_actions",
    "apply_actions_to_csv",
    # Command parser
    "parse_command",
    "run_command",
    "run_command_on_csv",
    # SQL parser
    "StatementKind",
    "parse_statement",
    "statement_kind",
    "execute_statement",
    "run_sql_on_csv",
    # Suggestions
    "generate_cleaning_suggestions",
]
