"""
Restricted SQL front end.

Supported statements (keywords case-insensitive, trailing ';' optional):

    UPDATE <table> SET <column> = <literal> [WHERE <condition>]
    DELETE FROM <table> WHERE <condition>

<literal> is a single- or double-quoted string or a bare number.
<condition> is one of:
    column = 'value'              (case-insensitive)
    column IN ('v1', 'v2', ...)   (case-insensitive)
    column >|<|>=|<=|= number     (DELETE only; non-numeric cells never match)

SELECT is recognized only to be reported as read-only; the HTTP layer hands
it to the suggestion generator. DELETE without WHERE is refused. Anything
else is an UnsupportedStatementError.

The table name is not checked against anything: there is only one table.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

import pandas as pd

from csv_cleaner.exceptions import (
    CleanerError,
    ColumnNotFoundError,
    CriticalInputError,
    ParseError,
    UnsupportedStatementError,
)
from csv_cleaner.models.schemas import ActionRecord, CleaningReport
from csv_cleaner.services.columns import find_column
from csv_cleaner.services.table import (
    ensure_string_table,
    parse_csv,
    parse_number,
    serialize_csv,
)

logger = logging.getLogger(__name__)


READ_ONLY_WARNING = "SELECT operation is read-only and does not modify data."


class StatementKind(str, Enum):
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    SELECT = "SELECT"


@dataclass(frozen=True)
class Condition:
    """A parsed WHERE clause."""
    column: str
    operator: str
    values: Tuple[str, ...]
    numeric: bool = False


@dataclass(frozen=True)
class ParsedStatement:
    kind: StatementKind
    table: Optional[str] = None
    column: Optional[str] = None
    value: Optional[str] = None
    condition: Optional[Condition] = None


# ============================================
# Grammar
# ============================================

_LITERAL = r"""'[^']*'|"[^"]*"|-?\d+(?:\.\d+)?"""
_COLUMN_NAME = r"""[`\[]?(?P<column>[^\s`\[\]=<>(),'"]+)[`\]]?"""

_UPDATE = re.compile(
    r"""^\s*UPDATE\s+(?P<table>\w+)\s+SET\s+[`\[]?(?P<column>[^\s`\[\]=]+)[`\]]?\s*=\s*"""
    rf"""(?P<value>{_LITERAL})(?:\s+WHERE\s+(?P<where>.+?))?\s*;?\s*$""",
    re.IGNORECASE | re.DOTALL,
)
_DELETE = re.compile(
    r"""^\s*DELETE\s+FROM\s+(?P<table>\w+)(?:\s+WHERE\s+(?P<where>.+?))?\s*;?\s*$""",
    re.IGNORECASE | re.DOTALL,
)
_LEADING_KEYWORD = re.compile(r'^\s*(?P<keyword>[A-Za-z]+)')

_IN_CONDITION = re.compile(rf"""^\s*{_COLUMN_NAME}\s+IN\s*\((?P<values>.*)\)\s*$""", re.IGNORECASE | re.DOTALL)
_IN_VALUE = re.compile(r"""'([^']*)'|"([^"]*)"|(-?\d+(?:\.\d+)?)""")
_EQUALS_CONDITION = re.compile(rf"""^\s*{_COLUMN_NAME}\s*=\s*(?:'(?P<sq>[^']*)'|"(?P<dq>[^"]*)")\s*$""")
_NUMERIC_CONDITION = re.compile(rf"""^\s*{_COLUMN_NAME}\s*(?P<op>>=|<=|>|<|=)\s*(?P<number>-?\d+(?:\.\d+)?)\s*$""")


def _unquote(literal: str) -> str:
    if len(literal) >= 2 and literal[0] == literal[-1] and literal[0] in ("'", '"'):
        return literal[1:-1]
    return literal


def _in_condition(text: str) -> Optional[Condition]:
    match = _IN_CONDITION.match(text)
    if not match:
        return None
    values = []
    for item in _IN_VALUE.finditer(match.group('values')):
        values.append(next(group for group in item.groups() if group is not None))
    if not values:
        raise ParseError("No values found in IN clause.")
    return Condition(column=match.group('column'), operator='in', values=tuple(values))


def _equals_condition(text: str) -> Optional[Condition]:
    match = _EQUALS_CONDITION.match(text)
    if not match:
        return None
    value = match.group('sq') if match.group('sq') is not None else match.group('dq')
    return Condition(column=match.group('column'), operator='=', values=(value,))


def _numeric_condition(text: str) -> Optional[Condition]:
    match = _NUMERIC_CONDITION.match(text)
    if not match:
        return None
    return Condition(
        column=match.group('column'),
        operator=match.group('op'),
        values=(match.group('number'),),
        numeric=True,
    )


ConditionPattern = Callable[[str], Optional[Condition]]

UPDATE_CONDITIONS: List[ConditionPattern] = [_in_condition, _equals_condition]
DELETE_CONDITIONS: List[ConditionPattern] = [_in_condition, _equals_condition, _numeric_condition]


def parse_condition(text: str, patterns: List[ConditionPattern], usage: str) -> Condition:
    """
    Parse a WHERE clause with the first pattern that accepts it.

    Raises:
        ParseError: if no pattern accepts the clause
    """
    for pattern in patterns:
        condition = pattern(text)
        if condition is not None:
            return condition
    raise ParseError(f"Unsupported WHERE clause format. Use {usage}", details={"where": text.strip()})


def statement_kind(text: str) -> Optional[StatementKind]:
    """Kind named by the statement's first keyword, or None."""
    match = _LEADING_KEYWORD.match(text or '')
    if not match:
        return None
    try:
        return StatementKind(match.group('keyword').upper())
    except ValueError:
        return None


def parse_statement(text: str) -> ParsedStatement:
    """
    Parse one statement.

    Raises:
        ParseError: blank text, malformed UPDATE/DELETE or WHERE clause
        UnsupportedStatementError: DELETE without WHERE, or any other statement
    """
    if not text or not text.strip():
        raise ParseError("No SQL query was specified")

    kind = statement_kind(text)

    if kind == StatementKind.SELECT:
        return ParsedStatement(kind=kind)

    if kind == StatementKind.UPDATE:
        match = _UPDATE.match(text)
        if not match:
            raise ParseError("Invalid UPDATE syntax. Expected: UPDATE data SET column = 'value' [WHERE condition]")
        condition = None
        if match.group('where'):
            condition = parse_condition(
                match.group('where'),
                UPDATE_CONDITIONS,
                "column = 'value' or column IN ('value1', 'value2', ...)",
            )
        return ParsedStatement(
            kind=kind,
            table=match.group('table'),
            column=match.group('column'),
            value=_unquote(match.group('value')),
            condition=condition,
        )

    if kind == StatementKind.DELETE:
        match = _DELETE.match(text)
        if not match:
            raise ParseError("Invalid DELETE syntax. Expected: DELETE FROM data WHERE condition")
        if not match.group('where'):
            raise UnsupportedStatementError(
                "DELETE without WHERE clause is not supported. Specify filtering criteria."
            )
        condition = parse_condition(
            match.group('where'),
            DELETE_CONDITIONS,
            "column = 'value', column IN ('value1', ...) or column > number",
        )
        return ParsedStatement(kind=kind, table=match.group('table'), condition=condition)

    raise UnsupportedStatementError("Unsupported SQL operation. Currently supported: UPDATE, DELETE")


# ============================================
# Evaluation
# ============================================

def _resolve(df: pd.DataFrame, name: str, report: CleaningReport, role: str) -> str:
    """Exact header first; a case-insensitive hit is accepted with a warning."""
    if name in df.columns:
        return name

    column = find_column(df, name)
    if column is None:
        raise ColumnNotFoundError(name, [str(c) for c in df.columns])

    report.warnings.append(f"{role} column name case mismatch: '{name}' resolved to '{column}'")
    return column


def condition_mask(df: pd.DataFrame, column: str, condition: Condition) -> pd.Series:
    """Boolean mask of rows satisfying the condition on the resolved column."""
    cells = df[column]

    if condition.operator == 'in':
        targets = {v.strip().lower() for v in condition.values}
        return cells.map(lambda cell: cell.strip().lower() in targets).astype(bool)

    if not condition.numeric:
        target = condition.values[0].strip().lower()
        return cells.map(lambda cell: cell.strip().lower() == target).astype(bool)

    threshold = float(condition.values[0])

    def compare(cell: str) -> bool:
        number = parse_number(cell)
        if number is None:
            return False
        if condition.operator == '>':
            return number > threshold
        if condition.operator == '<':
            return number < threshold
        if condition.operator == '>=':
            return number >= threshold
        if condition.operator == '<=':
            return number <= threshold
        return number == threshold

    return cells.map(compare).astype(bool)


def _describe_condition(condition: Optional[Condition]) -> str:
    if condition is None:
        return "all rows"
    if condition.operator == 'in':
        return f"{condition.column} IN ({', '.join(repr(v) for v in condition.values)})"
    return f"{condition.column} {condition.operator} {condition.values[0]!r}"


def _execute_update(df: pd.DataFrame, statement: ParsedStatement, report: CleaningReport) -> pd.DataFrame:
    column = _resolve(df, statement.column, report, "SET")

    if statement.condition is not None:
        where_column = _resolve(df, statement.condition.column, report, "WHERE")
        mask = condition_mask(df, where_column, statement.condition)
    else:
        where_column = None
        mask = pd.Series(True, index=df.index)

    result = df.copy()
    matched = 0
    changed = 0
    for index in df.index[mask.to_numpy()]:
        matched += 1
        if result.at[index, column] != statement.value:
            result.at[index, column] = statement.value
            changed += 1

    description = (
        f"Updated {matched} row(s) where {_describe_condition(statement.condition)}: "
        f"set '{column}' to '{statement.value}' ({changed} cell(s) changed)"
    )
    affected_columns = [column]
    if where_column is not None and where_column != column:
        affected_columns.append(where_column)

    report.actions_applied = 1
    report.cells_modified = changed
    report.summary = description
    report.actions.append(ActionRecord(
        description=description,
        affected_rows=matched,
        affected_columns=affected_columns,
    ))
    return result


def _execute_delete(df: pd.DataFrame, statement: ParsedStatement, report: CleaningReport) -> pd.DataFrame:
    where_column = _resolve(df, statement.condition.column, report, "WHERE")
    mask = condition_mask(df, where_column, statement.condition)

    result = df[~mask].reset_index(drop=True)
    removed = len(df) - len(result)

    description = f"Deleted {removed} row(s) where {_describe_condition(statement.condition)}"
    report.actions_applied = 1
    report.rows_removed = removed
    report.summary = description
    report.actions.append(ActionRecord(
        description=description,
        affected_rows=removed,
        affected_columns=[where_column],
    ))
    return result


def execute_statement(df: pd.DataFrame, statement: str) -> Tuple[pd.DataFrame, CleaningReport]:
    """
    Parse and run one statement against a copy of df.

    Parse and resolution failures are recorded in the report and leave the
    table untouched.

    Returns:
        Tuple of (result_df, report)
    """
    table = ensure_string_table(df)
    report = CleaningReport()

    try:
        parsed = parse_statement(statement)
        logger.debug("Parsed SQL statement: %s", parsed)

        if parsed.kind == StatementKind.SELECT:
            report.warnings.append(READ_ONLY_WARNING)
            report.summary = READ_ONLY_WARNING
            return table, report

        if find_column(table, parsed.table) is not None:
            report.warnings.append(
                f"Table name '{parsed.table}' matches a column name; treating it as the table name"
            )

        if parsed.kind == StatementKind.UPDATE:
            result = _execute_update(table, parsed, report)
        else:
            result = _execute_delete(table, parsed, report)
    except CleanerError as e:
        logger.warning("SQL statement rejected: %s", e.message)
        report.actions_failed = 1
        report.errors.append(e.message)
        report.summary = f"SQL statement not applied: {e.message}"
        return table, report

    logger.info(report.summary)
    return result, report


def run_sql_on_csv(csv_text: str, statement: str) -> Tuple[str, CleaningReport]:
    """
    Parse CSV text, run one statement and serialize the result.

    Returns the original text when the CSV is unusable or nothing was applied.
    """
    try:
        df = parse_csv(csv_text)
    except CriticalInputError as e:
        logger.warning("Rejected CSV input: %s", e.message)
        return csv_text or '', CleaningReport(
            actions_failed=1,
            summary=f"Critical error: {e.message}",
            errors=[e.message],
        )

    try:
        result, report = execute_statement(df, statement)
    except Exception as e:
        logger.exception("Unexpected failure while running SQL statement")
        return csv_text, CleaningReport(
            actions_failed=1,
            summary=f"Error during SQL processing: {e}",
            errors=[f"Critical application error: {e}"],
        )

    if report.actions_applied == 0:
        return csv_text, report
    return serialize_csv(result), report
