"""
Mutation executor: applies a batch of approved CleaningActions to a table.

EXECUTION ORDER:
────────────────
1. Statistics - mean/median/mode for every column targeted by a
   FILL_MISSING_NUMERIC action, computed on the table as it was handed in
   (rows about to be removed included) and cached in a StatsCache that
   lives only for this call.
2. Row removal - every REMOVE_ROW action, highest row number first, each
   validated against the table as it was handed in. Deleting from the
   bottom up keeps the still-pending lower row numbers valid.
3. Per-action phase - every other action, in submission order. Row numbers
   refer to the table after step 1. Actions without a row number apply to
   the whole column.

FAILURES:
─────────
Handlers return an ActionOutcome instead of raising. A failed action is
recorded in the report and the next action runs. Column-wide actions are
all-or-nothing: new values are computed for every row first and written
only if no row failed.

Only a table that cannot be parsed at all (CriticalInputError) aborts the
call, in which case the original CSV text is returned untouched.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

import pandas as pd
from pydantic import ValidationError

from csv_cleaner.exceptions import (
    CleanerError,
    ColumnNotFoundError,
    CriticalInputError,
    MatchNotFoundError,
    MissingReplacementValueError,
    RowOutOfRangeError,
)
from csv_cleaner.models.schemas import (
    ActionRecord,
    ActionType,
    CleaningAction,
    CleaningReport,
    ImputationMethod,
)
from csv_cleaner.services.columns import resolve_column
from csv_cleaner.services.matcher import find_matching_row
from csv_cleaner.services.statistics import StatsCache
from csv_cleaner.services.table import (
    ensure_string_table,
    format_number,
    is_empty_value,
    parse_csv,
    parse_number,
    serialize_csv,
)

logger = logging.getLogger(__name__)


NO_ACTIONS_SUMMARY = "No suggestions to apply."

_IMPUTATION_METHODS = {method.value for method in ImputationMethod}

# Something date-like: digits with separators, or a month name
_DATE_HINT = re.compile(
    r'\d{1,4}[-/.]\d{1,2}|\b(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\b',
    re.IGNORECASE,
)


# ============================================
# Run State
# ============================================

@dataclass
class ActionOutcome:
    """Result of one handler call: applied or failed, and how many cells changed."""
    applied: bool
    cells_modified: int = 0
    error: Optional[str] = None

    @classmethod
    def success(cls, cells_modified: int = 0) -> "ActionOutcome":
        return cls(applied=True, cells_modified=cells_modified)

    @classmethod
    def failure(cls, error: Union[str, CleanerError]) -> "ActionOutcome":
        message = error.message if isinstance(error, CleanerError) else error
        return cls(applied=False, error=message)


@dataclass
class ExecutionContext:
    """
    State for a single executor run.

    Created fresh by apply_actions and discarded afterwards; nothing in it
    survives into the next call.
    """
    stats: StatsCache = field(default_factory=StatsCache)
    warnings: List[str] = field(default_factory=list)


Handler = Callable[[pd.DataFrame, str, Optional[int], CleaningAction, ExecutionContext], ActionOutcome]


# ============================================
# Cell Writes
# ============================================

def _write_cells(df: pd.DataFrame, column: str, new_values: Dict[int, str]) -> int:
    """
    Write new values into a column, skipping cells that already hold them.

    Returns:
        Number of cells whose content actually changed
    """
    modified = 0
    for index, value in new_values.items():
        current = df.at[index, column]
        if current == value:
            continue
        df.at[index, column] = value
        modified += 1
        logger.debug("Row %d, column '%s': '%s' -> '%s'", index + 1, column, current, value)
    return modified


def _target_rows(df: pd.DataFrame, row_index: Optional[int]) -> Iterable[int]:
    if row_index is None:
        return range(len(df))
    return [row_index]


# ============================================
# Action Handlers
# ============================================

def _fill_missing(df, column, row_index, action, context) -> ActionOutcome:
    """Replace empty cells with the suggested fragment. Non-empty cells are left alone."""
    targets = [i for i in _target_rows(df, row_index) if is_empty_value(df.at[i, column])]
    if not targets:
        return ActionOutcome.success()

    if action.suggested_fragment is None:
        return ActionOutcome.failure(MissingReplacementValueError(
            f"No replacement value provided to fill missing cells in '{column}'"
        ))

    return ActionOutcome.success(
        _write_cells(df, column, {i: action.suggested_fragment for i in targets})
    )


def _is_missing_number(value: str) -> bool:
    return is_empty_value(value) or parse_number(value) is None


def _fill_missing_numeric(df, column, row_index, action, context) -> ActionOutcome:
    """
    Impute empty or non-numeric cells with a column statistic.

    With no imputation method the action is a no-op; a warning is recorded.
    """
    targets = [i for i in _target_rows(df, row_index) if _is_missing_number(df.at[i, column])]
    if not targets:
        return ActionOutcome.success()

    method = action.imputation_method
    if not method:
        context.warnings.append(
            f"Action ID {action.id}: no imputation method given for '{column}', nothing filled"
        )
        return ActionOutcome.success()

    method = method.strip().lower()
    if method not in _IMPUTATION_METHODS:
        return ActionOutcome.failure(MissingReplacementValueError(
            f"Invalid imputation method '{action.imputation_method}' (expected mean, median or mode)"
        ))

    stats = context.stats.get(df, column)
    if stats is None:
        return ActionOutcome.failure(MissingReplacementValueError(
            f"No stats available for numeric imputation in column '{column}'"
        ))

    value = format_number(stats.get(method))
    return ActionOutcome.success(_write_cells(df, column, {i: value for i in targets}))


def _modify_cell(df, column, row_index, action, context) -> ActionOutcome:
    """
    Replace a value located by the fuzzy matcher.

    Row-specific edits may land on another row of the same column when the
    declared row doesn't hold the expected value. Column-wide edits replace
    only cells exactly equal to the original fragment; the placeholder and
    normalized matching apply to a declared row only.
    """
    original = action.original_fragment
    suggested = action.suggested_fragment
    if original is None or suggested is None:
        return ActionOutcome.failure(MissingReplacementValueError(
            "MODIFY_CELL requires both an original and a suggested value"
        ))

    if row_index is None:
        new_values = {
            i: suggested for i in range(len(df)) if df.at[i, column] == original
        }
        return ActionOutcome.success(_write_cells(df, column, new_values))

    match = find_matching_row(df, column, row_index, original)
    if match is None:
        return ActionOutcome.failure(MatchNotFoundError(original, row_index + 1, column))

    if match != row_index:
        context.warnings.append(
            f"Action ID {action.id}: '{original}' not found at row {row_index + 1}, "
            f"applied to row {match + 1} instead"
        )
    return ActionOutcome.success(_write_cells(df, column, {match: suggested}))


def title_case(value: str) -> str:
    """Lowercase, then capitalize the first character of each space-separated word."""
    return ' '.join(word[:1].upper() + word[1:] for word in value.lower().split(' '))


def format_iso_date(value: str) -> Optional[str]:
    """Reformat a date-like string as YYYY-MM-DD, or None if it isn't a date."""
    if not _DATE_HINT.search(value):
        return None
    parsed = pd.to_datetime(value.strip(), errors='coerce')
    if pd.isna(parsed):
        return None
    return parsed.strftime('%Y-%m-%d')


def standardize_value(value: str, keyword: str) -> Optional[str]:
    """
    Apply the transform named by a format keyword.

    Keywords are matched case-insensitively as substrings, in this order:
    uppercase, lowercase, title case, trim, yyyy-mm-dd. Returns None when
    no keyword is recognized. Unparsable dates come back unchanged.
    """
    keyword = keyword.lower()
    if 'uppercase' in keyword:
        return value.upper()
    if 'lowercase' in keyword:
        return value.lower()
    if 'title case' in keyword:
        return title_case(value)
    if 'trim' in keyword:
        return value.strip()
    if 'yyyy-mm-dd' in keyword:
        formatted = format_iso_date(value)
        return formatted if formatted is not None else value
    return None


def _standardize_format(df, column, row_index, action, context) -> ActionOutcome:
    """
    Transform cells according to the keyword in the suggested fragment.

    An unrecognized keyword is written literally for a single cell and
    ignored for a whole column.
    """
    keyword = action.suggested_fragment
    if keyword is None:
        return ActionOutcome.failure(MissingReplacementValueError(
            "STANDARDIZE_FORMAT requires a suggested format"
        ))

    new_values = {}
    for i in _target_rows(df, row_index):
        standardized = standardize_value(df.at[i, column], keyword)
        if standardized is None:
            if row_index is None:
                continue
            standardized = keyword
        new_values[i] = standardized

    return ActionOutcome.success(_write_cells(df, column, new_values))


def _review_consistency(df, column, row_index, action, context) -> ActionOutcome:
    """
    Set a reviewed value: the user's replacement if given, else the suggestion.

    Column-wide, only cells exactly equal to the original fragment change.
    """
    replacement = action.user_provided_replacement
    if replacement is None:
        replacement = action.suggested_fragment
    if replacement is None:
        return ActionOutcome.failure(MissingReplacementValueError(
            "REVIEW_CONSISTENCY requires a replacement or suggested value"
        ))

    if row_index is not None:
        return ActionOutcome.success(_write_cells(df, column, {row_index: replacement}))

    new_values = {
        i: replacement for i in range(len(df)) if df.at[i, column] == action.original_fragment
    }
    return ActionOutcome.success(_write_cells(df, column, new_values))


# Handler dispatch for the per-action phase
ACTION_HANDLERS: Dict[ActionType, Handler] = {
    ActionType.FILL_MISSING: _fill_missing,
    ActionType.FILL_MISSING_NUMERIC: _fill_missing_numeric,
    ActionType.MODIFY_CELL: _modify_cell,
    ActionType.STANDARDIZE_FORMAT: _standardize_format,
    ActionType.REVIEW_CONSISTENCY: _review_consistency,
}


# ============================================
# Phases
# ============================================

def _remove_rows(
    df: pd.DataFrame,
    actions: List[CleaningAction],
    report: CleaningReport,
) -> pd.DataFrame:
    """Run every REMOVE_ROW action, highest row number first."""
    removals = [a for a in actions if a.action_type == ActionType.REMOVE_ROW]
    removals.sort(key=lambda a: a.row_number if a.row_number is not None else 0, reverse=True)

    row_count = len(df)
    to_remove = []
    for action in removals:
        row_number = action.row_number
        record = ActionRecord(
            action_id=action.id,
            description=action.description or f"Remove row {row_number}",
            success=False,
        )

        if row_number is None:
            error = f"Action ID {action.id}: REMOVE_ROW requires a row number"
        elif not 1 <= row_number <= row_count:
            error = f"Action ID {action.id}: {RowOutOfRangeError(row_number, row_count).message}"
        else:
            error = None

        if error:
            logger.warning(error)
            report.errors.append(error)
        elif row_number - 1 in to_remove:
            report.warnings.append(f"Action ID {action.id}: row {row_number} is already being removed")
            record.success = True
            report.actions_applied += 1
        else:
            to_remove.append(row_number - 1)
            record.success = True
            record.affected_rows = 1
            report.actions_applied += 1
            logger.debug("Removing row %d", row_number)

        report.actions.append(record)

    if not to_remove:
        return df

    report.rows_removed = len(to_remove)
    # to_remove is already in descending order
    return df.drop(index=to_remove).reset_index(drop=True)


def _precompute_stats(df: pd.DataFrame, actions: List[CleaningAction], context: ExecutionContext) -> None:
    columns = []
    for action in actions:
        if action.action_type != ActionType.FILL_MISSING_NUMERIC:
            continue
        try:
            column = resolve_column(df, action.column_name)
        except ColumnNotFoundError:
            continue
        if column not in columns:
            columns.append(column)
    context.stats.precompute(df, columns)


def apply_action(
    df: pd.DataFrame,
    action: CleaningAction,
    context: ExecutionContext,
) -> Tuple[ActionOutcome, Optional[str]]:
    """
    Apply one non-removal action in place.

    Column-wide actions run against a scratch copy of the column so that a
    failure leaves the table untouched.

    Returns:
        Tuple of (outcome, resolved column name or None)
    """
    try:
        column = resolve_column(df, action.column_name)
    except ColumnNotFoundError as e:
        return ActionOutcome.failure(e), None

    row_index = None
    if action.row_number is not None:
        if not 1 <= action.row_number <= len(df):
            error = RowOutOfRangeError(action.row_number, len(df))
            return ActionOutcome.failure(f"{error.message} after row removals"), column
        row_index = action.row_number - 1

    handler = ACTION_HANDLERS.get(action.action_type)
    if handler is None:
        return ActionOutcome.failure(f"Unsupported action type: {action.action_type}"), column

    if row_index is not None:
        return handler(df, column, row_index, action, context), column

    scratch = df[[column]].copy()
    outcome = handler(scratch, column, None, action, context)
    if outcome.applied:
        df[column] = scratch[column]
    return outcome, column


def build_summary(report: CleaningReport, total_actions: int) -> str:
    """Templated sentence combining the report counters."""
    if total_actions == 0:
        return NO_ACTIONS_SUMMARY
    summary = (
        f"Applied changes based on {report.actions_applied} approved suggestion(s). "
        f"{report.cells_modified} cell(s) modified, {report.rows_removed} row(s) removed."
    )
    if report.errors:
        summary += f" Encountered {len(report.errors)} error(s) during application."
    return summary


# ============================================
# Public API
# ============================================

def apply_actions(
    df: pd.DataFrame,
    actions: List[CleaningAction],
) -> Tuple[pd.DataFrame, CleaningReport]:
    """
    Apply approved actions to a table.

    The input DataFrame is never modified; the returned one is a new
    string table.

    Args:
        df: Table to clean
        actions: Approved actions in any order

    Returns:
        Tuple of (cleaned_df, report)
    """
    result = ensure_string_table(df)
    report = CleaningReport()
    context = ExecutionContext()

    _precompute_stats(result, actions, context)
    result = _remove_rows(result, actions, report)

    for action in actions:
        if action.action_type == ActionType.REMOVE_ROW:
            continue

        outcome, column = apply_action(result, action, context)
        description = action.description or _describe(action, column)
        report.actions.append(ActionRecord(
            action_id=action.id,
            description=description,
            affected_rows=outcome.cells_modified,
            affected_columns=[column] if column else [],
            success=outcome.applied,
        ))

        if outcome.applied:
            report.actions_applied += 1
            report.cells_modified += outcome.cells_modified
        else:
            error = f"Action ID {action.id}: {outcome.error}"
            logger.warning(error)
            report.errors.append(error)

    report.warnings.extend(context.warnings)
    report.actions_failed = len(actions) - report.actions_applied
    report.summary = build_summary(report, len(actions))
    logger.info(report.summary)
    return result, report


def _describe(action: CleaningAction, column: Optional[str]) -> str:
    target = f"'{column or action.column_name}'"
    if action.row_number is not None:
        target += f" row {action.row_number}"
    return f"{action.action_type.value} on {target}"


def _critical_report(message: str, total_actions: int) -> CleaningReport:
    return CleaningReport(
        actions_failed=total_actions,
        summary=f"Critical error: {message}",
        errors=[message],
    )


def apply_actions_to_csv(
    csv_text: str,
    actions: List[Union[CleaningAction, dict]],
) -> Tuple[str, CleaningReport]:
    """
    Parse CSV text, apply actions and serialize the result.

    Actions may be CleaningAction instances or dicts (camelCase or
    snake_case keys). A dict that fails validation is recorded as a failed
    action and the rest still run. If the CSV is blank or unparsable, or
    anything unexpected goes wrong, the original text comes back with a
    report holding a single critical error.

    Returns:
        Tuple of (cleaned_csv_text, report)
    """
    items = list(actions or [])
    valid, invalid_errors = validate_actions(items)

    try:
        df = parse_csv(csv_text)
    except CriticalInputError as e:
        logger.warning("Rejected CSV input: %s", e.message)
        return csv_text or '', _critical_report(e.message, len(items))

    if not items:
        return csv_text, CleaningReport(summary=NO_ACTIONS_SUMMARY)

    try:
        cleaned, report = apply_actions(df, valid)
    except Exception as e:
        logger.exception("Unexpected failure while applying actions")
        return csv_text, _critical_report(f"Critical application error: {e}", len(items))

    if invalid_errors:
        report.errors = invalid_errors + report.errors
        report.actions_failed += len(invalid_errors)
        report.summary = build_summary(report, len(items))

    return serialize_csv(cleaned), report


def validate_actions(items: List[Union[CleaningAction, dict]]) -> Tuple[List[CleaningAction], List[str]]:
    """
    Split raw action items into valid CleaningActions and error messages.

    Returns:
        Tuple of (valid_actions, errors), one error per rejected item
    """
    valid = []
    errors = []
    for position, item in enumerate(items, start=1):
        if isinstance(item, CleaningAction):
            valid.append(item)
            continue
        try:
            valid.append(CleaningAction.model_validate(item))
        except ValidationError as e:
            label = item.get('id') if isinstance(item, dict) and item.get('id') else f"#{position}"
            first = e.errors()[0]
            field_name = '.'.join(str(part) for part in first.get('loc', ())) or 'action'
            error = f"Action ID {label}: invalid action ({field_name}: {first.get('msg', 'validation failed')})"
            logger.warning(error)
            errors.append(error)
    return valid, errors
