"""
Natural-language command parser.

Turns one free-text instruction ("fill the missing values in 'Size' with
'Unknown'", "sort by Price descending", "remove rows where Age < 18") into a
single mutation applied directly to the table.

HOW MATCHING WORKS:
───────────────────
COMMAND_PATTERNS is an ordered list of command classes, each an ordered list
of pure pattern functions ``text -> Optional[ParsedCommand]``. Classes are
tried in priority order and, within a class, patterns from strictest to
most permissive. The first pattern returning a ParsedCommand wins.

Class priority:
1. fill missing (fill / fill nulls / change null / replace null / set empty)
2. replace a value inside a column
3. case conversion (upper, lower, title)
4. fill missing with a statistic (mean / median / mode)
5. sort
6. filter (keep or remove rows)

Fill patterns refuse statistic keywords as their value so that
"fill missing in Weight with mean" reaches class 4.
"""

import logging
import re
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Tuple

import pandas as pd

from csv_cleaner.exceptions import CriticalInputError, ParseError
from csv_cleaner.models.schemas import ActionRecord, CleaningReport
from csv_cleaner.services.columns import best_partial_match, find_column
from csv_cleaner.services.executor import title_case
from csv_cleaner.services.statistics import compute_column_stats
from csv_cleaner.services.table import (
    ensure_string_table,
    format_number,
    is_empty_value,
    parse_csv,
    parse_number,
    serialize_csv,
)

logger = logging.getLogger(__name__)


NO_MATCH_SUMMARY = "No matching actions were found for this command"


# ============================================
# Parsed Intent
# ============================================

@dataclass(frozen=True)
class ParsedCommand:
    """What a command asks for, before the column is resolved."""
    kind: str
    column: str
    value: Optional[str] = None
    old_value: Optional[str] = None
    case: Optional[str] = None
    descending: bool = False
    keep: bool = True
    operator: Optional[str] = None


PatternFn = Callable[[str], Optional[ParsedCommand]]


# ============================================
# Pattern Building Blocks
# ============================================

# Optional "column"/"field" around a possibly quoted name
_COLUMN = (
    r"""(?:(?:the\s+)?(?:column|field)\s+)?['"]?(?P<column>[^'"]+?)['"]?"""
    r"""(?:\s+(?:column|field))?"""
)
_VALUE = r"""['"]?(?P<value>[^'"]*?)['"]?"""
_END = r"""\s*\.?\s*$"""

_STATISTIC = re.compile(r'^(?:the\s+)?(?P<stat>mean|average|median|mode)(?:\s+value)?$', re.IGNORECASE)

_FILL_SUBJECTS = r'missing\s+values?|missing|null\s+values?|nulls?|empty\s+values?|empty|blank\s+values?|blanks?'


def _fill_regex(verbs: str, subjects: str, connectors: str) -> re.Pattern:
    return re.compile(
        rf"^\s*(?:{verbs})\s+(?:the\s+|all\s+)?(?:{subjects})\s+"
        rf"(?:(?:in|of|for|from)\s+)?{_COLUMN}\s+(?:{connectors})\s+{_VALUE}{_END}",
        re.IGNORECASE,
    )


def _clean(text: Optional[str]) -> Optional[str]:
    return text.strip() if text is not None else None


# ============================================
# 1. Fill Missing
# ============================================

_FILL_REGEXES = [
    _fill_regex('fill', r'missing\s+values?|missing', 'with|to'),
    _fill_regex('fill', r'null\s+values?|nulls?|empty\s+values?|empty|blank\s+values?|blanks?', 'with|to'),
    _fill_regex('change', r'null\s+values?|nulls?|empty\s+values?|empty', 'to|with'),
    _fill_regex('replace', r'null\s+values?|nulls?|empty\s+values?|empty|missing\s+values?', 'with|by|to'),
    _fill_regex('set', r'empty\s+values?|empty|missing\s+values?|missing|null\s+values?|nulls?', 'to|with|as'),
]


def _fill_pattern(regex: re.Pattern) -> PatternFn:
    def pattern(text: str) -> Optional[ParsedCommand]:
        match = regex.match(text)
        if not match:
            return None
        value = _clean(match.group('value'))
        if _STATISTIC.match(value):
            return None
        return ParsedCommand(kind='fill_missing', column=_clean(match.group('column')), value=value)
    return pattern


FILL_PATTERNS: List[PatternFn] = [_fill_pattern(regex) for regex in _FILL_REGEXES]


# ============================================
# 2. Replace Value
# ============================================

_REPLACE_REGEXES = [
    re.compile(
        r"""^\s*replace\s+(?:all\s+)?(?:(?:the\s+)?values?\s+|(?:occurrences|instances)\s+of\s+)?"""
        r"""['"]?(?P<old>[^'"]+?)['"]?\s+(?:with|by|to)\s+['"]?(?P<new>[^'"]*?)['"]?\s+"""
        rf"""(?:in|of|for|from)\s+{_COLUMN}{_END}""",
        re.IGNORECASE,
    ),
    re.compile(
        r"""^\s*(?:change|replace|set)\s+(?:all\s+)?['"]?(?P<old>[^'"]+?)['"]?\s+(?:to|with)\s+"""
        rf"""['"]?(?P<new>[^'"]*?)['"]?\s+(?:in|for|on)\s+{_COLUMN}{_END}""",
        re.IGNORECASE,
    ),
]


def _replace_pattern(regex: re.Pattern) -> PatternFn:
    def pattern(text: str) -> Optional[ParsedCommand]:
        match = regex.match(text)
        if not match:
            return None
        return ParsedCommand(
            kind='replace_value',
            column=_clean(match.group('column')),
            old_value=_clean(match.group('old')),
            value=_clean(match.group('new')),
        )
    return pattern


REPLACE_PATTERNS: List[PatternFn] = [_replace_pattern(regex) for regex in _REPLACE_REGEXES]


# ============================================
# 3. Case Conversion
# ============================================

_CASE_KEYWORD = re.compile(r'\b(?P<case>upper|lower|title)[\s-]?case\b', re.IGNORECASE)

_CASE_COLUMN_REGEXES = [
    re.compile(r"""['"](?P<column>[^'"]+)['"]"""),
    re.compile(
        r"""\b(?:in|of|column|field)\s+(?:the\s+)?(?P<column>[\w ]+?)"""
        r"""(?:\s+(?:column|field|values?))?(?:\s+(?:to|into|as|in)\s+.*)?\s*\.?\s*$""",
        re.IGNORECASE,
    ),
    re.compile(r"""\b(?P<column>\w+)\s+(?:column|field)\b""", re.IGNORECASE),
]


def _case_pattern(regex: re.Pattern) -> PatternFn:
    def pattern(text: str) -> Optional[ParsedCommand]:
        keyword = _CASE_KEYWORD.search(text)
        if not keyword:
            return None
        match = regex.search(text)
        if not match:
            return None
        column = _clean(match.group('column'))
        if not column or _CASE_KEYWORD.fullmatch(column):
            return None
        return ParsedCommand(kind='change_case', column=column, case=keyword.group('case').lower())
    return pattern


CASE_PATTERNS: List[PatternFn] = [_case_pattern(regex) for regex in _CASE_COLUMN_REGEXES]


# ============================================
# 4. Fill With Statistic
# ============================================

_STATISTIC_REGEXES = [
    _fill_regex('fill', _FILL_SUBJECTS, 'with|using|by'),
    _fill_regex('replace|change|set|impute', _FILL_SUBJECTS, 'with|by|to|using|as'),
    re.compile(
        rf"""^\s*impute\s+(?:the\s+)?(?:missing\s+values?\s+)?(?:(?:in|of|for)\s+)?{_COLUMN}"""
        rf"""\s+(?:with|using|by)\s+{_VALUE}{_END}""",
        re.IGNORECASE,
    ),
]


def _statistic_pattern(regex: re.Pattern) -> PatternFn:
    def pattern(text: str) -> Optional[ParsedCommand]:
        match = regex.match(text)
        if not match:
            return None
        statistic = _STATISTIC.match(_clean(match.group('value')))
        if not statistic:
            return None
        method = statistic.group('stat').lower()
        if method == 'average':
            method = 'mean'
        return ParsedCommand(kind='fill_statistic', column=_clean(match.group('column')), value=method)
    return pattern


STATISTIC_PATTERNS: List[PatternFn] = [_statistic_pattern(regex) for regex in _STATISTIC_REGEXES]


# ============================================
# 5. Sort
# ============================================

_DESCENDING = re.compile(r'desc|high(?:est)?\s+to\s+low|largest|highest|biggest|z\s+to\s+a', re.IGNORECASE)

_SORT_REGEX = re.compile(
    r"""^\s*(?:sort|order)\b.*?\bby\s+(?:the\s+)?(?:(?:column|field)\s+)?['"]?(?P<column>[^'"]+?)['"]?"""
    r"""(?:\s+(?:column|field))?"""
    r"""(?:\s+(?:in\s+|from\s+)?(?P<direction>ascending|descending|asc|desc|"""
    r"""high(?:est)?\s+to\s+low(?:est)?|low(?:est)?\s+to\s+high(?:est)?|"""
    r"""(?:largest|highest|biggest|smallest|lowest)(?:\s+first)?|a\s+to\s+z|z\s+to\s+a)"""
    r"""(?:\s+order)?)?\s*\.?\s*$""",
    re.IGNORECASE,
)


def _sort_pattern(text: str) -> Optional[ParsedCommand]:
    match = _SORT_REGEX.match(text)
    if not match:
        return None
    direction = match.group('direction') or ''
    return ParsedCommand(
        kind='sort',
        column=_clean(match.group('column')),
        descending=bool(_DESCENDING.search(direction)),
    )


SORT_PATTERNS: List[PatternFn] = [_sort_pattern]


# ============================================
# 6. Filter
# ============================================

_WORD_OPERATORS = (
    r'contains|includes|like|'
    r'(?:is\s+)?greater\s+than\s+or\s+equal\s+to|(?:is\s+)?greater\s+than|'
    r'(?:is\s+)?less\s+than\s+or\s+equal\s+to|(?:is\s+)?less\s+than|'
    r'equals|is\s+equal\s+to|is'
)
_SYMBOL_OPERATORS = r'>=|<=|==|=|>|<'

_CONDITION = (
    r"""['"]?(?P<column>[^'"]+?)['"]?"""
    rf"""(?:\s+(?P<word_op>{_WORD_OPERATORS})\s+|\s*(?P<symbol_op>{_SYMBOL_OPERATORS})\s*)"""
    rf"""{_VALUE}{_END}"""
)
_ROWS = r'(?:all\s+)?(?:the\s+)?(?:rows|records|entries|lines)'
_WHERE = r'(?:where|with|when|in\s+which|whose|that\s+have)'

_KEEP_REGEXES = [
    re.compile(rf"""^\s*(?:only\s+)?(?:keep|filter|show|select)\s+(?:only\s+)?{_ROWS}\s+{_WHERE}\s+{_CONDITION}""", re.IGNORECASE),
    re.compile(rf"""^\s*only\s+{_ROWS}\s+{_WHERE}\s+{_CONDITION}""", re.IGNORECASE),
    re.compile(rf"""^\s*(?:filter|keep)\s+(?:by\s+|where\s+){_CONDITION}""", re.IGNORECASE),
]
_REMOVE_REGEXES = [
    re.compile(rf"""^\s*(?:remove|delete|drop|exclude)\s+{_ROWS}\s+{_WHERE}\s+{_CONDITION}""", re.IGNORECASE),
]

_OPERATOR_NAMES = [
    (re.compile(r'^(?:contains|includes|like)$', re.IGNORECASE), 'contains'),
    (re.compile(r'^(?:>=|(?:is\s+)?greater\s+than\s+or\s+equal\s+to)$', re.IGNORECASE), '>='),
    (re.compile(r'^(?:<=|(?:is\s+)?less\s+than\s+or\s+equal\s+to)$', re.IGNORECASE), '<='),
    (re.compile(r'^(?:>|(?:is\s+)?greater\s+than)$', re.IGNORECASE), '>'),
    (re.compile(r'^(?:<|(?:is\s+)?less\s+than)$', re.IGNORECASE), '<'),
]


def _canonical_operator(raw: str) -> str:
    raw = ' '.join(raw.split())
    for regex, name in _OPERATOR_NAMES:
        if regex.match(raw):
            return name
    return '='


def _filter_pattern(regex: re.Pattern, keep: bool) -> PatternFn:
    def pattern(text: str) -> Optional[ParsedCommand]:
        match = regex.match(text)
        if not match:
            return None
        operator = match.group('word_op') or match.group('symbol_op')
        return ParsedCommand(
            kind='filter',
            column=_clean(match.group('column')),
            value=_clean(match.group('value')),
            operator=_canonical_operator(operator),
            keep=keep,
        )
    return pattern


FILTER_PATTERNS: List[PatternFn] = (
    [_filter_pattern(regex, keep=True) for regex in _KEEP_REGEXES]
    + [_filter_pattern(regex, keep=False) for regex in _REMOVE_REGEXES]
)


# Command classes in priority order
COMMAND_PATTERNS: List[Tuple[str, List[PatternFn]]] = [
    ('fill_missing', FILL_PATTERNS),
    ('replace_value', REPLACE_PATTERNS),
    ('change_case', CASE_PATTERNS),
    ('fill_statistic', STATISTIC_PATTERNS),
    ('sort', SORT_PATTERNS),
    ('filter', FILTER_PATTERNS),
]


def parse_command(text: str) -> Optional[ParsedCommand]:
    """Return the first ParsedCommand any pattern extracts from text, or None."""
    for _, patterns in COMMAND_PATTERNS:
        for pattern in patterns:
            parsed = pattern(text)
            if parsed is not None and parsed.column:
                return parsed
    return None


# ============================================
# Command Handlers
# ============================================

@dataclass
class CommandResult:
    """What a handler did to the table."""
    df: pd.DataFrame
    description: str
    cells_modified: int = 0
    rows_removed: int = 0
    affected_rows: int = 0
    error: Optional[str] = None


def _set_values(df: pd.DataFrame, column: str, new_values: dict) -> int:
    modified = 0
    for index, value in new_values.items():
        if df.at[index, column] != value:
            df.at[index, column] = value
            modified += 1
    return modified


def _fill_missing(df: pd.DataFrame, column: str, command: ParsedCommand) -> CommandResult:
    targets = {i: command.value for i, cell in enumerate(df[column]) if is_empty_value(cell)}
    modified = _set_values(df, column, targets)
    return CommandResult(
        df=df,
        description=f"Filled {modified} missing value(s) in '{column}' with '{command.value}'",
        cells_modified=modified,
        affected_rows=modified,
    )


def _replace_value(df: pd.DataFrame, column: str, command: ParsedCommand) -> CommandResult:
    old = command.old_value.lower()
    new_values = {i: command.value for i, cell in enumerate(df[column]) if cell.strip().lower() == old}

    mode = "exact"
    if not new_values:
        mode = "partial"
        pattern = re.compile(re.escape(command.old_value), re.IGNORECASE)
        new_values = {
            i: pattern.sub(lambda _: command.value, cell)
            for i, cell in enumerate(df[column]) if pattern.search(cell)
        }

    modified = _set_values(df, column, new_values)
    return CommandResult(
        df=df,
        description=(
            f"Replaced '{command.old_value}' with '{command.value}' in '{column}' "
            f"({mode} match, {modified} cell(s))"
        ),
        cells_modified=modified,
        affected_rows=modified,
    )


_CASE_TRANSFORMS = {
    'upper': str.upper,
    'lower': str.lower,
    'title': title_case,
}


def _change_case(df: pd.DataFrame, column: str, command: ParsedCommand) -> CommandResult:
    transform = _CASE_TRANSFORMS[command.case]
    new_values = {i: transform(cell) for i, cell in enumerate(df[column]) if not is_empty_value(cell)}
    modified = _set_values(df, column, new_values)
    return CommandResult(
        df=df,
        description=f"Converted '{column}' to {command.case} case ({modified} cell(s) changed)",
        cells_modified=modified,
        affected_rows=modified,
    )


def _fill_statistic(df: pd.DataFrame, column: str, command: ParsedCommand) -> CommandResult:
    stats = compute_column_stats(df, column)
    if stats is None:
        return CommandResult(
            df=df,
            description=f"Fill missing values in '{column}' with {command.value}",
            error=f"No numeric values in column '{column}' to compute the {command.value}",
        )

    value = format_number(stats.get(command.value))
    targets = {
        i: value for i, cell in enumerate(df[column])
        if is_empty_value(cell) or parse_number(cell) is None
    }
    modified = _set_values(df, column, targets)
    return CommandResult(
        df=df,
        description=f"Filled {modified} missing value(s) in '{column}' with the {command.value} ({value})",
        cells_modified=modified,
        affected_rows=modified,
    )


def _sort(df: pd.DataFrame, column: str, command: ParsedCommand) -> CommandResult:
    values = list(df[column])
    numbers = [parse_number(v) for v in values]

    if any(n is not None for n in numbers):
        mode = "numeric"
        keys = [(0, n) if n is not None else (1, 0.0) for n in numbers]
    else:
        mode = "text"
        keys = [v.lower() for v in values]

    # sorted() stays stable with reverse=True
    order = sorted(range(len(values)), key=lambda i: keys[i], reverse=command.descending)
    moved = sum(1 for position, index in enumerate(order) if position != index)
    direction = "descending" if command.descending else "ascending"
    return CommandResult(
        df=df.iloc[order].reset_index(drop=True),
        description=f"Sorted by '{column}' {direction} ({mode} sort)",
        affected_rows=moved,
    )


def condition_matches(cell: str, operator: str, value: str) -> bool:
    """Evaluate `cell <operator> value` the way filter commands do."""
    if operator == 'contains':
        return value.lower() in cell.lower()

    cell_number = parse_number(cell)
    value_number = parse_number(value)

    if operator == '=':
        if cell.strip().lower() == value.lower():
            return True
        return cell_number is not None and value_number is not None and cell_number == value_number

    if cell_number is None or value_number is None:
        return False
    if operator == '>':
        return cell_number > value_number
    if operator == '<':
        return cell_number < value_number
    if operator == '>=':
        return cell_number >= value_number
    if operator == '<=':
        return cell_number <= value_number
    return False


def _filter(df: pd.DataFrame, column: str, command: ParsedCommand) -> CommandResult:
    mask = df[column].map(lambda cell: condition_matches(cell, command.operator, command.value)).astype(bool)
    if not command.keep:
        mask = ~mask

    result = df[mask].reset_index(drop=True)
    removed = len(df) - len(result)
    verb = "Kept" if command.keep else "Removed"
    matched = len(result) if command.keep else removed
    return CommandResult(
        df=result,
        description=(
            f"{verb} rows where '{column}' {command.operator} '{command.value}' "
            f"({matched} matching row(s), {removed} row(s) removed)"
        ),
        rows_removed=removed,
        affected_rows=removed,
    )


COMMAND_HANDLERS = {
    'fill_missing': _fill_missing,
    'replace_value': _replace_value,
    'change_case': _change_case,
    'fill_statistic': _fill_statistic,
    'sort': _sort,
    'filter': _filter,
}


# ============================================
# Public API
# ============================================

def _lookup_column(df: pd.DataFrame, name: str, report: CleaningReport) -> Optional[str]:
    column = find_column(df, name)
    if column is not None:
        return column

    column = best_partial_match(df, name)
    if column is not None:
        report.warnings.append(f"Column '{name}' not found exactly; using closest match '{column}'")
    return column


def _failed(report: CleaningReport, message: str, description: str) -> CleaningReport:
    logger.warning(message)
    report.actions_failed = 1
    report.errors.append(message)
    report.summary = message
    report.actions.append(ActionRecord(description=description, success=False))
    return report


def run_command(df: pd.DataFrame, command: str) -> Tuple[pd.DataFrame, CleaningReport]:
    """
    Interpret a free-text command and apply it to a copy of df.

    Args:
        df: Table to clean
        command: Instruction text

    Returns:
        Tuple of (result_df, report). On any failure the returned table
        equals the input.
    """
    table = ensure_string_table(df)
    report = CleaningReport()

    if not command or not command.strip():
        error = ParseError("Empty command")
        return table, _failed(report, error.message, "Parse command")

    parsed = parse_command(command.strip())
    if parsed is None:
        error = ParseError(f"Could not understand command: '{command.strip()}'")
        logger.warning(error.message)
        report.actions_failed = 1
        report.errors.append(error.message)
        report.summary = NO_MATCH_SUMMARY
        return table, report

    logger.debug("Parsed command %r as %s", command, parsed)

    column = _lookup_column(table, parsed.column, report)
    if column is None:
        available = ', '.join(str(c) for c in table.columns)
        message = f"Column '{parsed.column}' not found. Available columns: {available}"
        return table, _failed(report, message, f"{parsed.kind} on '{parsed.column}'")

    result = COMMAND_HANDLERS[parsed.kind](table.copy(), column, replace(parsed, column=column))
    if result.error:
        return table, _failed(report, result.error, result.description)

    report.actions_applied = 1
    report.cells_modified = result.cells_modified
    report.rows_removed = result.rows_removed
    report.summary = result.description
    report.actions.append(ActionRecord(
        description=result.description,
        affected_rows=result.affected_rows,
        affected_columns=[column],
    ))
    logger.info(result.description)
    return result.df, report


def run_command_on_csv(csv_text: str, command: str) -> Tuple[str, CleaningReport]:
    """
    Parse CSV text, run one command and serialize the result.

    Returns the original text with a single critical error when the CSV
    is blank or unparsable.
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
        result, report = run_command(df, command)
    except Exception as e:
        logger.exception("Unexpected failure while running command")
        return csv_text, CleaningReport(
            actions_failed=1,
            summary=f"Critical error: {e}",
            errors=[f"Critical application error: {e}"],
        )

    if report.actions_applied == 0:
        return csv_text, report
    return serialize_csv(result), report
