"""
Pydantic Models for the Cleaning Engine and its API

This module defines the data structures shared by the mutation executor,
the two free-text front ends (command parser and SQL parser), the
suggestion generator and the HTTP layer.

ORGANIZATION:
─────────────
1. Enums - ActionType, ImputationMethod, SuggestionSource
2. CleaningAction - a single declarative edit request
3. ActionRecord / CleaningReport - the outcome of a run
4. API schemas - request/response bodies for the FastAPI routes

WIRE NAMES:
───────────
CleaningAction is produced by the LLM suggestion generator and by the
frontend, both of which speak camelCase (actionType, rowNumber...). The
model accepts either spelling and serializes with the camelCase aliases.
Report and API envelopes use plain snake_case field names.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ============================================
# Enums
# ============================================

class ActionType(str, Enum):
    """
    Kinds of edits the executor knows how to apply.

    REMOVE_ROW always runs first; every other type is dispatched per
    action, either to one cell (row_number given) or to the whole column.
    """
    FILL_MISSING = "FILL_MISSING"
    FILL_MISSING_NUMERIC = "FILL_MISSING_NUMERIC"
    MODIFY_CELL = "MODIFY_CELL"
    STANDARDIZE_FORMAT = "STANDARDIZE_FORMAT"
    REMOVE_ROW = "REMOVE_ROW"
    REVIEW_CONSISTENCY = "REVIEW_CONSISTENCY"


class ImputationMethod(str, Enum):
    """Statistic used by FILL_MISSING_NUMERIC."""
    MEAN = "mean"
    MEDIAN = "median"
    MODE = "mode"


class SuggestionSource(str, Enum):
    """Where a suggested action came from."""
    USER_INSTRUCTION = "user_instruction"
    GENERAL_SUGGESTION = "general_suggestion"


# ============================================
# Cleaning Action
# ============================================

class CleaningAction(BaseModel):
    """
    A single declarative edit request.

    Only the fields in the first block drive the executor. The descriptive
    fields in the second block are produced by the suggestion generator for
    the review UI and are carried through untouched.

    imputation_method is a free string on purpose: an unknown method fails
    only the action that carries it instead of rejecting the whole batch.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(..., description="Unique identifier of the action")
    action_type: ActionType = Field(..., description="Type of edit to apply")
    column_name: Optional[str] = Field(None, description="Target column")
    row_number: Optional[int] = Field(
        None,
        description="1-based row position after row removals; omit for column-wide actions"
    )
    original_fragment: Optional[str] = Field(None, description="Value (or description) being replaced")
    suggested_fragment: Optional[str] = Field(None, description="Replacement value or format keyword")
    imputation_method: Optional[str] = Field(None, description="mean, median or mode")
    user_provided_replacement: Optional[str] = Field(
        None,
        description="Value typed by the reviewer; REVIEW_CONSISTENCY prefers it over suggested_fragment"
    )

    description: Optional[str] = Field(None, description="Human-readable description")
    rationale: Optional[str] = Field(None, description="Why the change is suggested")
    source: Optional[SuggestionSource] = Field(None, description="Origin of the suggestion")
    user_instruction_id: Optional[str] = Field(None, description="Groups suggestions by user directive")
    confidence: Optional[float] = Field(None, description="Model confidence 0-1")
    priority: Optional[str] = Field(None, description="low, medium or high")
    affected_rows: Optional[int] = Field(None, description="Estimated rows affected (column-wide)")


# ============================================
# Run Outcome
# ============================================

class ActionRecord(BaseModel):
    """One attempted action and what it did."""
    action_id: Optional[str] = Field(None, description="ID of the CleaningAction, if any")
    description: str = Field(..., description="What was done (or attempted)")
    affected_rows: int = Field(0, description="Rows touched by the action")
    affected_columns: List[str] = Field(default_factory=list, description="Columns touched")
    success: bool = Field(True, description="Whether the action was applied")


class CleaningReport(BaseModel):
    """
    Structured summary of a mutation run.

    Same shape whether produced by the executor, the command parser or the
    SQL parser, so the caller can always tell apart "nothing changed because
    the input was invalid", "partially applied" and "fully applied".
    """
    actions_applied: int = Field(0, description="Actions whose handler succeeded")
    actions_failed: int = Field(0, description="Actions that could not be applied")
    cells_modified: int = Field(0, description="Cells whose value actually changed")
    rows_removed: int = Field(0, description="Rows deleted from the table")
    summary: str = Field("", description="Human-readable summary")
    errors: List[str] = Field(default_factory=list, description="Per-action or critical errors")
    warnings: List[str] = Field(default_factory=list, description="Non-fatal notes")
    actions: List[ActionRecord] = Field(default_factory=list, description="Per-action records")


# ============================================
# API Schemas
# ============================================

class UploadResponse(BaseModel):
    """Response schema for file upload."""
    file_id: str = Field(..., description="Unique identifier for the uploaded file")
    filename: str = Field(..., description="Original filename")
    rows: int = Field(..., description="Number of data rows")
    columns: List[str] = Field(..., description="Header names")
    message: str = Field(..., description="Status message")


class SuggestionsRequest(BaseModel):
    """Request schema for AI cleaning suggestions."""
    file_id: str = Field(..., description="ID of the file to analyze")
    instructions: Optional[str] = Field(None, description="Free-text cleaning instructions from the user")
    model: Optional[str] = Field(None, description="OpenAI model override")


class SuggestionsResponse(BaseModel):
    """Response schema for AI cleaning suggestions."""
    file_id: str = Field(..., description="ID of the analyzed file")
    success: bool = Field(..., description="Whether suggestions were generated")
    suggestions: List[CleaningAction] = Field(default_factory=list, description="Proposed actions")
    overall_summary: str = Field("", description="High-level summary from the model")
    ai_model: Optional[str] = Field(None, description="Model used")
    error: Optional[str] = Field(None, description="Error message if generation failed")


class ApplyActionsRequest(BaseModel):
    """Request schema for applying reviewed actions."""
    file_id: str = Field(..., description="ID of the file to clean")
    actions: List[CleaningAction] = Field(..., description="Approved actions, in any order")


class CommandRequest(BaseModel):
    """Request schema for a free-text cleaning command."""
    file_id: str = Field(..., description="ID of the file to clean")
    command: str = Field(..., description="Instruction such as \"fill missing values in 'Size' with 'Unknown'\"")


class SqlRequest(BaseModel):
    """Request schema for a restricted SQL statement."""
    file_id: str = Field(..., description="ID of the file to clean")
    statement: str = Field(..., description="UPDATE ... SET ... [WHERE ...] or DELETE FROM ... WHERE ...")


class CleaningResponse(BaseModel):
    """Response for every mutating endpoint."""
    original_file_id: str = Field(..., description="ID of the input file")
    cleaned_file_id: Optional[str] = Field(None, description="ID of the stored result")
    report: CleaningReport = Field(..., description="Counters, summary and errors")
    read_only: bool = Field(False, description="True when the statement was a SELECT")
    suggestions: List[CleaningAction] = Field(
        default_factory=list,
        description="Suggestions produced when a SELECT was handed to the suggestion generator"
    )
