"""
AI-powered cleaning suggestions using the OpenAI API.

Sends a sample of the table (as CSV text) plus optional user instructions
to a chat model and turns its JSON answer into validated CleaningActions
for a human to review. Nothing here modifies data; approved suggestions go
through the mutation executor like any other action list.

Model output is treated as untrusted input:
- items that fail CleaningAction validation are dropped
- OTHER (non-actionable) items are dropped
- user_provided_replacement is always cleared (only a reviewer sets it)
- row number 0 means "no row" (column-wide)
- duplicates collapse by key, user-instruction suggestions win
- ids are reassigned as suggestion-<n>
"""

import json
import logging
from typing import Any, Dict, List, Optional

import pandas as pd
from openai import OpenAI, OpenAIError
from pydantic import ValidationError

from csv_cleaner import config
from csv_cleaner.models.schemas import ActionType, CleaningAction, SuggestionSource
from csv_cleaner.services.table import serialize_csv

logger = logging.getLogger(__name__)


# ============================================
# Configuration
# ============================================

DEFAULT_MODEL = config.DEFAULT_MODEL

# Confidence assigned when the model leaves it out
DEFAULT_CONFIDENCE = 0.75

# Action types whose column-wide key ignores the original fragment
_PATTERNLESS_TYPES = {
    ActionType.STANDARDIZE_FORMAT,
    ActionType.FILL_MISSING,
    ActionType.FILL_MISSING_NUMERIC,
}


# ============================================
# OpenAI API Integration
# ============================================

def _get_openai_client() -> OpenAI:
    """
    Initialize and return an OpenAI client using the API key from environment.

    Raises:
        ValueError: If OPENAI_API_KEY environment variable is not set
    """
    api_key = config.get_openai_api_key()

    if not api_key:
        raise ValueError(
            "OPENAI_API_KEY environment variable is not set. "
            "Please set it with your OpenAI API key to use AI-powered suggestions."
        )

    return OpenAI(api_key=api_key)


def _build_system_prompt() -> str:
    return """You are a meticulous data cleaning assistant. You review a CSV sample and propose
individual, reviewable cleaning actions.

Respond with a JSON object of the form:
{
  "suggestions": [
    {
      "description": "...",
      "rationale": "...",
      "actionType": "FILL_MISSING | FILL_MISSING_NUMERIC | MODIFY_CELL | STANDARDIZE_FORMAT | REMOVE_ROW | REVIEW_CONSISTENCY | OTHER",
      "columnName": "exact header name",
      "rowNumber": 1,
      "originalFragment": "value currently in the cell",
      "suggestedFragment": "replacement value or format keyword",
      "imputationMethod": "mean | median | mode",
      "source": "user_instruction | general_suggestion",
      "userInstructionId": "instruction-1",
      "confidence": 0.9,
      "priority": "low | medium | high",
      "affectedRows": 3
    }
  ],
  "overallSummary": "one paragraph"
}

Rules:
- rowNumber is 1-based and refers to data rows (the header is not a row). Omit it for column-wide actions.
- For STANDARDIZE_FORMAT use one of these keywords in suggestedFragment: uppercase, lowercase, title case, trim, YYYY-MM-DD.
- For FILL_MISSING_NUMERIC set imputationMethod.
- Never invent values that cannot be derived from the data.
- Suggestions that follow the user's instructions use source "user_instruction"."""


def _build_user_prompt(csv_sample: str, instructions: Optional[str], total_rows: int) -> str:
    instruction_block = instructions.strip() if instructions and instructions.strip() else "None. Suggest general improvements."
    return f"""The dataset has {total_rows} row(s). Here is a sample:

```csv
{csv_sample}
```

User cleaning instructions:
{instruction_block}

Return your suggestions as JSON."""


# ============================================
# Normalization
# ============================================

def _fragment_key(fragment: Optional[str], length: int) -> str:
    return '_'.join((fragment or '')[:length].lower().split())


def suggestion_key(action: CleaningAction, index: int) -> str:
    """De-duplication key for a suggestion."""
    if action.source == SuggestionSource.USER_INSTRUCTION and action.user_instruction_id:
        column = action.column_name.lower() if action.column_name else 'GLOBAL'
        return f"USER-{action.user_instruction_id}-{column}-{action.action_type.value}"

    if action.action_type == ActionType.REMOVE_ROW and action.row_number is not None:
        return f"REMOVE-ROW-{action.row_number}"

    if action.row_number is None and action.column_name:
        pattern = '' if action.action_type in _PATTERNLESS_TYPES else f"-{_fragment_key(action.original_fragment, 20)}"
        return f"GEN-COL-{action.column_name.lower()}-{action.action_type.value}{pattern}"

    if action.row_number is not None and action.column_name:
        return (
            f"ROW-{action.row_number}-{action.column_name.lower()}-{action.action_type.value}"
            f"-{_fragment_key(action.original_fragment, 10)}"
        )

    return f"OTHER-{action.action_type.value}-{_fragment_key(action.description, 20)}-{index}"


def _prepare_item(item: Dict[str, Any], default_source: SuggestionSource) -> Dict[str, Any]:
    prepared = dict(item)
    prepared['id'] = prepared.get('id') or 'pending'
    prepared.pop('userProvidedReplacement', None)
    prepared.pop('user_provided_replacement', None)

    for key in ('rowNumber', 'row_number', 'affectedRows', 'affected_rows'):
        if key in prepared and not prepared[key]:
            del prepared[key]

    if isinstance(prepared.get('columnName'), str):
        prepared['columnName'] = prepared['columnName'].strip()

    prepared.setdefault('source', default_source.value)
    return prepared


def normalize_suggestions(
    items: List[Any],
    instructions: Optional[str] = None,
) -> List[CleaningAction]:
    """
    Validate, de-duplicate and renumber raw suggestion items from the model.

    Args:
        items: Parsed JSON items (camelCase keys)
        instructions: The user instructions the model was given, if any

    Returns:
        Clean CleaningAction list with ids suggestion-1..n
    """
    has_instructions = bool(instructions and instructions.strip())
    default_source = SuggestionSource.USER_INSTRUCTION if has_instructions else SuggestionSource.GENERAL_SUGGESTION

    by_key: Dict[str, CleaningAction] = {}
    for index, item in enumerate(items or []):
        if not isinstance(item, dict):
            continue
        if str(item.get('actionType', '')).upper() == 'OTHER':
            continue

        try:
            action = CleaningAction.model_validate(_prepare_item(item, default_source))
        except ValidationError as e:
            logger.warning("Skipping invalid suggestion: %s", e.errors()[0].get('msg', e))
            continue

        if action.action_type != ActionType.REMOVE_ROW and not action.column_name:
            logger.warning("Skipping %s suggestion without a column name", action.action_type.value)
            continue

        updates = {
            'confidence': action.confidence if action.confidence is not None else DEFAULT_CONFIDENCE,
            'priority': action.priority or ('high' if action.source == SuggestionSource.USER_INSTRUCTION else 'medium'),
        }
        if action.action_type != ActionType.FILL_MISSING_NUMERIC:
            updates['imputation_method'] = None
        action = action.model_copy(update=updates)

        key = suggestion_key(action, index)
        existing = by_key.get(key)
        if existing is None or (
            action.source == SuggestionSource.USER_INSTRUCTION
            and existing.source == SuggestionSource.GENERAL_SUGGESTION
        ):
            by_key[key] = action
        else:
            logger.debug("Skipping duplicate suggestion for key %s", key)

    suggestions = list(by_key.values())

    if has_instructions:
        covered = {
            (s.column_name.lower(), s.action_type)
            for s in suggestions
            if s.source == SuggestionSource.USER_INSTRUCTION and s.column_name
        }
        suggestions = [
            s for s in suggestions
            if s.source == SuggestionSource.USER_INSTRUCTION
            or not s.column_name
            or (s.column_name.lower(), s.action_type) not in covered
        ]

    return [
        s.model_copy(update={'id': f"suggestion-{n}"})
        for n, s in enumerate(suggestions, start=1)
    ]


# ============================================
# Main Public Function
# ============================================

def generate_cleaning_suggestions(
    df: pd.DataFrame,
    instructions: Optional[str] = None,
    model: str = DEFAULT_MODEL,
    sample_rows: int = config.SAMPLE_ROWS,
) -> Dict[str, Any]:
    """
    Ask the model for cleaning suggestions on a table.

    Args:
        df: String table to analyze
        instructions: Optional free-text cleaning instructions
        model: The OpenAI model to use
        sample_rows: Number of leading rows sent to the model

    Returns:
        Dictionary containing:
        {
            "success": bool,
            "suggestions": List[CleaningAction],
            "overall_summary": str,
            "model_used": str,
            "error": str (only if success=False)
        }
    """
    if df is None:
        return {"success": False, "suggestions": [], "overall_summary": "", "error": "DataFrame is None"}

    if len(df) == 0:
        return {
            "success": True,
            "suggestions": [],
            "overall_summary": "The dataset is empty. There is nothing to clean.",
            "model_used": model,
        }

    try:
        client = _get_openai_client()

        response = client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": _build_system_prompt()},
                {"role": "user", "content": _build_user_prompt(serialize_csv(df.head(sample_rows)), instructions, len(df))},
            ],
            response_format={"type": "json_object"},
            temperature=0.2,
        )

        payload = json.loads(response.choices[0].message.content or "{}")
        if not isinstance(payload, dict):
            raise ValueError("Model response is not a JSON object")

        suggestions = normalize_suggestions(payload.get("suggestions") or [], instructions)
        logger.info("Model %s produced %d suggestion(s)", model, len(suggestions))

        return {
            "success": True,
            "suggestions": suggestions,
            "overall_summary": str(payload.get("overallSummary") or ""),
            "model_used": model,
        }

    except ValueError as e:
        # Missing API key or unparsable response
        logger.warning("Suggestion generation failed: %s", e)
        return {"success": False, "suggestions": [], "overall_summary": "", "error": str(e)}
    except OpenAIError as e:
        logger.warning("OpenAI API error: %s", e)
        return {"success": False, "suggestions": [], "overall_summary": "", "error": f"OpenAI API error: {str(e)}"}
    except Exception as e:
        logger.exception("Unexpected error while generating suggestions")
        return {"success": False, "suggestions": [], "overall_summary": "", "error": f"Unexpected error: {str(e)}"}
