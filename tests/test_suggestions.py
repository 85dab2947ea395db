"""
Unit tests for the suggestion generator.

The OpenAI client is always mocked; no network calls are made.
"""

import json
from unittest.mock import MagicMock, patch

import pytest
from openai import OpenAIError

from csv_cleaner.models.schemas import ActionType, CleaningAction, SuggestionSource
from csv_cleaner.services.suggestions import (
    DEFAULT_CONFIDENCE,
    DEFAULT_MODEL,
    generate_cleaning_suggestions,
    normalize_suggestions,
    suggestion_key,
)


def mock_completion(mock_openai_class, content):
    """Wire a mocked OpenAI class to answer with the given message content."""
    mock_client = MagicMock()
    mock_openai_class.return_value = mock_client

    mock_response = MagicMock()
    mock_response.choices = [MagicMock()]
    mock_response.choices[0].message.content = content
    mock_client.chat.completions.create.return_value = mock_response
    return mock_client


# ============================================
# Tests for normalize_suggestions
# ============================================

class TestNormalizeSuggestions:
    """Validation, de-duplication and renumbering of model output."""

    def test_cleans_model_fields(self):
        items = [{
            'description': 'Fill sizes',
            'actionType': 'FILL_MISSING',
            'columnName': ' Outlet_Size ',
            'suggestedFragment': 'Unknown',
            'rowNumber': 0,
            'imputationMethod': 'mean',
            'userProvidedReplacement': 'sneaky',
        }]

        result = normalize_suggestions(items)

        assert len(result) == 1
        action = result[0]
        assert action.id == 'suggestion-1'
        assert action.column_name == 'Outlet_Size'
        assert action.row_number is None
        assert action.imputation_method is None
        assert action.user_provided_replacement is None
        assert action.source == SuggestionSource.GENERAL_SUGGESTION
        assert action.confidence == DEFAULT_CONFIDENCE
        assert action.priority == 'medium'

    def test_keeps_imputation_method_for_numeric_fill(self):
        items = [{'actionType': 'FILL_MISSING_NUMERIC', 'columnName': 'Weight', 'imputationMethod': 'median', 'confidence': 0.9}]

        action = normalize_suggestions(items)[0]

        assert action.imputation_method == 'median'
        assert action.confidence == 0.9

    def test_skips_unusable_items(self):
        items = [
            'not a dict',
            {'actionType': 'OTHER', 'columnName': 'a', 'description': 'general advice'},
            {'actionType': 'EXPLODE', 'columnName': 'a'},
            {'actionType': 'MODIFY_CELL', 'rowNumber': 2, 'suggestedFragment': 'x'},
            {'actionType': 'REMOVE_ROW', 'rowNumber': 3},
        ]

        result = normalize_suggestions(items)

        assert [a.action_type for a in result] == [ActionType.REMOVE_ROW]
        assert result[0].row_number == 3

    def test_column_wide_duplicates_collapse(self):
        items = [
            {'actionType': 'FILL_MISSING', 'columnName': 'Size', 'suggestedFragment': 'Unknown'},
            {'actionType': 'FILL_MISSING', 'columnName': 'size', 'suggestedFragment': 'N/A'},
            {'actionType': 'MODIFY_CELL', 'columnName': 'Size', 'originalFragment': 'Med', 'suggestedFragment': 'Medium'},
            {'actionType': 'MODIFY_CELL', 'columnName': 'Size', 'originalFragment': 'Sml', 'suggestedFragment': 'Small'},
        ]

        result = normalize_suggestions(items)

        assert [a.id for a in result] == ['suggestion-1', 'suggestion-2', 'suggestion-3']
        assert result[0].suggested_fragment == 'Unknown'

    def test_user_instruction_wins_duplicate(self):
        items = [
            {'actionType': 'REMOVE_ROW', 'rowNumber': 4, 'source': 'general_suggestion'},
            {'actionType': 'REMOVE_ROW', 'rowNumber': 4, 'source': 'user_instruction'},
        ]

        result = normalize_suggestions(items)

        assert len(result) == 1
        assert result[0].source == SuggestionSource.USER_INSTRUCTION
        assert result[0].priority == 'high'

    def test_general_suggestion_covered_by_instruction_is_dropped(self):
        items = [
            {'actionType': 'FILL_MISSING', 'columnName': 'Size', 'suggestedFragment': 'Unknown',
             'userInstructionId': 'instruction-1'},
            {'actionType': 'FILL_MISSING', 'columnName': 'size', 'suggestedFragment': 'N/A',
             'source': 'general_suggestion'},
            {'actionType': 'STANDARDIZE_FORMAT', 'columnName': 'Size', 'suggestedFragment': 'title case',
             'source': 'general_suggestion'},
        ]

        result = normalize_suggestions(items, instructions="fill missing sizes with Unknown")

        assert [(a.action_type, a.source) for a in result] == [
            (ActionType.FILL_MISSING, SuggestionSource.USER_INSTRUCTION),
            (ActionType.STANDARDIZE_FORMAT, SuggestionSource.GENERAL_SUGGESTION),
        ]

    def test_empty_input(self):
        assert normalize_suggestions([]) == []
        assert normalize_suggestions(None) == []


class TestSuggestionKey:
    """Tests for suggestion_key."""

    def test_row_specific_key_uses_fragment(self):
        action = CleaningAction(
            id='x', action_type=ActionType.MODIFY_CELL, column_name='Name',
            row_number=2, original_fragment='Jon Smith',
        )

        assert suggestion_key(action, 0) == 'ROW-2-name-MODIFY_CELL-jon_smith'

    def test_user_instruction_key(self):
        action = CleaningAction(
            id='x', action_type=ActionType.FILL_MISSING, column_name='Size',
            source=SuggestionSource.USER_INSTRUCTION, user_instruction_id='instruction-2',
        )

        assert suggestion_key(action, 0) == 'USER-instruction-2-size-FILL_MISSING'


# ============================================
# Tests for generate_cleaning_suggestions (Mocked)
# ============================================

class TestGenerateCleaningSuggestions:
    """Suggestion generation with a mocked OpenAI API."""

    @patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
    @patch("csv_cleaner.services.suggestions.OpenAI")
    def test_successful_generation(self, mock_openai_class, outlet_df):
        content = json.dumps({
            'suggestions': [{
                'description': 'Fill missing outlet sizes',
                'actionType': 'FILL_MISSING',
                'columnName': 'Outlet_Size',
                'suggestedFragment': 'Unknown',
            }],
            'overallSummary': 'Outlet sizes are incomplete.',
        })
        mock_client = mock_completion(mock_openai_class, content)

        result = generate_cleaning_suggestions(outlet_df)

        assert result["success"] is True
        assert result["overall_summary"] == 'Outlet sizes are incomplete.'
        assert result["model_used"] == DEFAULT_MODEL
        assert [s.id for s in result["suggestions"]] == ['suggestion-1']

        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["model"] == DEFAULT_MODEL

    @patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
    @patch("csv_cleaner.services.suggestions.OpenAI")
    def test_prompt_contains_sample_and_instructions(self, mock_openai_class, outlet_df):
        mock_client = mock_completion(mock_openai_class, '{"suggestions": []}')

        generate_cleaning_suggestions(outlet_df, instructions="standardize fat content", sample_rows=2)

        user_prompt = mock_client.chat.completions.create.call_args.kwargs["messages"][1]["content"]
        assert "standardize fat content" in user_prompt
        assert "5 row(s)" in user_prompt
        assert "DRC01" in user_prompt
        assert "NCD19" not in user_prompt

    @patch.dict("os.environ", {}, clear=True)
    def test_missing_api_key(self, outlet_df):
        result = generate_cleaning_suggestions(outlet_df)

        assert result["success"] is False
        assert "OPENAI_API_KEY" in result["error"]

    @patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
    @patch("csv_cleaner.services.suggestions.OpenAI")
    def test_invalid_json(self, mock_openai_class, outlet_df):
        mock_completion(mock_openai_class, "this is not json")

        result = generate_cleaning_suggestions(outlet_df)

        assert result["success"] is False
        assert result["suggestions"] == []

    @patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"})
    @patch("csv_cleaner.services.suggestions.OpenAI")
    def test_api_error(self, mock_openai_class, outlet_df):
        mock_client = mock_completion(mock_openai_class, "{}")
        mock_client.chat.completions.create.side_effect = OpenAIError("rate limited")

        result = generate_cleaning_suggestions(outlet_df)

        assert result["success"] is False
        assert result["error"].startswith("OpenAI API error")

    def test_empty_dataframe(self, outlet_df):
        result = generate_cleaning_suggestions(outlet_df.iloc[0:0])

        assert result["success"] is True
        assert result["suggestions"] == []
        assert "empty" in result["overall_summary"].lower()

    def test_none_dataframe(self):
        result = generate_cleaning_suggestions(None)

        assert result["success"] is False
        assert "None" in result["error"]


@pytest.mark.parametrize("priority,expected", [(None, 'medium'), ('low', 'low')])
def test_priority_default(priority, expected):
    item = {'actionType': 'STANDARDIZE_FORMAT', 'columnName': 'a', 'suggestedFragment': 'trim'}
    if priority:
        item['priority'] = priority

    assert normalize_suggestions([item])[0].priority == expected
