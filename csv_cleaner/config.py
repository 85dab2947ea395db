"""
Runtime configuration.

All settings come from environment variables (a ``.env`` file is loaded by
``csv_cleaner.main`` before this module is imported). Nothing here is
required for the mutation engine itself; only the suggestion generator
needs an OpenAI key.
"""

import os
import tempfile
from pathlib import Path
from typing import List


# ============================================
# LLM Settings
# ============================================

# Default model for the suggestion generator
DEFAULT_MODEL = os.getenv("CSV_CLEANER_MODEL", "gpt-4.1")

# Number of rows sent to the model when asking for suggestions
SAMPLE_ROWS = int(os.getenv("CSV_CLEANER_SAMPLE_ROWS", "200"))


# ============================================
# Service Settings
# ============================================

LOG_LEVEL = os.getenv("CSV_CLEANER_LOG_LEVEL", "INFO").upper()

_DEFAULT_ORIGINS = "http://localhost:3000,http://localhost:3001,http://127.0.0.1:3000"


def get_cors_origins() -> List[str]:
    """Origins allowed by the CORS middleware."""
    raw = os.getenv("CSV_CLEANER_CORS_ORIGINS", _DEFAULT_ORIGINS)
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def get_temp_dir() -> Path:
    """Directory used to store uploaded and cleaned CSV files."""
    configured = os.getenv("CSV_CLEANER_TEMP_DIR")
    if configured:
        return Path(configured)
    return Path(tempfile.gettempdir()) / "csv_cleaner"


def get_openai_api_key() -> str:
    """Return the OpenAI API key, or an empty string when unset."""
    return os.getenv("OPENAI_API_KEY", "")
