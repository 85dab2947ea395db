"""
CSV Cleaner - FastAPI Backend

HTTP surface over the cleaning engine. Clients upload a CSV once and then
refer to it by file_id; every mutating call stores its result under a new
file_id so the original stays available.

WORKFLOWS:
──────────
• Review suggestions (/suggestions, /apply-actions):
  The model proposes actions, the user approves some, the executor applies
  exactly those.

• Direct command (/command):
  One free-text instruction such as "fill missing values in 'Size' with
  'Unknown'" or "remove rows where Age < 18".

• Restricted SQL (/sql):
  UPDATE ... SET ... [WHERE ...] or DELETE FROM ... WHERE ...; SELECT
  statements are read-only and get answered with suggestions instead.

FILE STORAGE:
─────────────
Files are stored in a temp directory and tracked in-memory via FILE_STORAGE
dict. No persistence across restarts.
"""

import logging
import uuid
from pathlib import Path
from typing import Dict

from dotenv import load_dotenv

# Load environment variables BEFORE importing other modules
# (config.py and the suggestion service read settings from env)
load_dotenv()

import pandas as pd
from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse

from csv_cleaner import __version__, config
from csv_cleaner.exceptions import CriticalInputError
from csv_cleaner.models.schemas import (
    ApplyActionsRequest,
    CleaningReport,
    CleaningResponse,
    CommandRequest,
    SqlRequest,
    SuggestionsRequest,
    SuggestionsResponse,
    UploadResponse,
)
from csv_cleaner.services.commands import run_command
from csv_cleaner.services.executor import apply_actions
from csv_cleaner.services.sql import READ_ONLY_WARNING, StatementKind, execute_statement, statement_kind
from csv_cleaner.services.suggestions import generate_cleaning_suggestions
from csv_cleaner.services.table import parse_csv, serialize_csv

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="CSV Cleaner API",
    description="Apply reviewed, free-text and SQL-style cleaning edits to CSV data",
    version=__version__,
)

# CORS middleware for frontend integration
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# ============================================
# In-Memory File Storage
# ============================================
# Maps file_id (UUID string) → absolute file path on disk.
FILE_STORAGE: Dict[str, str] = {}

TEMP_DIR = config.get_temp_dir()
TEMP_DIR.mkdir(parents=True, exist_ok=True)


# ============================================
# Helper Functions
# ============================================

def stored_path(file_id: str, must_exist: bool = True) -> Path:
    """
    Resolve a file_id to its path on disk.

    With must_exist off, a registered id whose file is already gone still
    resolves, so the registry entry can be dropped.
    """
    path = FILE_STORAGE.get(file_id)
    if path is None:
        raise HTTPException(status_code=404, detail=f"Unknown file_id: {file_id}")

    path = Path(path)
    if must_exist and not path.exists():
        raise HTTPException(status_code=404, detail=f"Stored CSV for {file_id} is missing on disk")
    return path


def load_csv(file_id: str) -> pd.DataFrame:
    """
    Load a stored CSV as a string table.

    Raises HTTPException 404 if file not found, 400 if CSV is unusable.
    """
    file_path = stored_path(file_id)
    try:
        return parse_csv(file_path.read_text(encoding="utf-8-sig"))
    except CriticalInputError as e:
        raise HTTPException(status_code=400, detail=f"Error reading CSV: {e.message}")
    except UnicodeDecodeError as e:
        raise HTTPException(status_code=400, detail=f"Error reading CSV: {str(e)}")


def store_csv(df: pd.DataFrame) -> str:
    """Save a table under a new file_id and return the id."""
    file_id = str(uuid.uuid4())
    file_path = TEMP_DIR / f"{file_id}.csv"
    file_path.write_text(serialize_csv(df), encoding="utf-8")
    FILE_STORAGE[file_id] = str(file_path)
    return file_id


# ============================================
# File Routes
# ============================================

@app.get("/")
async def root():
    """Health check endpoint. Returns 200 if the server is running."""
    return {"status": "ok", "message": "CSV Cleaner API is running"}


@app.post("/upload", response_model=UploadResponse)
async def upload_file(file: UploadFile = File(...)):
    """
    Upload a CSV file for processing.

    Returns:
        file_id: UUID to reference this file in other endpoints
        rows / columns: Shape of the parsed table

    Raises:
        400: File is not CSV, not UTF-8, empty, or malformed
        500: Server error during upload
    """
    if not file.filename or not file.filename.lower().endswith(".csv"):
        raise HTTPException(status_code=400, detail="Only CSV files are accepted")

    contents = await file.read()
    try:
        text = contents.decode("utf-8-sig")
        df = parse_csv(text)
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="CSV file must be UTF-8 encoded")
    except CriticalInputError as e:
        raise HTTPException(status_code=400, detail=e.message)

    file_id = str(uuid.uuid4())
    file_path = TEMP_DIR / f"{file_id}.csv"
    try:
        file_path.write_text(text, encoding="utf-8")
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Error uploading file: {str(e)}")
    FILE_STORAGE[file_id] = str(file_path)

    logger.info("Stored upload %s as %s (%d rows)", file.filename, file_id, len(df))
    return UploadResponse(
        file_id=file_id,
        filename=file.filename,
        rows=len(df),
        columns=[str(c) for c in df.columns],
        message="File uploaded successfully",
    )


@app.get("/download/{file_id}")
async def download_file(file_id: str):
    """Download a stored CSV file by file_id."""
    file_path = stored_path(file_id)

    return FileResponse(
        path=file_path,
        media_type="text/csv",
        filename=f"cleaned_{file_id}.csv",
    )


@app.delete("/files/{file_id}")
async def delete_file(file_id: str):
    """Drop a stored CSV and forget its id."""
    path = stored_path(file_id, must_exist=False)
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.error("Could not remove %s: %s", path, e)
        raise HTTPException(status_code=500, detail=f"Could not remove stored CSV: {e}")
    FILE_STORAGE.pop(file_id, None)
    logger.info("Deleted stored file %s", file_id)

    return {"status": "ok", "file_id": file_id, "message": f"Deleted {file_id}"}


# ============================================
# Cleaning Routes
# ============================================

@app.post("/suggestions", response_model=SuggestionsResponse)
async def suggest_actions(request: SuggestionsRequest):
    """
    Ask the model for cleaning suggestions on a stored file.

    Nothing is modified. Requires OPENAI_API_KEY; without it the response
    has success=False and an error message.
    """
    df = load_csv(request.file_id)

    try:
        result = generate_cleaning_suggestions(
            df,
            instructions=request.instructions,
            model=request.model or config.DEFAULT_MODEL,
        )
    except Exception as e:
        logger.exception("Suggestion generation failed")
        raise HTTPException(status_code=500, detail=f"Error generating suggestions: {str(e)}")

    return SuggestionsResponse(
        file_id=request.file_id,
        success=result.get("success", False),
        suggestions=result.get("suggestions", []),
        overall_summary=result.get("overall_summary", ""),
        ai_model=result.get("model_used"),
        error=result.get("error"),
    )


@app.post("/apply-actions", response_model=CleaningResponse)
async def apply_reviewed_actions(request: ApplyActionsRequest):
    """
    Apply approved actions and store the result as a new file.

    Row removals run first; row numbers in the other actions refer to the
    table after removal. Failed actions are listed in report.errors.
    """
    df = load_csv(request.file_id)

    try:
        cleaned_df, report = apply_actions(df, request.actions)
        cleaned_file_id = store_csv(cleaned_df)
    except Exception as e:
        logger.exception("Applying actions failed")
        raise HTTPException(status_code=500, detail=f"Error applying actions: {str(e)}")

    return CleaningResponse(
        original_file_id=request.file_id,
        cleaned_file_id=cleaned_file_id,
        report=report,
    )


@app.post("/command", response_model=CleaningResponse)
async def run_text_command(request: CommandRequest):
    """Interpret one free-text cleaning command and store the result as a new file."""
    df = load_csv(request.file_id)

    try:
        cleaned_df, report = run_command(df, request.command)
        cleaned_file_id = store_csv(cleaned_df)
    except Exception as e:
        logger.exception("Command failed")
        raise HTTPException(status_code=500, detail=f"Error running command: {str(e)}")

    return CleaningResponse(
        original_file_id=request.file_id,
        cleaned_file_id=cleaned_file_id,
        report=report,
    )


@app.post("/sql", response_model=CleaningResponse)
async def run_sql_statement(request: SqlRequest):
    """
    Run a restricted UPDATE/DELETE statement and store the result as a new file.

    SELECT statements modify nothing: they are passed to the suggestion
    generator as instructions and the suggestions are returned instead.
    """
    df = load_csv(request.file_id)

    if statement_kind(request.statement) == StatementKind.SELECT:
        result = generate_cleaning_suggestions(df, instructions=request.statement)
        report = CleaningReport(summary=READ_ONLY_WARNING, warnings=[READ_ONLY_WARNING])
        if not result.get("success", False):
            report.errors.append(result.get("error") or "Suggestion generation failed")
        return CleaningResponse(
            original_file_id=request.file_id,
            report=report,
            read_only=True,
            suggestions=result.get("suggestions", []),
        )

    try:
        cleaned_df, report = execute_statement(df, request.statement)
        cleaned_file_id = store_csv(cleaned_df)
    except Exception as e:
        logger.exception("SQL statement failed")
        raise HTTPException(status_code=500, detail=f"Error running SQL statement: {str(e)}")

    return CleaningResponse(
        original_file_id=request.file_id,
        cleaned_file_id=cleaned_file_id,
        report=report,
    )
