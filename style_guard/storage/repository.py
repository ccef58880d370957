"""
Repository functions for data access.

Handles organization settings, suggestion records and the monthly usage
ledger. Review transitions are single conditional UPDATE statements so that
concurrent reviewers race at the storage layer, not in application code.
"""

import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .db import DEFAULT_DB_PATH, get_connection
from .models import (
    NormalizableField,
    NormalizationSuggestion,
    SuggestionStatus,
    UsageLedgerEntry,
)

logger = logging.getLogger(__name__)

_SUGGESTION_COLUMNS = """
    id, org_id, field_name, original_text, normalized_text, diff_summary,
    status, model, prompt_version, input_tokens, output_tokens,
    requested_by, created_at, inspection_id, inspection_item_id, defect_id,
    style_preset, no_changes_needed, reviewed_by, reviewed_at, rejected_reason
"""

HISTORY_SORT_COLUMNS = ("created_at", "field_name", "status")
SORT_DIRECTIONS = ("asc", "desc")

_USAGE_COLUMNS = """
    org_id, month_year, input_tokens, output_tokens, request_count,
    estimated_cost, updated_at
"""


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the settings, suggestion and usage tables if they don't exist.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS organization_settings (
                org_id TEXT PRIMARY KEY,
                settings TEXT NOT NULL DEFAULT '{}',
                updated_at TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS normalization_suggestion (
                id TEXT PRIMARY KEY,
                org_id TEXT NOT NULL,
                field_name TEXT NOT NULL CHECK (field_name IN (
                    'defect_description', 'remedial_action',
                    'inspector_summary', 'condition_observation'
                )),
                original_text TEXT NOT NULL,
                normalized_text TEXT NOT NULL,
                diff_summary TEXT,
                status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN (
                    'pending', 'accepted', 'rejected'
                )),
                model TEXT NOT NULL,
                prompt_version TEXT NOT NULL,
                input_tokens INTEGER NOT NULL DEFAULT 0,
                output_tokens INTEGER NOT NULL DEFAULT 0,
                requested_by TEXT NOT NULL,
                created_at TEXT NOT NULL,
                inspection_id TEXT,
                inspection_item_id TEXT,
                defect_id TEXT,
                style_preset TEXT,
                no_changes_needed INTEGER NOT NULL DEFAULT 0,
                reviewed_by TEXT,
                reviewed_at TEXT,
                rejected_reason TEXT
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_suggestion_org_status
            ON normalization_suggestion (org_id, status)
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_suggestion_org_created
            ON normalization_suggestion (org_id, created_at DESC)
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS normalization_usage (
                org_id TEXT NOT NULL,
                month_year TEXT NOT NULL,
                input_tokens INTEGER NOT NULL DEFAULT 0,
                output_tokens INTEGER NOT NULL DEFAULT 0,
                request_count INTEGER NOT NULL DEFAULT 0,
                estimated_cost REAL NOT NULL DEFAULT 0,
                updated_at TEXT NOT NULL,
                PRIMARY KEY (org_id, month_year)
            )
        """)
        conn.commit()
    finally:
        conn.close()


# Organization settings

def save_org_settings(
    org_id: str,
    settings: Dict[str, Any],
    db_path: str = DEFAULT_DB_PATH
) -> None:
    """Store (or replace) an organization's settings blob.

    Args:
        org_id: Organization identifier
        settings: JSON-serializable settings blob
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            INSERT INTO organization_settings (org_id, settings, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT (org_id) DO UPDATE SET
                settings = excluded.settings,
                updated_at = excluded.updated_at
        """, (org_id, json.dumps(settings), datetime.now().isoformat()))
        conn.commit()
    finally:
        conn.close()


def fetch_org_settings(org_id: str, db_path: str = DEFAULT_DB_PATH) -> Optional[Any]:
    """Fetch an organization's raw settings blob.

    The blob is returned as decoded, without validation; an undecodable blob
    is returned as an empty dict so resolution falls back to defaults.

    Returns:
        The decoded blob, or None if the organization is unknown
    """
    conn = get_connection(db_path)
    try:
        row = conn.execute(
            "SELECT settings FROM organization_settings WHERE org_id = ?",
            (org_id,)
        ).fetchone()
    finally:
        conn.close()

    if row is None:
        return None
    try:
        return json.loads(row[0])
    except (TypeError, ValueError):
        logger.warning("Undecodable settings blob for org %s, using defaults", org_id)
        return {}


# Suggestions

def _row_to_suggestion(row: tuple) -> NormalizationSuggestion:
    return NormalizationSuggestion(
        id=row[0],
        org_id=row[1],
        field_name=NormalizableField(row[2]),
        original_text=row[3],
        normalized_text=row[4],
        diff_summary=row[5],
        status=SuggestionStatus(row[6]),
        model=row[7],
        prompt_version=row[8],
        input_tokens=row[9],
        output_tokens=row[10],
        requested_by=row[11],
        created_at=datetime.fromisoformat(row[12]),
        inspection_id=row[13],
        inspection_item_id=row[14],
        defect_id=row[15],
        style_preset=row[16],
        no_changes_needed=bool(row[17]),
        reviewed_by=row[18],
        reviewed_at=datetime.fromisoformat(row[19]) if row[19] else None,
        rejected_reason=row[20]
    )


def insert_suggestion(
    suggestion: NormalizationSuggestion,
    db_path: str = DEFAULT_DB_PATH
) -> None:
    """Insert a new suggestion record.

    Args:
        suggestion: The suggestion to persist
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute(f"""
            INSERT INTO normalization_suggestion ({_SUGGESTION_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            suggestion.id,
            suggestion.org_id,
            suggestion.field_name.value,
            suggestion.original_text,
            suggestion.normalized_text,
            suggestion.diff_summary,
            suggestion.status.value,
            suggestion.model,
            suggestion.prompt_version,
            suggestion.input_tokens,
            suggestion.output_tokens,
            suggestion.requested_by,
            suggestion.created_at.isoformat(),
            suggestion.inspection_id,
            suggestion.inspection_item_id,
            suggestion.defect_id,
            suggestion.style_preset,
            int(suggestion.no_changes_needed),
            suggestion.reviewed_by,
            suggestion.reviewed_at.isoformat() if suggestion.reviewed_at else None,
            suggestion.rejected_reason
        ))
        conn.commit()
    finally:
        conn.close()


def list_suggestions(
    org_id: str,
    status: Optional[SuggestionStatus] = None,
    field_name: Optional[NormalizableField] = None,
    requested_by: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    sort_by: str = "created_at",
    sort_direction: str = "desc",
    db_path: str = DEFAULT_DB_PATH
) -> List[NormalizationSuggestion]:
    """List an organization's suggestions, newest first by default.

    Args:
        org_id: Organization identifier
        status: Optional filter on review status
        field_name: Optional filter on field
        requested_by: Optional filter on requesting user
        limit: Maximum number of records to return
        offset: Number of records to skip
        sort_by: One of HISTORY_SORT_COLUMNS
        sort_direction: "asc" or "desc"
        db_path: Path to SQLite database file

    Returns:
        List of suggestions in the requested order, ties broken newest first

    Raises:
        ValueError: If the sort column or direction is not allowed
    """
    if sort_by not in HISTORY_SORT_COLUMNS:
        raise ValueError(f"sort_by must be one of: {list(HISTORY_SORT_COLUMNS)}")
    if sort_direction not in SORT_DIRECTIONS:
        raise ValueError(f"sort_direction must be one of: {list(SORT_DIRECTIONS)}")

    conn = get_connection(db_path)
    try:
        query = f"SELECT {_SUGGESTION_COLUMNS} FROM normalization_suggestion"
        conditions = ["org_id = ?"]
        params: List[Any] = [org_id]

        if status:
            conditions.append("status = ?")
            params.append(status.value)
        if field_name:
            conditions.append("field_name = ?")
            params.append(field_name.value)
        if requested_by:
            conditions.append("requested_by = ?")
            params.append(requested_by)

        query += " WHERE " + " AND ".join(conditions)
        # Column and direction are whitelisted above
        query += f" ORDER BY {sort_by} {sort_direction.upper()}, created_at DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        cursor = conn.execute(query, params)
        return [_row_to_suggestion(row) for row in cursor.fetchall()]
    finally:
        conn.close()


def transition_suggestion(
    suggestion_id: str,
    org_id: str,
    new_status: SuggestionStatus,
    reviewed_by: str,
    reviewed_at: datetime,
    rejected_reason: Optional[str] = None,
    db_path: str = DEFAULT_DB_PATH
) -> Optional[NormalizationSuggestion]:
    """Move a suggestion out of PENDING with one conditional update.

    Only a row that is still PENDING at the moment of the update is affected.
    A caller that loses a concurrent race sees zero affected rows.

    Returns:
        The reviewed suggestion, or None if no pending row matched
    """
    if new_status is SuggestionStatus.PENDING:
        raise ValueError("A suggestion cannot transition back to pending")

    conn = get_connection(db_path)
    try:
        cursor = conn.execute("""
            UPDATE normalization_suggestion
            SET status = ?, reviewed_by = ?, reviewed_at = ?, rejected_reason = ?
            WHERE id = ? AND org_id = ? AND status = 'pending'
        """, (
            new_status.value,
            reviewed_by,
            reviewed_at.isoformat(),
            rejected_reason,
            suggestion_id,
            org_id
        ))
        if cursor.rowcount == 0:
            conn.rollback()
            return None

        row = conn.execute(f"""
            SELECT {_SUGGESTION_COLUMNS} FROM normalization_suggestion
            WHERE id = ? AND org_id = ?
        """, (suggestion_id, org_id)).fetchone()
        conn.commit()
        return _row_to_suggestion(row)
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


# Usage ledger

def _row_to_usage(row: tuple) -> UsageLedgerEntry:
    return UsageLedgerEntry(
        org_id=row[0],
        month_year=row[1],
        input_tokens=row[2],
        output_tokens=row[3],
        request_count=row[4],
        estimated_cost=float(row[5]),
        updated_at=datetime.fromisoformat(row[6]) if row[6] else None
    )


def upsert_usage(
    org_id: str,
    month_year: str,
    input_tokens: int,
    output_tokens: int,
    estimated_cost: Decimal,
    updated_at: datetime,
    db_path: str = DEFAULT_DB_PATH
) -> UsageLedgerEntry:
    """Additively record one request into the (org, month) ledger row.

    The row is created at zero on first use and only ever incremented.

    Returns:
        The ledger row after the increment
    """
    if input_tokens < 0 or output_tokens < 0:
        raise ValueError("token counts must be >= 0")

    conn = get_connection(db_path)
    try:
        conn.execute("""
            INSERT INTO normalization_usage
            (org_id, month_year, input_tokens, output_tokens, request_count,
             estimated_cost, updated_at)
            VALUES (?, ?, ?, ?, 1, ?, ?)
            ON CONFLICT (org_id, month_year) DO UPDATE SET
                input_tokens = normalization_usage.input_tokens + excluded.input_tokens,
                output_tokens = normalization_usage.output_tokens + excluded.output_tokens,
                request_count = normalization_usage.request_count + 1,
                estimated_cost = ROUND(normalization_usage.estimated_cost + excluded.estimated_cost, 4),
                updated_at = excluded.updated_at
        """, (
            org_id,
            month_year,
            input_tokens,
            output_tokens,
            float(estimated_cost),
            updated_at.isoformat()
        ))
        row = conn.execute(f"""
            SELECT {_USAGE_COLUMNS} FROM normalization_usage
            WHERE org_id = ? AND month_year = ?
        """, (org_id, month_year)).fetchone()
        conn.commit()
        return _row_to_usage(row)
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def fetch_usage(
    org_id: str,
    month_year: str,
    db_path: str = DEFAULT_DB_PATH
) -> Optional[UsageLedgerEntry]:
    """Fetch the ledger row for one organization and month, if any."""
    conn = get_connection(db_path)
    try:
        row = conn.execute(f"""
            SELECT {_USAGE_COLUMNS} FROM normalization_usage
            WHERE org_id = ? AND month_year = ?
        """, (org_id, month_year)).fetchone()
        return _row_to_usage(row) if row else None
    finally:
        conn.close()


def fetch_usage_history(
    org_id: str,
    limit: int = 7,
    db_path: str = DEFAULT_DB_PATH
) -> List[UsageLedgerEntry]:
    """Fetch the most recent ledger rows for an organization, newest first."""
    conn = get_connection(db_path)
    try:
        cursor = conn.execute(f"""
            SELECT {_USAGE_COLUMNS} FROM normalization_usage
            WHERE org_id = ?
            ORDER BY month_year DESC
            LIMIT ?
        """, (org_id, limit))
        return [_row_to_usage(row) for row in cursor.fetchall()]
    finally:
        conn.close()
