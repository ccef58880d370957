"""
Data models for storage layer.

Defines persisted suggestion records and monthly usage ledger rows.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class NormalizableField(Enum):
    """Inspection text fields that may be normalized."""
    DEFECT_DESCRIPTION = "defect_description"
    REMEDIAL_ACTION = "remedial_action"
    INSPECTOR_SUMMARY = "inspector_summary"
    CONDITION_OBSERVATION = "condition_observation"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


class SuggestionStatus(Enum):
    """Review state of a suggestion. PENDING is the only non-terminal state."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass(frozen=True)
class NormalizationSuggestion:
    """Persisted, reviewable proposal to replace an inspector's text.

    original_text is stored verbatim and never modified. The record leaves
    PENDING at most once, by an explicit reviewer action.
    """
    id: str
    org_id: str
    field_name: NormalizableField
    original_text: str
    normalized_text: str
    diff_summary: str
    status: SuggestionStatus
    model: str
    prompt_version: str
    input_tokens: int
    output_tokens: int
    requested_by: str
    created_at: datetime
    inspection_id: Optional[str] = None
    inspection_item_id: Optional[str] = None
    defect_id: Optional[str] = None
    style_preset: Optional[str] = None
    no_changes_needed: bool = False
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    rejected_reason: Optional[str] = None


@dataclass(frozen=True)
class UsageLedgerEntry:
    """Cumulative normalization usage for one organization and month.

    Totals are only ever incremented; a new month starts a fresh row.
    """
    org_id: str
    month_year: str
    input_tokens: int
    output_tokens: int
    request_count: int
    estimated_cost: float
    updated_at: Optional[datetime] = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens
