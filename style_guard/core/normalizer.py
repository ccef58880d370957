"""
Normalization orchestration and review workflow.

Composes style resolution, budget gating, reference protection, the
completion client and response parsing into single-field and batch
operations. Every result is persisted as a PENDING suggestion; nothing is
applied until a reviewer accepts it.

Suggestion lifecycle:
    PENDING -> ACCEPTED | REJECTED   (terminal, exactly once)
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Union

from .budget import BudgetLedger, UsageReport, utc_now
from .errors import ValidationError
from .parser import parse_response
from .prompts import PROMPT_VERSION, build_system_prompt, build_user_prompt
from .protection import protect, restore
from .token_counter import TokenUsage
from ..config.style import StyleConfiguration, resolve_style_config
from ..sdk.completion_client import CompletionClient
from ..storage.db import DEFAULT_DB_PATH
from ..storage.models import NormalizableField, NormalizationSuggestion, SuggestionStatus
from ..storage.repository import (
    HISTORY_SORT_COLUMNS,
    SORT_DIRECTIONS,
    fetch_org_settings,
    insert_suggestion,
    list_suggestions,
    transition_suggestion,
)

logger = logging.getLogger(__name__)

# Shorter text is not worth a model call
MIN_INPUT_LENGTH = 10
# Longer text is truncated before it is sent
MAX_INPUT_LENGTH = 5_000
MAX_BATCH_SIZE = 50
MAX_REJECTION_REASON_LENGTH = 500


@dataclass(frozen=True)
class FieldInput:
    """One piece of inspector text to normalize."""
    field_name: Union[NormalizableField, str]
    original_text: str
    inspection_id: Optional[str] = None
    inspection_item_id: Optional[str] = None
    defect_id: Optional[str] = None
    asset_type: Optional[str] = None


@dataclass(frozen=True)
class BatchFailure:
    """A batch item that could not be normalized."""
    index: int
    field_name: str
    error: str


@dataclass(frozen=True)
class BatchResult:
    """Outcome of a batch: successes, failures and token totals."""
    results: List[NormalizationSuggestion]
    failures: List[BatchFailure]
    total_input_tokens: int
    total_output_tokens: int
    budget_remaining: int


@dataclass(frozen=True)
class AcceptedSuggestion:
    """What the caller needs to apply an accepted suggestion elsewhere."""
    normalized_text: str
    field_name: NormalizableField


def _coerce_field(value: Union[NormalizableField, str]) -> NormalizableField:
    if isinstance(value, NormalizableField):
        return value
    try:
        return NormalizableField(value)
    except ValueError:
        valid = [f.value for f in NormalizableField]
        raise ValidationError(f"field_name must be one of: {valid}")


def _text_length(field_input: FieldInput) -> int:
    text = field_input.original_text
    return len(text) if isinstance(text, str) else 0


class Normalizer:
    """Entry point for normalization and review operations.

    Each call is an independent unit of work. The only synchronization is
    the datastore's conditional update used for review transitions. The
    client may be None when only review and reporting operations are used.
    """

    def __init__(
        self,
        client: Optional[CompletionClient],
        db_path: str = DEFAULT_DB_PATH,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.client = client
        self.db_path = db_path
        self.clock = clock or utc_now
        self.ledger = BudgetLedger(db_path=db_path, clock=self.clock)

    # Style

    def load_org_style(self, org_id: str) -> StyleConfiguration:
        """Resolve the stored style configuration of an organization.

        Raises:
            ValidationError: If the organization is unknown or has
                normalization disabled
        """
        raw_settings = fetch_org_settings(org_id, self.db_path)
        if raw_settings is None:
            raise ValidationError(f"Organization not found: {org_id}")

        style = resolve_style_config(raw_settings)
        if not style.enabled:
            raise ValidationError("AI normalization is not enabled for this organization")
        return style

    # Normalization

    def normalize_field(
        self,
        field_input: FieldInput,
        style: StyleConfiguration,
        org_id: str,
        user_id: str
    ) -> NormalizationSuggestion:
        """Normalize one field and persist the result as a pending suggestion.

        Args:
            field_input: Field name, text and optional linkage
            style: Resolved style configuration of the organization
            org_id: Organization identifier
            user_id: Requesting user

        Returns:
            The persisted PENDING suggestion

        Raises:
            ValidationError: If the text is too short, the field is unknown or
                the monthly budget is exhausted
            GatewayError: If the completion service fails or its output is
                unusable
        """
        if self.client is None:
            raise ValueError("A completion client is required to normalize text")
        field_name = _coerce_field(field_input.field_name)
        original_text = field_input.original_text
        if not isinstance(original_text, str) or len(original_text) < MIN_INPUT_LENGTH:
            length = _text_length(field_input)
            raise ValidationError(
                f"Text too short for normalization ({length} chars, "
                f"minimum {MIN_INPUT_LENGTH})"
            )

        text = original_text[:MAX_INPUT_LENGTH]

        self.ledger.require_budget(org_id, style.monthly_token_budget)

        sanitized, tokens = protect(text)

        system_prompt = build_system_prompt(style, field_name)
        user_prompt = build_user_prompt(field_name, sanitized, field_input.asset_type)

        completion = self.client.complete(system_prompt, user_prompt, style.model_preference)
        parsed = parse_response(completion.text)

        if parsed.no_changes_needed:
            normalized_text = original_text
        else:
            normalized_text = restore(parsed.normalized_text, tokens)

        self.ledger.record_usage(
            org_id,
            completion.input_tokens,
            completion.output_tokens,
            completion.model
        )

        suggestion = NormalizationSuggestion(
            id=uuid.uuid4().hex,
            org_id=org_id,
            field_name=field_name,
            original_text=original_text,
            normalized_text=normalized_text,
            diff_summary=parsed.diff_summary,
            status=SuggestionStatus.PENDING,
            model=completion.model,
            prompt_version=PROMPT_VERSION,
            input_tokens=completion.input_tokens,
            output_tokens=completion.output_tokens,
            requested_by=user_id,
            created_at=self.clock(),
            inspection_id=field_input.inspection_id,
            inspection_item_id=field_input.inspection_item_id,
            defect_id=field_input.defect_id,
            style_preset=style.style_preset.value,
            no_changes_needed=parsed.no_changes_needed
        )
        insert_suggestion(suggestion, self.db_path)

        logger.info(
            "Normalization complete: id=%s field=%s model=%s no_changes=%s tokens=%d/%d",
            suggestion.id, field_name.value, completion.model,
            parsed.no_changes_needed, completion.input_tokens, completion.output_tokens
        )
        return suggestion

    def normalize_batch(
        self,
        inputs: Sequence[FieldInput],
        style: StyleConfiguration,
        org_id: str,
        user_id: str
    ) -> BatchResult:
        """Normalize several fields sequentially.

        The budget is checked once up front. Items shorter than the minimum
        length are skipped; an item failing with any exception is recorded
        in ``failures`` and the batch carries on with the next one.

        Raises:
            ValidationError: If the batch is empty, too large or the budget is
                already exhausted
        """
        if not inputs:
            raise ValidationError("Batch must contain at least one field")
        if len(inputs) > MAX_BATCH_SIZE:
            raise ValidationError(f"Maximum {MAX_BATCH_SIZE} fields per batch")

        self.ledger.require_budget(org_id, style.monthly_token_budget)

        results: List[NormalizationSuggestion] = []
        failures: List[BatchFailure] = []
        totals = TokenUsage(input_tokens=0, output_tokens=0)

        for index, field_input in enumerate(inputs):
            if _text_length(field_input) < MIN_INPUT_LENGTH:
                continue

            try:
                suggestion = self.normalize_field(field_input, style, org_id, user_id)
            except Exception as exc:
                # One item never sinks the batch; interrupts still propagate
                field_label = getattr(field_input.field_name, "value", field_input.field_name)
                logger.warning(
                    "Batch normalization of item %d (%s) failed, continuing: %s",
                    index, field_label, exc
                )
                failures.append(BatchFailure(
                    index=index,
                    field_name=str(field_label),
                    error=str(exc)
                ))
                continue

            results.append(suggestion)
            totals = totals + TokenUsage(
                input_tokens=suggestion.input_tokens,
                output_tokens=suggestion.output_tokens
            )

        remaining = self.ledger.check_budget(org_id, style.monthly_token_budget).remaining

        return BatchResult(
            results=results,
            failures=failures,
            total_input_tokens=totals.input_tokens,
            total_output_tokens=totals.output_tokens,
            budget_remaining=remaining
        )

    # Review

    def accept(self, suggestion_id: str, org_id: str, user_id: str) -> AcceptedSuggestion:
        """Accept a pending suggestion.

        Returns:
            The normalized text and field name, for the caller to apply

        Raises:
            ValidationError: If the suggestion is missing or already reviewed
        """
        reviewed = transition_suggestion(
            suggestion_id,
            org_id,
            SuggestionStatus.ACCEPTED,
            reviewed_by=user_id,
            reviewed_at=self.clock(),
            db_path=self.db_path
        )
        if reviewed is None:
            raise ValidationError("Normalization record not found or already reviewed")

        logger.info("Suggestion %s accepted by %s", suggestion_id, user_id)
        return AcceptedSuggestion(
            normalized_text=reviewed.normalized_text,
            field_name=reviewed.field_name
        )

    def reject(self, suggestion_id: str, org_id: str, user_id: str, reason: str) -> None:
        """Reject a pending suggestion. The original text stays authoritative.

        Raises:
            ValidationError: If the reason is empty, or the suggestion is
                missing or already reviewed
        """
        if not isinstance(reason, str) or not reason.strip():
            raise ValidationError("A rejection reason is required")
        reason = reason.strip()
        if len(reason) > MAX_REJECTION_REASON_LENGTH:
            raise ValidationError(
                f"Rejection reason must be at most {MAX_REJECTION_REASON_LENGTH} characters"
            )

        reviewed = transition_suggestion(
            suggestion_id,
            org_id,
            SuggestionStatus.REJECTED,
            reviewed_by=user_id,
            reviewed_at=self.clock(),
            rejected_reason=reason,
            db_path=self.db_path
        )
        if reviewed is None:
            raise ValidationError("Normalization record not found or already reviewed")

        logger.info("Suggestion %s rejected by %s", suggestion_id, user_id)

    # Reporting

    def history(
        self,
        org_id: str,
        status: Optional[str] = None,
        field_name: Optional[str] = None,
        requested_by: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
        sort_by: str = "created_at",
        sort_direction: str = "desc"
    ) -> List[NormalizationSuggestion]:
        """List an organization's suggestions, newest first by default.

        Unrecognized status or field filters are ignored, and an unknown sort
        column or direction falls back to creation time, descending.
        """
        if sort_by not in HISTORY_SORT_COLUMNS:
            sort_by = "created_at"
        if sort_direction not in SORT_DIRECTIONS:
            sort_direction = "desc"

        status_filter = None
        if status:
            try:
                status_filter = SuggestionStatus(status)
            except ValueError:
                status_filter = None

        field_filter = None
        if field_name:
            try:
                field_filter = NormalizableField(field_name)
            except ValueError:
                field_filter = None

        return list_suggestions(
            org_id,
            status=status_filter,
            field_name=field_filter,
            requested_by=requested_by,
            limit=max(1, min(limit, 200)),
            offset=max(0, offset),
            sort_by=sort_by,
            sort_direction=sort_direction,
            db_path=self.db_path
        )

    def usage(self, org_id: str, style: StyleConfiguration) -> UsageReport:
        """Current-month usage against the organization's budget."""
        return self.ledger.usage_report(org_id, style.monthly_token_budget)
