"""
Monthly token budget enforcement.

Tracks token consumption and estimated cost per organization and calendar
month, and gates new requests against the organization's monthly budget.

The gate is soft: check_budget and record_usage are separate storage calls,
so concurrent requests from one organization may each pass the check before
either records usage. The ledger can therefore overshoot the limit by the
cost of the requests in flight at the time.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .errors import ValidationError
from .pricing import calculate_cost
from .token_counter import TokenUsage
from ..storage.db import DEFAULT_DB_PATH
from ..storage.models import UsageLedgerEntry
from ..storage.repository import fetch_usage, fetch_usage_history, upsert_usage

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def month_key(moment: datetime) -> str:
    """Ledger period key, e.g. '2026-02'."""
    return moment.strftime("%Y-%m")


@dataclass(frozen=True)
class BudgetStatus:
    """Budget position of an organization for the current month."""
    within_budget: bool
    used: int
    remaining: int


@dataclass(frozen=True)
class UsageReport:
    """Current-month budget position plus recent ledger history."""
    current_month: str
    monthly_budget: int
    tokens_used: int
    budget_remaining: int
    percentage_used: int
    history: List[UsageLedgerEntry]


class BudgetLedger:
    """Per-organization, per-month usage ledger backed by the datastore."""

    def __init__(
        self,
        db_path: str = DEFAULT_DB_PATH,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.db_path = db_path
        self.clock = clock or utc_now

    def current_month(self) -> str:
        return month_key(self.clock())

    def check_budget(self, org_id: str, limit: int) -> BudgetStatus:
        """Read the organization's current-month usage against a limit.

        Args:
            org_id: Organization identifier
            limit: Monthly token budget

        Returns:
            BudgetStatus; within_budget holds when used < limit
        """
        entry = fetch_usage(org_id, self.current_month(), self.db_path)
        used = entry.total_tokens if entry else 0
        return BudgetStatus(
            within_budget=used < limit,
            used=used,
            remaining=max(0, limit - used)
        )

    def require_budget(self, org_id: str, limit: int) -> BudgetStatus:
        """Like check_budget, but raise when the budget is exhausted.

        Raises:
            ValidationError: If the organization has used its monthly budget
        """
        status = self.check_budget(org_id, limit)
        if not status.within_budget:
            logger.warning("Monthly token budget exhausted for org %s", org_id)
            raise ValidationError(
                f"Monthly normalization token budget exceeded "
                f"({status.used}/{limit} tokens used)"
            )
        return status

    def record_usage(
        self,
        org_id: str,
        input_tokens: int,
        output_tokens: int,
        model: str
    ) -> UsageLedgerEntry:
        """Add one successful completion to the current month's row.

        Must only be called after a completion succeeded; failed attempts are
        never billed to the organization.

        Args:
            org_id: Organization identifier
            input_tokens: Input tokens reported by the provider
            output_tokens: Output tokens reported by the provider
            model: Provider model id, used to look up rates

        Returns:
            The ledger row after the increment
        """
        usage = TokenUsage(input_tokens=input_tokens, output_tokens=output_tokens)
        cost = calculate_cost(model, usage)
        now = self.clock()
        entry = upsert_usage(
            org_id=org_id,
            month_year=month_key(now),
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            estimated_cost=cost,
            updated_at=now,
            db_path=self.db_path
        )
        logger.debug(
            "Recorded %d tokens for org %s (%s), month total %d",
            usage.total_tokens, org_id, entry.month_year, entry.total_tokens
        )
        return entry

    def usage_report(self, org_id: str, monthly_budget: int, months: int = 7) -> UsageReport:
        """Summarize current-month usage and the most recent ledger rows."""
        current = self.current_month()
        history = fetch_usage_history(org_id, limit=months, db_path=self.db_path)
        used = next((e.total_tokens for e in history if e.month_year == current), 0)
        percentage = round(used / monthly_budget * 100) if monthly_budget > 0 else 0
        return UsageReport(
            current_month=current,
            monthly_budget=monthly_budget,
            tokens_used=used,
            budget_remaining=max(0, monthly_budget - used),
            percentage_used=percentage,
            history=history
        )
