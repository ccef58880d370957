"""
Unit tests for monthly budget enforcement.

Tests the soft gate, additive recording and month rollover.
"""

import os
import tempfile
from datetime import datetime, timezone

import pytest

from style_guard.core.budget import BudgetLedger, month_key
from style_guard.core.errors import ValidationError
from style_guard.core.pricing import MODEL_IDS, ModelTier
from style_guard.storage.repository import initialize_schema

HAIKU = MODEL_IDS[ModelTier.HAIKU]


class _Clock:
    """Settable clock for month rollover tests."""

    def __init__(self, moment: datetime):
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment


class TestBudgetLedger:
    """Test budget checks against the usage ledger."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)
        self.clock = _Clock(datetime(2026, 2, 27, 23, 59, tzinfo=timezone.utc))
        self.ledger = BudgetLedger(db_path=self.db_path, clock=self.clock)

    def teardown_method(self):
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_month_key(self):
        assert month_key(datetime(2026, 2, 1)) == "2026-02"
        assert month_key(datetime(2025, 12, 31)) == "2025-12"

    def test_fresh_org_is_within_budget(self):
        status = self.ledger.check_budget("org-1", 1000)
        assert status.within_budget is True
        assert status.used == 0
        assert status.remaining == 1000

    def test_soft_overshoot(self):
        """Verify a request admitted at 950/1000 may push the ledger past the limit."""
        self.ledger.record_usage("org-1", 900, 50, HAIKU)

        assert self.ledger.require_budget("org-1", 1000).remaining == 50

        entry = self.ledger.record_usage("org-1", 80, 20, HAIKU)
        assert entry.total_tokens == 1050

        status = self.ledger.check_budget("org-1", 1000)
        assert status.within_budget is False
        assert status.remaining == 0

        with pytest.raises(ValidationError, match="1050/1000"):
            self.ledger.require_budget("org-1", 1000)

    def test_exactly_at_limit_is_exhausted(self):
        self.ledger.record_usage("org-1", 600, 400, HAIKU)
        assert self.ledger.check_budget("org-1", 1000).within_budget is False

    def test_record_usage_prices_tokens(self):
        entry = self.ledger.record_usage("org-1", 1_000_000, 0, HAIKU)
        assert entry.estimated_cost == pytest.approx(0.80)
        assert entry.request_count == 1

    def test_record_usage_unknown_model(self):
        with pytest.raises(ValueError):
            self.ledger.record_usage("org-1", 10, 10, "gpt-4")

    def test_month_rollover_resets_budget(self):
        self.ledger.record_usage("org-1", 900, 100, HAIKU)
        assert self.ledger.check_budget("org-1", 1000).within_budget is False

        self.clock.moment = datetime(2026, 3, 1, 0, 0, 1, tzinfo=timezone.utc)

        status = self.ledger.check_budget("org-1", 1000)
        assert status.within_budget is True
        assert status.used == 0
        assert self.ledger.current_month() == "2026-03"

    def test_usage_report(self):
        self.clock.moment = datetime(2026, 1, 15, tzinfo=timezone.utc)
        self.ledger.record_usage("org-1", 300, 100, HAIKU)
        self.clock.moment = datetime(2026, 2, 15, tzinfo=timezone.utc)
        self.ledger.record_usage("org-1", 200, 50, HAIKU)

        report = self.ledger.usage_report("org-1", monthly_budget=1000)

        assert report.current_month == "2026-02"
        assert report.tokens_used == 250
        assert report.budget_remaining == 750
        assert report.percentage_used == 25
        assert [e.month_year for e in report.history] == ["2026-02", "2026-01"]

    def test_usage_report_without_current_month(self):
        self.clock.moment = datetime(2026, 1, 15, tzinfo=timezone.utc)
        self.ledger.record_usage("org-1", 300, 100, HAIKU)
        self.clock.moment = datetime(2026, 2, 15, tzinfo=timezone.utc)

        report = self.ledger.usage_report("org-1", monthly_budget=1000)

        assert report.tokens_used == 0
        assert report.percentage_used == 0
        assert len(report.history) == 1
