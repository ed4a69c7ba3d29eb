"""
Tests for Kakeibo Core

Test strategy:
1. Unit tests for individual components (models, validators, effects)
2. Integration tests for flows against a real SQLite file per test
3. No shared state between tests (fresh store per test)
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from kakeibo_core.exceptions import MigrationError
from kakeibo_core.models.entities import (
    Budget,
    BudgetAlertConfig,
    Goal,
    GoalStatus,
    Transaction,
    TransactionCreate,
    TransactionPatch,
    TransactionType,
)
from kakeibo_core.models.audit import (
    LedgerEvent,
    LedgerEventBuilder,
    LedgerEventType,
    LedgerSeverity,
)
from kakeibo_core.models.backup import ExportData
from kakeibo_core.models.results import MigrationCounts, MigrationResult


class TestTransactionModels:
    """Tests for transaction Pydantic models."""

    def test_expense_creation(self):
        """Test Transaction model creation."""
        txn = Transaction(
            owner_id="user-1",
            type=TransactionType.EXPENSE,
            amount=Decimal("30"),
            account_id="acc-1",
            category_id="expense-food",
        )
        assert txn.amount == Decimal("30")
        assert txn.id

    def test_rejects_non_positive_amount(self):
        """Test that zero and negative amounts are rejected."""
        for amount in (Decimal("0"), Decimal("-5")):
            with pytest.raises(ValueError):
                Transaction(
                    owner_id="user-1",
                    type=TransactionType.EXPENSE,
                    amount=amount,
                    account_id="acc-1",
                    category_id="expense-food",
                )

    def test_expense_requires_category(self):
        """Test that expenses and income need a category."""
        with pytest.raises(ValidationError):
            TransactionCreate(
                type=TransactionType.INCOME,
                amount=Decimal("10"),
                account_id="acc-1",
            )

    def test_transfer_requires_distinct_destination(self):
        """Test transfer destination rules."""
        with pytest.raises(ValidationError):
            TransactionCreate(type=TransactionType.TRANSFER, amount=Decimal("10"), account_id="a")
        with pytest.raises(ValidationError):
            TransactionCreate(
                type=TransactionType.TRANSFER,
                amount=Decimal("10"),
                account_id="a",
                to_account_id="a",
            )

    def test_goal_event_requires_goal(self):
        """Test that goal contributions need a goal id."""
        with pytest.raises(ValidationError):
            TransactionCreate(
                type=TransactionType.GOAL_CONTRIBUTION,
                amount=Decimal("10"),
                account_id="a",
            )

    def test_aware_dates_are_normalized_to_utc(self):
        """Test that timezone-aware dates are stored as naive UTC."""
        aware = datetime(2024, 3, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        txn = Transaction(
            owner_id="user-1",
            type=TransactionType.EXPENSE,
            amount=Decimal("1"),
            account_id="acc-1",
            category_id="expense-food",
            date=aware,
        )
        assert txn.date == datetime(2024, 3, 1, 10, 0)
        assert txn.date.tzinfo is None

    def test_whitespace_is_stripped(self):
        """Test that string fields are stripped."""
        txn = Transaction(
            owner_id="user-1",
            type=TransactionType.EXPENSE,
            amount=Decimal("1"),
            account_id="acc-1",
            category_id="  expense-food  ",
        )
        assert txn.category_id == "expense-food"


class TestTransactionPatch:
    """Tests for partial transaction updates."""

    def test_only_set_fields_are_changes(self):
        """Test that unset fields are not part of the patch."""
        patch = TransactionPatch(amount=Decimal("50"))
        assert patch.changes() == {"amount": Decimal("50")}

    def test_explicit_none_clears_optional_fields(self):
        """Test that None clears optional references but not required fields."""
        patch = TransactionPatch(goal_id=None, category_id=None, description=None)
        assert patch.changes() == {"goal_id": None}


class TestBudgetAndGoalModels:
    """Tests for budget and goal models."""

    def test_alert_thresholds_are_sorted_and_unique(self):
        """Test alert threshold normalization."""
        alerts = BudgetAlertConfig(thresholds=[100, 50, 80, 50])
        assert alerts.thresholds == [50, 80, 100]

    def test_negative_threshold_rejected(self):
        """Test that negative thresholds are rejected."""
        with pytest.raises(ValidationError):
            BudgetAlertConfig(thresholds=[-10])

    def test_budget_end_before_start_rejected(self):
        """Test budget date validation."""
        with pytest.raises(ValidationError):
            Budget(
                owner_id="user-1",
                name="Food",
                category_ids=["expense-food"],
                amount=Decimal("200"),
                start_date=datetime(2024, 2, 1),
                end_date=datetime(2024, 1, 1),
            )

    def test_budget_requires_a_category(self):
        """Test that a budget covers at least one category."""
        with pytest.raises(ValidationError):
            Budget(
                owner_id="user-1",
                name="Food",
                category_ids=[],
                amount=Decimal("200"),
                start_date=datetime(2024, 1, 1),
            )

    def test_goal_defaults(self):
        """Test Goal default values."""
        goal = Goal(owner_id="user-1", name="Trip", target_amount=Decimal("1000"))
        assert goal.current_amount == Decimal("0")
        assert goal.status == GoalStatus.ACTIVE


class TestLedgerEventModels:
    """Tests for ledger event models."""

    def test_event_creation(self):
        """Test LedgerEvent creation."""
        event = LedgerEvent(
            event_type=LedgerEventType.TRANSACTION_CREATED,
            description="Test event",
        )
        assert event.event_id is not None
        assert event.severity == LedgerSeverity.INFO

    def test_to_log_dict(self):
        """Test conversion to log dictionary."""
        correlation_id = uuid4()
        event = LedgerEvent(
            event_type=LedgerEventType.ACCOUNT_OPENED,
            owner_id="user-1",
            entity_id="acc-1",
            correlation_id=correlation_id,
            description="Account opened",
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "account_opened"
        assert log_dict["owner_id"] == "user-1"
        assert log_dict["correlation_id"] == str(correlation_id)

    def test_transaction_created_builder(self):
        """Test the transaction_created builder records the balance deltas."""
        txn = Transaction(
            owner_id="user-1",
            type=TransactionType.EXPENSE,
            amount=Decimal("30"),
            account_id="acc-1",
            category_id="expense-food",
        )
        event = LedgerEventBuilder.transaction_created(txn, {"acc-1": Decimal("-30")})
        assert event.entity_id == txn.id
        assert event.details["balance_deltas"] == {"acc-1": "-30"}

    def test_migration_failed_builder(self):
        """Test the migration_failed builder."""
        event = LedgerEventBuilder.migration_failed(
            "guest-1", "user-1", "transactions", "boom"
        )
        assert event.severity == LedgerSeverity.ERROR
        assert event.details["collection"] == "transactions"
        assert event.error_message == "boom"


class TestResultModels:
    """Tests for migration result and backup models."""

    def test_migration_counts_total(self):
        """Test MigrationCounts total."""
        counts = MigrationCounts(transactions=3, accounts=1, categories=2)
        assert counts.total == 6

    def test_failed_result_raises(self):
        """Test raise_for_status on a failed migration."""
        result = MigrationResult(success=False, error="boom", failed_collection="goals")
        with pytest.raises(MigrationError) as exc_info:
            result.raise_for_status()
        assert exc_info.value.collection == "goals"

    def test_successful_result_does_not_raise(self):
        """Test raise_for_status on a successful migration."""
        MigrationResult(success=True).raise_for_status()

    def test_export_record_counts(self):
        """Test ExportData record counts cover all collections."""
        counts = ExportData().record_counts()
        assert set(counts) == {
            "users", "accounts", "categories", "transactions", "budgets", "goals"
        }
        assert sum(counts.values()) == 0
