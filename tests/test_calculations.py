"""Tests for budget progress, goal progress and statistics."""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from kakeibo_core.calculations import (
    calculate_account_balances,
    calculate_active_alerts,
    calculate_average_transaction,
    calculate_budget_progress,
    calculate_goal_progress,
    calculate_monthly_stats,
    calculate_net_worth,
    calculate_required_monthly_contribution,
    calculate_spending_by_category,
    calculate_transaction_counts,
    month_bounds,
)
from kakeibo_core.models.entities import (
    Account,
    AccountType,
    Budget,
    BudgetAlertConfig,
    Goal,
    GoalStatus,
    GoalType,
    Transaction,
    TransactionCreate,
    TransactionType,
)


START = datetime(2024, 3, 1)
END = datetime(2024, 3, 31)


def make_budget(amount="200", **kwargs):
    kwargs.setdefault("start_date", START)
    kwargs.setdefault("end_date", END)
    return Budget(
        owner_id="user-1",
        name="Food",
        category_ids=["expense-food"],
        amount=Decimal(amount),
        **kwargs,
    )


def make_txn(amount, category_id="expense-food", date=datetime(2024, 3, 10),
             transaction_type=TransactionType.EXPENSE):
    return Transaction(
        owner_id="user-1",
        type=transaction_type,
        amount=Decimal(amount),
        account_id="acc-1",
        category_id=category_id,
        date=date,
    )


class TestBudgetProgress:
    """Tests for calculate_budget_progress."""

    def test_spending_below_first_threshold(self):
        """Test 80 of 200 spent: 40%, no alerts."""
        progress = calculate_budget_progress(
            make_budget(), [make_txn("80")], now=datetime(2024, 3, 16)
        )
        assert progress.spent == Decimal("80")
        assert progress.remaining == Decimal("120")
        assert progress.percentage == Decimal("40")
        assert progress.active_alerts == []
        assert not progress.is_warning
        assert not progress.is_over_budget

    def test_only_matching_expenses_in_window_count(self):
        """Test filtering by type, category and window."""
        transactions = [
            make_txn("50"),
            make_txn("30", category_id="expense-travel"),
            make_txn("20", transaction_type=TransactionType.INCOME),
            make_txn("70", date=datetime(2024, 4, 2)),
            make_txn("10", date=datetime(2024, 2, 28)),
        ]
        progress = calculate_budget_progress(make_budget(), transactions, now=END)
        assert progress.spent == Decimal("50")

    def test_alerts_highest_first(self):
        """Test 170 of 200 spent reaches the 80 and 50 thresholds."""
        progress = calculate_budget_progress(
            make_budget(), [make_txn("170")], now=datetime(2024, 3, 16)
        )
        assert progress.active_alerts == [80, 50]
        assert progress.is_warning

    def test_over_budget(self):
        """Test overspending."""
        progress = calculate_budget_progress(
            make_budget(), [make_txn("150"), make_txn("100")], now=datetime(2024, 3, 16)
        )
        assert progress.is_over_budget
        assert progress.remaining == Decimal("-50")
        assert 100 in progress.active_alerts
        assert not progress.is_warning

    def test_disabled_alerts(self):
        """Test that disabled alerts never fire."""
        budget = make_budget(alerts=BudgetAlertConfig(enabled=False))
        progress = calculate_budget_progress(budget, [make_txn("300")], now=END)
        assert progress.active_alerts == []

    def test_time_split_and_projection(self):
        """Test days and projection halfway through the window."""
        progress = calculate_budget_progress(
            make_budget(), [make_txn("60")], now=datetime(2024, 3, 16)
        )
        assert progress.total_days == 30
        assert progress.days_remaining == 15
        assert progress.daily_average == Decimal("4")
        assert progress.projected_spending == Decimal("120")
        assert progress.projected_remaining == Decimal("80")
        assert progress.daily_budget == Decimal("140") / 15

    def test_open_ended_budget_runs_to_now(self):
        """Test a budget without end date."""
        budget = make_budget(end_date=None)
        now = START + timedelta(days=10)
        progress = calculate_budget_progress(
            budget, [make_txn("10", date=START + timedelta(days=11))], now=now
        )
        assert progress.spent == Decimal("0")
        assert progress.total_days == 10
        assert progress.days_remaining == 0
        assert progress.daily_budget == Decimal("0")

    def test_zero_amount_budget(self):
        """Test that a zero budget has no percentage."""
        progress = calculate_budget_progress(make_budget(amount="0"), [make_txn("5")], now=END)
        assert progress.percentage == Decimal("0")
        assert progress.is_over_budget

    def test_deterministic(self):
        """Test identical inputs give identical output."""
        budget = make_budget()
        transactions = [make_txn("80"), make_txn("12.5")]
        now = datetime(2024, 3, 20)
        assert calculate_budget_progress(budget, transactions, now) == \
            calculate_budget_progress(budget, transactions, now)

    def test_now_only_changes_time_fields(self):
        """Test that spent does not depend on now."""
        budget = make_budget()
        transactions = [make_txn("80")]
        early = calculate_budget_progress(budget, transactions, datetime(2024, 3, 11))
        late = calculate_budget_progress(budget, transactions, datetime(2024, 3, 30))
        assert early.spent == late.spent
        assert early.days_remaining != late.days_remaining

    def test_active_alerts_helper(self):
        """Test calculate_active_alerts."""
        assert calculate_active_alerts(Decimal("85"), [50, 80, 100]) == [80, 50]
        assert calculate_active_alerts(Decimal("49.99"), [50, 80, 100]) == []


class TestBudgetProgressThroughLedger:
    """Tests for budget progress read through a ledger handle."""

    @pytest.mark.asyncio
    async def test_budget_reflects_current_transactions(self, ledger, accounts):
        """Test that progress is recomputed on every read."""
        account_a, _ = accounts
        budget = await ledger.add_budget(
            "Food", ["expense-food"], Decimal("200"), start_date=START, end_date=END
        )
        assert budget.alerts.thresholds == [50, 80, 100]

        txn = await ledger.create_transaction(
            TransactionCreate(
                type=TransactionType.EXPENSE,
                amount=Decimal("80"),
                account_id=account_a.id,
                category_id="expense-food",
                date=datetime(2024, 3, 10),
            )
        )
        progress = await ledger.budget_progress(budget.id, now=datetime(2024, 3, 16))
        assert progress.spent == Decimal("80")
        assert progress.percentage == Decimal("40")

        await ledger.delete_transaction(txn.id)
        progress = await ledger.budget_progress(budget.id, now=datetime(2024, 3, 16))
        assert progress.spent == Decimal("0")

        all_progress = await ledger.all_budget_progress(now=datetime(2024, 3, 16))
        assert [p.budget.id for p in all_progress] == [budget.id]


class TestGoalProgress:
    """Tests for calculate_goal_progress."""

    def test_percentage_and_remaining(self):
        """Test basic goal progress."""
        goal = Goal(owner_id="u", name="Trip", target_amount=Decimal("1000"),
                    current_amount=Decimal("250"))
        progress = calculate_goal_progress(goal, datetime(2024, 3, 1))
        assert progress.percentage == Decimal("25")
        assert progress.remaining == Decimal("750")
        assert progress.days_until_deadline is None
        assert progress.is_on_track

    def test_deadline_metrics(self):
        """Test required monthly contribution and on-track check."""
        goal = Goal(
            owner_id="u",
            name="Trip",
            target_amount=Decimal("1000"),
            current_amount=Decimal("100"),
            created_at=datetime(2024, 1, 1),
            deadline=datetime(2024, 4, 10),
        )
        progress = calculate_goal_progress(goal, datetime(2024, 3, 11))
        assert progress.days_until_deadline == 30
        assert progress.required_monthly_contribution == Decimal("900")
        # 70 of 100 days passed, 10% saved
        assert not progress.is_on_track

    def test_past_deadline(self):
        """Test a goal whose deadline has passed."""
        goal = Goal(
            owner_id="u",
            name="Trip",
            target_amount=Decimal("1000"),
            created_at=datetime(2024, 1, 1),
            deadline=datetime(2024, 2, 1),
        )
        progress = calculate_goal_progress(goal, datetime(2024, 3, 1))
        assert progress.days_until_deadline == 0
        assert progress.required_monthly_contribution is None

    def test_required_monthly_contribution(self):
        """Test 30-day months."""
        assert calculate_required_monthly_contribution(Decimal("600"), 60) == Decimal("300")
        assert calculate_required_monthly_contribution(Decimal("600"), 0) == Decimal("0")


class TestStatistics:
    """Tests for aggregate statistics."""

    def test_month_bounds(self):
        """Test month bounds including leap February."""
        start, end = month_bounds(2024, 2)
        assert start == datetime(2024, 2, 1)
        assert end.day == 29
        assert end.hour == 23

    def test_monthly_stats_without_income(self):
        """Test savings rate is zero without income."""
        stats = calculate_monthly_stats([make_txn("10")], START, END)
        assert stats.savings == Decimal("-10")
        assert stats.savings_rate == Decimal("0")

    def test_spending_by_category_order_and_percentage(self):
        """Test largest category first and percentages."""
        transactions = [
            make_txn("25", category_id="expense-travel"),
            make_txn("75"),
            make_txn("5", transaction_type=TransactionType.INCOME),
        ]
        spending = calculate_spending_by_category(
            transactions, START, END, {"expense-food": "Food"}
        )
        assert [s.category_id for s in spending] == ["expense-food", "expense-travel"]
        assert spending[0].percentage == Decimal("75")
        assert spending[1].name == "Other"

    def test_account_balances(self):
        """Test assets and liabilities split."""
        accounts = [
            Account(owner_id="u", name="Bank", balance=Decimal("500")),
            Account(owner_id="u", name="Card", type=AccountType.CREDIT,
                    balance=Decimal("-120")),
        ]
        balances = calculate_account_balances(accounts)
        assert balances.total_assets == Decimal("500")
        assert balances.total_liabilities == Decimal("120")
        assert balances.net_worth == Decimal("380")
        assert balances.by_type == {"bank": Decimal("500"), "credit": Decimal("-120")}

    def test_net_worth_ignores_inactive_debt(self):
        """Test only active debt goals count as liabilities."""
        accounts = [Account(owner_id="u", name="Bank", balance=Decimal("1000"))]
        goals = [
            Goal(owner_id="u", name="Loan", type=GoalType.DEBT,
                 target_amount=Decimal("400"), current_amount=Decimal("100")),
            Goal(owner_id="u", name="Old loan", type=GoalType.DEBT,
                 target_amount=Decimal("400"), status=GoalStatus.CANCELLED),
            Goal(owner_id="u", name="Trip", target_amount=Decimal("400")),
        ]
        assert calculate_net_worth(accounts, goals) == Decimal("700")

    def test_average_and_counts(self):
        """Test average transaction and per-type counts."""
        transactions = [
            make_txn("10"),
            make_txn("30"),
            make_txn("100", category_id="income-salary",
                     transaction_type=TransactionType.INCOME),
        ]
        assert calculate_average_transaction(transactions, TransactionType.EXPENSE) == \
            Decimal("20")
        assert calculate_average_transaction([]) == Decimal("0")

        counts = calculate_transaction_counts(transactions, START, END)
        assert counts["expense"] == 2
        assert counts["income"] == 1
        assert counts["transfer"] == 0
