"""
Ledger Statistics

Pure aggregations over transactions and accounts for reports and
dashboards. Like budget progress, nothing here touches storage.
"""

import calendar
from collections import Counter
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from kakeibo_core.models.entities import (
    Account,
    Goal,
    GoalStatus,
    GoalType,
    Transaction,
    TransactionType,
)
from kakeibo_core.models.results import AccountBalances, CategorySpending, MonthlyStats


ZERO = Decimal("0")
HUNDRED = Decimal("100")


def month_bounds(year: int, month: int) -> tuple[datetime, datetime]:
    """First and last instant of a calendar month."""
    last_day = calendar.monthrange(year, month)[1]
    return (
        datetime(year, month, 1),
        datetime(year, month, last_day, 23, 59, 59, 999999),
    )


def _in_period(
    transactions: Iterable[Transaction],
    period_start: datetime,
    period_end: datetime,
) -> list[Transaction]:
    return [t for t in transactions if period_start <= t.date <= period_end]


def _total(transactions: Iterable[Transaction]) -> Decimal:
    return sum((abs(t.amount) for t in transactions), ZERO)


def calculate_monthly_stats(
    transactions: Iterable[Transaction],
    period_start: datetime,
    period_end: datetime,
) -> MonthlyStats:
    """Income, expenses and savings rate for a period."""
    period_transactions = _in_period(transactions, period_start, period_end)

    income = _total(t for t in period_transactions if t.type == TransactionType.INCOME)
    expenses = _total(t for t in period_transactions if t.type == TransactionType.EXPENSE)
    savings = income - expenses
    savings_rate = savings / income * HUNDRED if income > 0 else ZERO

    return MonthlyStats(
        income=income,
        expenses=expenses,
        savings=savings,
        savings_rate=savings_rate,
        transaction_count=len(period_transactions),
    )


def calculate_spending_by_category(
    transactions: Iterable[Transaction],
    period_start: datetime,
    period_end: datetime,
    category_names: Optional[dict[str, str]] = None,
) -> list[CategorySpending]:
    """
    Expense totals per category, largest first.

    Args:
        category_names: category id -> display name; unknown ids are
                        reported as "Other"
    """
    category_names = category_names or {}
    amounts: dict[str, Decimal] = {}
    counts: Counter = Counter()

    for transaction in _in_period(transactions, period_start, period_end):
        if transaction.type != TransactionType.EXPENSE:
            continue
        category_id = transaction.category_id
        amounts[category_id] = amounts.get(category_id, ZERO) + abs(transaction.amount)
        counts[category_id] += 1

    total_spent = sum(amounts.values(), ZERO)

    result = [
        CategorySpending(
            category_id=category_id,
            name=category_names.get(category_id, "Other"),
            amount=amount,
            count=counts[category_id],
            percentage=amount / total_spent * HUNDRED if total_spent > 0 else ZERO,
        )
        for category_id, amount in amounts.items()
    ]
    result.sort(key=lambda c: (-c.amount, c.category_id))
    return result


def calculate_account_balances(accounts: Iterable[Account]) -> AccountBalances:
    """Split balances into assets and liabilities, and total them per account type."""
    total_assets = ZERO
    total_liabilities = ZERO
    by_type: dict[str, Decimal] = {}

    for account in accounts:
        if account.balance >= 0:
            total_assets += account.balance
        else:
            total_liabilities += abs(account.balance)
        by_type[account.type.value] = by_type.get(account.type.value, ZERO) + account.balance

    return AccountBalances(
        total_assets=total_assets,
        total_liabilities=total_liabilities,
        net_worth=total_assets - total_liabilities,
        by_type=by_type,
    )


def calculate_net_worth(accounts: Iterable[Account], goals: Iterable[Goal]) -> Decimal:
    """Account balances minus what is still owed on active debt goals."""
    assets = sum((account.balance for account in accounts), ZERO)
    liabilities = sum(
        (
            goal.target_amount - goal.current_amount
            for goal in goals
            if goal.type == GoalType.DEBT and goal.status == GoalStatus.ACTIVE
        ),
        ZERO,
    )
    return assets - liabilities


def calculate_average_transaction(
    transactions: Iterable[Transaction],
    transaction_type: Optional[TransactionType] = None,
) -> Decimal:
    filtered = [
        t for t in transactions
        if transaction_type is None or t.type == transaction_type
    ]
    if not filtered:
        return ZERO
    return _total(filtered) / len(filtered)


def calculate_transaction_counts(
    transactions: Iterable[Transaction],
    period_start: datetime,
    period_end: datetime,
) -> dict[str, int]:
    """Number of transactions per type in a period. Every type is present."""
    counts = {transaction_type.value: 0 for transaction_type in TransactionType}
    for transaction in _in_period(transactions, period_start, period_end):
        counts[transaction.type.value] += 1
    return counts
