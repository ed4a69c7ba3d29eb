"""
Budget Progress Calculation

DESIGN DECISION: Budget progress is DETERMINISTIC.
calculate_budget_progress() is a pure function of (budget, transactions,
now). Nothing is cached and nothing is read from storage here; callers
pass the current transaction set on every read.

Identical inputs always produce identical output. Changing only `now`
changes only the time-derived fields, never `spent`.
"""

import math
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from kakeibo_core.models.entities import Budget, Transaction, TransactionType
from kakeibo_core.models.results import BudgetProgress


ZERO = Decimal("0")
HUNDRED = Decimal("100")
ONE_DAY = timedelta(days=1)


def ceil_days(delta: timedelta) -> int:
    """Whole days in a time span, rounded up."""
    return math.ceil(delta / ONE_DAY)


def calculate_active_alerts(percentage: Decimal, thresholds: Iterable[int]) -> list[int]:
    """
    Alert thresholds reached by the spending percentage, highest first.

    Example:
        calculate_active_alerts(Decimal("85"), [50, 80, 100]) -> [80, 50]
    """
    return sorted((t for t in thresholds if percentage >= t), reverse=True)


def calculate_projected_spending(daily_average: Decimal, total_days: int) -> Decimal:
    """Projected spending for the whole period at the current daily rate."""
    return daily_average * total_days


def budget_window(budget: Budget, now: datetime) -> tuple[datetime, datetime]:
    """The window spending is counted in: start date to end date, or to now."""
    return budget.start_date, budget.end_date or now


def calculate_budget_progress(
    budget: Budget,
    transactions: Iterable[Transaction],
    now: datetime,
    period_start: Optional[datetime] = None,
    period_end: Optional[datetime] = None,
) -> BudgetProgress:
    """
    Calculate spending, projections and alerts for a budget.

    Args:
        budget: The budget definition
        transactions: Candidate transactions (any type, any date)
        now: Reference time for the time-derived fields
        period_start: Overrides the budget start date
        period_end: Overrides the budget end date

    Returns:
        Complete budget progress
    """
    default_start, default_end = budget_window(budget, now)
    period_start = period_start or default_start
    period_end = period_end or default_end
    category_ids = set(budget.category_ids)

    # Only expenses in the budget's categories and window count
    spent = sum(
        (
            abs(t.amount)
            for t in transactions
            if t.type == TransactionType.EXPENSE
            and t.category_id in category_ids
            and period_start <= t.date <= period_end
        ),
        ZERO,
    )
    remaining = budget.amount - spent
    percentage = spent / budget.amount * HUNDRED if budget.amount > 0 else ZERO

    # Time split
    total_days = max(1, ceil_days(period_end - period_start))
    days_remaining = max(0, ceil_days(period_end - now))
    days_passed = max(1, total_days - days_remaining)

    # Projections
    daily_budget = remaining / days_remaining if days_remaining > 0 else ZERO
    daily_average = spent / days_passed
    projected_spending = calculate_projected_spending(daily_average, total_days)
    projected_remaining = budget.amount - projected_spending

    # Alerts
    if budget.alerts.enabled:
        active_alerts = calculate_active_alerts(percentage, budget.alerts.thresholds)
    else:
        active_alerts = []
    is_warning = bool(active_alerts) and 100 not in active_alerts

    return BudgetProgress(
        budget=budget,
        spent=spent,
        remaining=remaining,
        percentage=percentage,
        is_over_budget=spent > budget.amount,
        is_warning=is_warning,
        active_alerts=active_alerts,
        days_remaining=days_remaining,
        total_days=total_days,
        daily_budget=daily_budget,
        daily_average=daily_average,
        projected_spending=projected_spending,
        projected_remaining=projected_remaining,
    )
