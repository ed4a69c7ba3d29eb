"""
Calculations Package

Pure derivations over entities: budget progress, goal progress and
statistics. Nothing here reads or writes storage.
"""

from kakeibo_core.calculations.budget_progress import (
    budget_window,
    calculate_active_alerts,
    calculate_budget_progress,
    calculate_projected_spending,
)
from kakeibo_core.calculations.goal_progress import (
    calculate_goal_progress,
    calculate_required_monthly_contribution,
)
from kakeibo_core.calculations.statistics import (
    calculate_account_balances,
    calculate_average_transaction,
    calculate_monthly_stats,
    calculate_net_worth,
    calculate_spending_by_category,
    calculate_transaction_counts,
    month_bounds,
)

__all__ = [
    # Budget progress
    "budget_window",
    "calculate_active_alerts",
    "calculate_budget_progress",
    "calculate_projected_spending",
    # Goal progress
    "calculate_goal_progress",
    "calculate_required_monthly_contribution",
    # Statistics
    "calculate_account_balances",
    "calculate_average_transaction",
    "calculate_monthly_stats",
    "calculate_net_worth",
    "calculate_spending_by_category",
    "calculate_transaction_counts",
    "month_bounds",
]
