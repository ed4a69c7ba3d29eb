"""Goal progress calculation. Pure functions of (goal, now)."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from kakeibo_core.calculations.budget_progress import ceil_days
from kakeibo_core.models.entities import Goal
from kakeibo_core.models.results import GoalProgress


ZERO = Decimal("0")
HUNDRED = Decimal("100")
DAYS_PER_MONTH = Decimal("30")

# Actual progress may lag the linear expectation by 10% and still be on track
ON_TRACK_TOLERANCE = Decimal("0.9")


def calculate_required_monthly_contribution(
    remaining: Decimal,
    days_until_deadline: int,
) -> Decimal:
    """Monthly amount needed to close the gap by the deadline (30-day months)."""
    months_remaining = Decimal(days_until_deadline) / DAYS_PER_MONTH
    if months_remaining > 0:
        return remaining / months_remaining
    return ZERO


def calculate_goal_progress(goal: Goal, now: datetime) -> GoalProgress:
    """
    Calculate completion, remaining amount and deadline metrics for a goal.

    The on-track check compares the actual percentage against a straight
    line from the goal's creation to its deadline.
    """
    percentage = goal.current_amount / goal.target_amount * HUNDRED
    remaining = goal.target_amount - goal.current_amount

    days_until_deadline: Optional[int] = None
    required_monthly: Optional[Decimal] = None
    is_on_track = True

    if goal.deadline is not None:
        days_until_deadline = max(0, ceil_days(goal.deadline - now))

        if days_until_deadline > 0:
            required_monthly = calculate_required_monthly_contribution(
                remaining, days_until_deadline
            )

        total_days = ceil_days(goal.deadline - goal.created_at)
        days_passed = total_days - days_until_deadline

        if days_passed > 0:
            expected_progress = Decimal(days_passed) / Decimal(total_days) * HUNDRED
            is_on_track = percentage >= expected_progress * ON_TRACK_TOLERANCE

    return GoalProgress(
        goal=goal,
        percentage=percentage,
        remaining=remaining,
        days_until_deadline=days_until_deadline,
        required_monthly_contribution=required_monthly,
        is_on_track=is_on_track,
    )
