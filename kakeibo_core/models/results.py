"""
Derived Result Models

Everything here is computed at read time and never persisted:
budget/goal progress, statistics and the outcome of an ownership
migration.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from kakeibo_core.exceptions import MigrationError
from kakeibo_core.models.entities import Budget, Goal


# =============================================================================
# PROGRESS
# =============================================================================

class BudgetProgress(BaseModel):
    """Spending against a budget for its current window."""

    model_config = ConfigDict(frozen=True)

    budget: Budget
    spent: Decimal
    remaining: Decimal
    percentage: Decimal = Field(..., description="Percent of budget spent (0-100+)")
    is_over_budget: bool
    is_warning: bool
    active_alerts: list[int] = Field(
        default_factory=list,
        description="Reached alert thresholds, highest first"
    )
    days_remaining: int
    total_days: int
    daily_budget: Decimal
    daily_average: Decimal
    projected_spending: Decimal
    projected_remaining: Decimal


class GoalProgress(BaseModel):
    model_config = ConfigDict(frozen=True)

    goal: Goal
    percentage: Decimal
    remaining: Decimal
    days_until_deadline: Optional[int] = None
    required_monthly_contribution: Optional[Decimal] = None
    is_on_track: bool = True


# =============================================================================
# STATISTICS
# =============================================================================

class MonthlyStats(BaseModel):
    income: Decimal
    expenses: Decimal
    savings: Decimal
    savings_rate: Decimal = Field(..., description="Savings as percent of income")
    transaction_count: int


class CategorySpending(BaseModel):
    category_id: str
    name: str
    amount: Decimal
    count: int
    percentage: Decimal


class AccountBalances(BaseModel):
    total_assets: Decimal
    total_liabilities: Decimal
    net_worth: Decimal
    by_type: dict[str, Decimal] = Field(default_factory=dict)


# =============================================================================
# MIGRATION
# =============================================================================

class MigrationCounts(BaseModel):
    """Records reassigned per collection."""
    transactions: int = 0
    budgets: int = 0
    goals: int = 0
    accounts: int = 0
    categories: int = 0

    @property
    def total(self) -> int:
        return self.transactions + self.budgets + self.goals + self.accounts + self.categories


class MigrationResult(BaseModel):
    """
    Outcome of an ownership migration.

    On failure the counts are always zero: the migration was rolled
    back as a whole, so nothing was reassigned.
    """

    success: bool
    migrated_counts: MigrationCounts = Field(default_factory=MigrationCounts)
    error: Optional[str] = None
    failed_collection: Optional[str] = None

    def raise_for_status(self) -> None:
        """Raise MigrationError if the migration failed."""
        if not self.success:
            raise MigrationError(
                self.error or "Migration failed",
                collection=self.failed_collection,
            )
