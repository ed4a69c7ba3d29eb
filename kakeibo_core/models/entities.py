"""
Core Data Models for Kakeibo

These models define the strict schemas for the six entity collections
(users, accounts, categories, transactions, budgets, goals) and for the
inputs the ledger accepts.

DESIGN DECISION: Amounts are Decimal and always non-negative on a
transaction. The sign of a balance effect is derived from the
transaction type, never stored.

All timestamps are naive UTC. Aware datetimes are converted on input so
comparisons against stored values never mix the two.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import uuid4

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def new_id() -> str:
    return str(uuid4())


UtcDatetime = Annotated[datetime, AfterValidator(to_naive_utc)]


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountType(str, Enum):
    """Supported account types."""
    BANK = "bank"
    CREDIT = "credit"
    CASH = "cash"
    INVESTMENT = "investment"
    WALLET = "wallet"


class TransactionType(str, Enum):
    """
    Types of ledger entries.

    - expense: money spent from an account
    - income: money received into an account
    - transfer: money moved between two accounts
    - goal-contribution: money set aside towards a goal (leaves the account)
    - goal-withdrawal: money taken back from a goal (returns to the account)
    """
    EXPENSE = "expense"
    INCOME = "income"
    TRANSFER = "transfer"
    GOAL_CONTRIBUTION = "goal-contribution"
    GOAL_WITHDRAWAL = "goal-withdrawal"

    @property
    def is_goal_event(self) -> bool:
        return self in (TransactionType.GOAL_CONTRIBUTION, TransactionType.GOAL_WITHDRAWAL)


class CategoryType(str, Enum):
    EXPENSE = "expense"
    INCOME = "income"


class BudgetPeriod(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class GoalType(str, Enum):
    SAVINGS = "savings"
    DEBT = "debt"


class GoalStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class UserMode(str, Enum):
    """Guest users live on one device until they sign in."""
    GUEST = "guest"
    AUTHENTICATED = "authenticated"


# =============================================================================
# USER
# =============================================================================

class NotificationSettings(BaseModel):
    budget_alerts: bool = True
    bill_reminders: bool = True
    weekly_reports: bool = True
    unusual_spending: bool = True


class UserSettings(BaseModel):
    """User preferences. Opaque to the ledger, carried through migration and backup."""

    currency: str = Field(default="USD", min_length=3, max_length=3)
    date_format: str = "MM/dd/yyyy"
    theme: str = Field(default="system", pattern="^(light|dark|system)$")
    language: str = "en"
    financial_month_start: int = Field(
        default=1,
        ge=1,
        le=31,
        description="Day of month the financial month starts on"
    )
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)


class User(BaseModel):
    """The unit whose identifier is replaced during ownership migration."""

    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id, min_length=1)
    mode: UserMode = UserMode.GUEST
    email: Optional[str] = None
    display_name: str = ""
    settings: UserSettings = Field(default_factory=UserSettings)
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)


# =============================================================================
# ACCOUNTS & CATEGORIES
# =============================================================================

class Account(BaseModel):
    """
    A financial account (bank, card, cash, ...).

    CRITICAL: balance is mutated exclusively by the ledger engine.
    It must always equal initial_balance plus the signed effects of every
    ledger entry referencing this account.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id, min_length=1)
    owner_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType = AccountType.BANK
    initial_balance: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    currency: str = Field(default="USD", min_length=3, max_length=3)
    is_active: bool = True
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)


class Category(BaseModel):
    """Leaf reference data for classifying transactions."""

    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id, min_length=1)
    owner_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    type: CategoryType = CategoryType.EXPENSE
    parent_id: Optional[str] = None
    is_default: bool = False
    order: int = 0


# =============================================================================
# TRANSACTIONS
# =============================================================================

def _check_type_requirements(
    transaction_type: TransactionType,
    account_id: Optional[str],
    to_account_id: Optional[str],
    category_id: Optional[str],
    goal_id: Optional[str],
) -> None:
    """Required fields per transaction type."""
    if transaction_type in (TransactionType.EXPENSE, TransactionType.INCOME) and not category_id:
        raise ValueError("Category is required for expense and income transactions")

    if transaction_type == TransactionType.TRANSFER:
        if not to_account_id:
            raise ValueError("Destination account is required for transfers")
        if to_account_id == account_id:
            raise ValueError("Transfer source and destination must differ")

    if transaction_type.is_goal_event and not goal_id:
        raise ValueError("Goal is required for goal transactions")


class Transaction(BaseModel):
    """
    A ledger entry.

    amount is always positive; direction comes from type.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id, min_length=1)
    owner_id: str = Field(..., min_length=1)
    type: TransactionType
    amount: Decimal = Field(..., gt=0)
    account_id: str = Field(..., min_length=1)
    to_account_id: Optional[str] = None
    category_id: str = ""
    subcategory_id: Optional[str] = None
    goal_id: Optional[str] = None
    description: str = Field(default="", max_length=500)
    date: UtcDatetime = Field(default_factory=utcnow)
    is_essential: bool = False
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)

    @model_validator(mode='after')
    def validate_type_requirements(self) -> 'Transaction':
        _check_type_requirements(
            self.type, self.account_id, self.to_account_id, self.category_id, self.goal_id
        )
        return self


class TransactionCreate(BaseModel):
    """Input for creating a transaction through the ledger."""

    model_config = ConfigDict(str_strip_whitespace=True)

    type: TransactionType
    amount: Decimal = Field(..., gt=0)
    account_id: str = Field(..., min_length=1)
    to_account_id: Optional[str] = None
    category_id: str = ""
    subcategory_id: Optional[str] = None
    goal_id: Optional[str] = None
    description: str = Field(default="", max_length=500)
    date: Optional[UtcDatetime] = None
    is_essential: bool = False

    @model_validator(mode='after')
    def validate_type_requirements(self) -> 'TransactionCreate':
        _check_type_requirements(
            self.type, self.account_id, self.to_account_id, self.category_id, self.goal_id
        )
        return self


_CLEARABLE_FIELDS = {"to_account_id", "subcategory_id", "goal_id"}


class TransactionPatch(BaseModel):
    """
    Partial update of a transaction.

    Only fields explicitly set are applied. Per-type requirements are
    checked against the merged result, not the patch alone.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    type: Optional[TransactionType] = None
    amount: Optional[Decimal] = Field(default=None, gt=0)
    account_id: Optional[str] = Field(default=None, min_length=1)
    to_account_id: Optional[str] = None
    category_id: Optional[str] = None
    subcategory_id: Optional[str] = None
    goal_id: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=500)
    date: Optional[UtcDatetime] = None
    is_essential: Optional[bool] = None

    def changes(self) -> dict:
        """Explicitly set fields. None only clears fields that are optional on a transaction."""
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None or key in _CLEARABLE_FIELDS
        }


class TransactionFilters(BaseModel):
    """Owner-scoped transaction query."""

    type: Optional[TransactionType] = None
    account_id: Optional[str] = Field(
        default=None,
        description="Matches the source or the destination account"
    )
    category_id: Optional[str] = None
    goal_id: Optional[str] = None
    date_from: Optional[UtcDatetime] = None
    date_to: Optional[UtcDatetime] = None
    limit: Optional[int] = Field(default=None, ge=1)
    offset: int = Field(default=0, ge=0)


# =============================================================================
# BUDGETS & GOALS
# =============================================================================

class BudgetAlertConfig(BaseModel):
    thresholds: list[int] = Field(default_factory=lambda: [50, 80, 100])
    enabled: bool = True

    @field_validator('thresholds')
    @classmethod
    def sort_thresholds(cls, v: list[int]) -> list[int]:
        if any(t < 0 for t in v):
            raise ValueError("Alert thresholds cannot be negative")
        return sorted(set(v))


class Budget(BaseModel):
    """
    A spending limit across one or more categories.

    Spent is never stored; it is recomputed from transactions on read.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id, min_length=1)
    owner_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    category_ids: list[str] = Field(..., min_length=1)
    amount: Decimal = Field(..., ge=0)
    period: BudgetPeriod = BudgetPeriod.MONTHLY
    start_date: UtcDatetime
    end_date: Optional[UtcDatetime] = None
    rollover: bool = False
    alerts: BudgetAlertConfig = Field(default_factory=BudgetAlertConfig)
    is_active: bool = True
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)

    @model_validator(mode='after')
    def validate_dates(self) -> 'Budget':
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("Budget end date cannot be before start date")
        return self


class Goal(BaseModel):
    """
    A savings target or a debt to pay down.

    current_amount only moves through goal contributions and withdrawals.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id, min_length=1)
    owner_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    type: GoalType = GoalType.SAVINGS
    target_amount: Decimal = Field(..., gt=0)
    current_amount: Decimal = Decimal("0")
    deadline: Optional[UtcDatetime] = None
    account_id: Optional[str] = None
    status: GoalStatus = GoalStatus.ACTIVE
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)
