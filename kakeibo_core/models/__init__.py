"""
Data Models Package

This package contains all Pydantic models used by Kakeibo Core.
All data flowing through the engines must conform to these schemas.
"""

from kakeibo_core.models.entities import (
    Account,
    AccountType,
    Budget,
    BudgetAlertConfig,
    BudgetPeriod,
    Category,
    CategoryType,
    Goal,
    GoalStatus,
    GoalType,
    NotificationSettings,
    Transaction,
    TransactionCreate,
    TransactionFilters,
    TransactionPatch,
    TransactionType,
    User,
    UserMode,
    UserSettings,
    new_id,
    utcnow,
)
from kakeibo_core.models.results import (
    AccountBalances,
    BudgetProgress,
    CategorySpending,
    GoalProgress,
    MigrationCounts,
    MigrationResult,
    MonthlyStats,
)
from kakeibo_core.models.audit import (
    LedgerEvent,
    LedgerEventBuilder,
    LedgerEventType,
    LedgerSeverity,
)
from kakeibo_core.models.backup import (
    EXPORT_FORMAT_VERSION,
    BackupReport,
    ExportData,
    ImportResult,
)

__all__ = [
    # Entity models
    "Account",
    "AccountType",
    "Budget",
    "BudgetAlertConfig",
    "BudgetPeriod",
    "Category",
    "CategoryType",
    "Goal",
    "GoalStatus",
    "GoalType",
    "NotificationSettings",
    "Transaction",
    "TransactionCreate",
    "TransactionFilters",
    "TransactionPatch",
    "TransactionType",
    "User",
    "UserMode",
    "UserSettings",
    "new_id",
    "utcnow",
    # Derived results
    "AccountBalances",
    "BudgetProgress",
    "CategorySpending",
    "GoalProgress",
    "MigrationCounts",
    "MigrationResult",
    "MonthlyStats",
    # Ledger events
    "LedgerEvent",
    "LedgerEventBuilder",
    "LedgerEventType",
    "LedgerSeverity",
    # Backup
    "EXPORT_FORMAT_VERSION",
    "BackupReport",
    "ExportData",
    "ImportResult",
]
