"""Backup file format."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from kakeibo_core.models.entities import (
    Account,
    Budget,
    Category,
    Goal,
    Transaction,
    User,
    UserSettings,
    utcnow,
)

EXPORT_FORMAT_VERSION = "2.0.0"


class ExportData(BaseModel):
    """One owner's complete data set, as written to a backup file."""

    version: str = EXPORT_FORMAT_VERSION
    exported_at: datetime = Field(default_factory=utcnow)
    users: list[User] = Field(default_factory=list)
    accounts: list[Account] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)
    budgets: list[Budget] = Field(default_factory=list)
    goals: list[Goal] = Field(default_factory=list)
    settings: Optional[UserSettings] = None

    def record_counts(self) -> dict[str, int]:
        return {
            "users": len(self.users),
            "accounts": len(self.accounts),
            "categories": len(self.categories),
            "transactions": len(self.transactions),
            "budgets": len(self.budgets),
            "goals": len(self.goals),
        }


class BackupReport(BaseModel):
    """What a backup file contains, before anything is imported."""

    total_records: int
    record_counts: dict[str, int]
    has_settings: bool
    detected_owner_id: Optional[str] = None


class ImportResult(BaseModel):
    """
    Outcome of an import.

    Imported balances are taken as stored. Accounts whose stored balance
    does not match their imported ledger entries are listed in
    drifted_accounts (account id -> difference) for repair.
    """

    owner_id: str
    record_counts: dict[str, int]
    drifted_accounts: dict[str, Decimal] = Field(default_factory=dict)
