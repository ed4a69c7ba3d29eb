"""
SQLite Table Definitions

One table per entity collection. Column names match the Pydantic field
names exactly so records convert to rows and back without a per-field
mapping.

DESIGN DECISION: Money is stored as text through DecimalString.
SQLite has no exact decimal type; storing floats would break the
balance invariant after a few thousand additions. All arithmetic
happens in Python on Decimal values.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class DecimalString(TypeDecorator):
    """Decimal stored as its exact string representation."""

    impl = String(64)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return Decimal(value)
        return None


class Base(DeclarativeBase):
    type_annotation_map = {
        Decimal: DecimalString(),
        datetime: DateTime(),
    }


class UserRow(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    mode: Mapped[str] = mapped_column(String(16))
    email: Mapped[Optional[str]]
    display_name: Mapped[str] = mapped_column(default="")
    settings: Mapped[dict[str, Any]] = mapped_column(JSON)
    created_at: Mapped[datetime]
    updated_at: Mapped[datetime]


class AccountRow(Base):
    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str]
    type: Mapped[str] = mapped_column(String(16))
    initial_balance: Mapped[Decimal]
    balance: Mapped[Decimal]
    currency: Mapped[str] = mapped_column(String(3))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime]
    updated_at: Mapped[datetime]


class CategoryRow(Base):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str]
    type: Mapped[str] = mapped_column(String(16))
    parent_id: Mapped[Optional[str]]
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    order: Mapped[int] = mapped_column(Integer, default=0)


class TransactionRow(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_owner_date", "owner_id", "date"),
        Index("ix_transactions_owner_category", "owner_id", "category_id"),
        Index("ix_transactions_owner_account", "owner_id", "account_id"),
        Index("ix_transactions_to_account", "to_account_id"),
        Index("ix_transactions_goal", "goal_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64))
    type: Mapped[str] = mapped_column(String(32))
    amount: Mapped[Decimal]
    account_id: Mapped[str] = mapped_column(String(64))
    to_account_id: Mapped[Optional[str]] = mapped_column(String(64))
    category_id: Mapped[str] = mapped_column(String(64), default="")
    subcategory_id: Mapped[Optional[str]] = mapped_column(String(64))
    goal_id: Mapped[Optional[str]] = mapped_column(String(64))
    description: Mapped[str] = mapped_column(String(500), default="")
    date: Mapped[datetime]
    is_essential: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime]
    updated_at: Mapped[datetime]


class BudgetRow(Base):
    __tablename__ = "budgets"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str]
    category_ids: Mapped[list[str]] = mapped_column(JSON)
    amount: Mapped[Decimal]
    period: Mapped[str] = mapped_column(String(16))
    start_date: Mapped[datetime]
    end_date: Mapped[Optional[datetime]]
    rollover: Mapped[bool] = mapped_column(Boolean, default=False)
    alerts: Mapped[dict[str, Any]] = mapped_column(JSON)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime]
    updated_at: Mapped[datetime]


class GoalRow(Base):
    __tablename__ = "goals"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str]
    type: Mapped[str] = mapped_column(String(16))
    target_amount: Mapped[Decimal]
    current_amount: Mapped[Decimal]
    deadline: Mapped[Optional[datetime]]
    account_id: Mapped[Optional[str]] = mapped_column(String(64))
    status: Mapped[str] = mapped_column(String(16))
    created_at: Mapped[datetime]
    updated_at: Mapped[datetime]
