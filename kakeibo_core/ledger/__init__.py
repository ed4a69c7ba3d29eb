"""
Ledger Package

The only code allowed to change account balances and goal amounts.
"""

from kakeibo_core.ledger.effects import (
    EFFECT_SIGNS,
    BalanceEffect,
    EffectApplier,
    effect_of,
    next_goal_status,
)
from kakeibo_core.ledger.engine import LedgerEngine, LedgerHandle
from kakeibo_core.ledger.verification import calculate_account_balance, validate_balance

__all__ = [
    # Balance effects
    "EFFECT_SIGNS",
    "BalanceEffect",
    "EffectApplier",
    "effect_of",
    "next_goal_status",
    # Engine
    "LedgerEngine",
    "LedgerHandle",
    # Verification
    "calculate_account_balance",
    "validate_balance",
]
