"""
Balance Verification

CRITICAL: Nothing here writes a balance. The ledger only ever moves
balances by deltas; these functions re-derive what a balance should be
from a transaction set so that drift (for example after a bulk import)
can be detected and reported.
"""

from decimal import Decimal
from typing import Iterable

from kakeibo_core.ledger.effects import effect_of
from kakeibo_core.models.entities import Transaction


ZERO = Decimal("0")

# Differences below a cent are rounding noise from imported data
DEFAULT_TOLERANCE = Decimal("0.01")


def calculate_account_balance(
    account_id: str,
    initial_balance: Decimal,
    transactions: Iterable[Transaction],
) -> Decimal:
    """Initial balance plus the signed effect of every entry touching the account."""
    balance = initial_balance
    for transaction in transactions:
        balance += effect_of(transaction).account_deltas.get(account_id, ZERO)
    return balance


def validate_balance(
    expected: Decimal,
    calculated: Decimal,
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> tuple[bool, Decimal]:
    """
    Compare a stored balance against a derived one.

    Returns:
        (is_valid, difference)
    """
    difference = abs(expected - calculated)
    return difference <= tolerance, difference
