"""
Kakeibo Core - Ledger & Balance Consistency Engine

The engine behind a personal finance tracker: accounts, transactions,
budgets and savings/debt goals kept in a local embedded database.

DESIGN PRINCIPLES:
1. Account balances are mutated only by the ledger, never set directly
2. Every multi-step mutation is atomic (all or nothing)
3. Updates are revert-then-apply
4. Derived values (budget/goal progress) are recomputed, never cached
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Kakeibo Team"
