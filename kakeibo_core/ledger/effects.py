"""
Balance Effects

DESIGN DECISION: The balance effect of a ledger entry is a value, not a
side effect scattered across call sites. effect_of() derives it from the
transaction type alone; EffectApplier.apply() and EffectApplier.reverse()
are the only code that changes Account.balance or Goal.current_amount.

Every mutation is expressed with this pair:
- create:  apply(effect_of(new))
- update:  reverse(effect_of(stored)), then apply(effect_of(patched))
- delete:  reverse(effect_of(stored))

CRITICAL: Balances only ever move by deltas. Nothing here recomputes a
balance from the transaction history.
"""

from decimal import Decimal
from typing import Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field

from kakeibo_core.config import LedgerSettings
from kakeibo_core.exceptions import InsufficientFundsError
from kakeibo_core.models.entities import (
    Goal,
    GoalStatus,
    Transaction,
    TransactionType,
    utcnow,
)
from kakeibo_core.services.storage import Collection, UnitOfWork


logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


# Sign of the effect per type: (source account, destination account, goal)
EFFECT_SIGNS: dict[TransactionType, tuple[int, int, int]] = {
    TransactionType.INCOME: (1, 0, 0),
    TransactionType.EXPENSE: (-1, 0, 0),
    TransactionType.TRANSFER: (-1, 1, 0),
    TransactionType.GOAL_CONTRIBUTION: (-1, 0, 1),
    TransactionType.GOAL_WITHDRAWAL: (1, 0, -1),
}


class BalanceEffect(BaseModel):
    """Signed deltas one ledger entry contributes to accounts and a goal."""

    model_config = ConfigDict(frozen=True)

    account_deltas: dict[str, Decimal] = Field(default_factory=dict)
    goal_id: Optional[str] = None
    goal_delta: Decimal = ZERO

    def reversed(self) -> "BalanceEffect":
        return BalanceEffect(
            account_deltas={
                account_id: -delta for account_id, delta in self.account_deltas.items()
            },
            goal_id=self.goal_id,
            goal_delta=-self.goal_delta,
        )

    def without_goal(self) -> "BalanceEffect":
        """The account part only (used when the goal itself is going away)."""
        return BalanceEffect(account_deltas=dict(self.account_deltas))


def effect_of(transaction: Transaction) -> BalanceEffect:
    """Derive the balance effect of a ledger entry from its type and amount."""
    source_sign, destination_sign, goal_sign = EFFECT_SIGNS[transaction.type]
    amount = transaction.amount

    deltas: dict[str, Decimal] = {transaction.account_id: source_sign * amount}
    if destination_sign and transaction.to_account_id:
        destination = transaction.to_account_id
        deltas[destination] = deltas.get(destination, ZERO) + destination_sign * amount

    if goal_sign and transaction.goal_id:
        return BalanceEffect(
            account_deltas=deltas,
            goal_id=transaction.goal_id,
            goal_delta=goal_sign * amount,
        )
    return BalanceEffect(account_deltas=deltas)


def next_goal_status(goal: Goal, auto_complete: bool) -> GoalStatus:
    """
    Status a goal should have after its current amount changed.

    Cancelled goals keep their status whatever happens to the amount.
    """
    if not auto_complete or goal.status == GoalStatus.CANCELLED:
        return goal.status
    if goal.current_amount >= goal.target_amount:
        return GoalStatus.COMPLETED
    if goal.status == GoalStatus.COMPLETED:
        return GoalStatus.ACTIVE
    return goal.status


class EffectApplier:
    """
    Applies balance effects inside one unit of work.

    Tracks the net account deltas of the whole operation (for the
    ledger event) and each touched goal's starting amount (for the
    funds check, which runs once on the final state so that an update
    is never rejected for an intermediate revert).
    """

    def __init__(self, uow: UnitOfWork, owner_id: str, settings: LedgerSettings):
        self._uow = uow
        self._owner_id = owner_id
        self._settings = settings
        self.account_deltas: dict[str, Decimal] = {}
        self._goal_start: dict[str, Decimal] = {}
        self._goal_final: dict[str, Decimal] = {}

    @property
    def goal_amounts(self) -> dict[str, Decimal]:
        """Final current amount of every goal touched so far."""
        return dict(self._goal_final)

    async def apply(self, effect: BalanceEffect) -> None:
        for account_id, delta in effect.account_deltas.items():
            await self._apply_to_account(account_id, delta)

        if effect.goal_id and effect.goal_delta:
            await self._apply_to_goal(effect.goal_id, effect.goal_delta)

    async def reverse(self, effect: BalanceEffect) -> None:
        await self.apply(effect.reversed())

    async def _apply_to_account(self, account_id: str, delta: Decimal) -> None:
        account = await self._uow.get(Collection.ACCOUNTS, account_id)
        if account is None or account.owner_id != self._owner_id:
            # Accounts may be removed independently of their transactions
            logger.info(
                "balance_effect_skipped",
                owner_id=self._owner_id,
                account_id=account_id,
                delta=str(delta),
            )
            return

        account.balance += delta
        account.updated_at = utcnow()
        await self._uow.save(account)
        self.account_deltas[account_id] = self.account_deltas.get(account_id, ZERO) + delta

    async def _apply_to_goal(self, goal_id: str, delta: Decimal) -> None:
        goal = await self._uow.get(Collection.GOALS, goal_id)
        if goal is None or goal.owner_id != self._owner_id:
            logger.info(
                "goal_effect_skipped",
                owner_id=self._owner_id,
                goal_id=goal_id,
                delta=str(delta),
            )
            return

        self._goal_start.setdefault(goal_id, goal.current_amount)
        goal.current_amount += delta
        goal.status = next_goal_status(goal, self._settings.auto_complete_goals)
        goal.updated_at = utcnow()
        await self._uow.save(goal)
        self._goal_final[goal_id] = goal.current_amount

    def check_goal_funds(self) -> None:
        """
        Reject the operation if it left a goal below zero.

        Raises:
            InsufficientFundsError: With the goal's amount before the
                                    operation and the amount removed
        """
        if not self._settings.enforce_goal_funds:
            return

        for goal_id, final in self._goal_final.items():
            start = self._goal_start[goal_id]
            if final < ZERO and final < start:
                raise InsufficientFundsError(goal_id, start, start - final)
