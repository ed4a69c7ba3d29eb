"""
Ledger Engine

This module owns every operation that changes an account balance or a
goal amount, and the owner-scoped reads built on top of them.

DESIGN DECISION: Callers never thread an owner id through each call.
LedgerEngine.for_owner() returns a LedgerHandle bound to one owner;
every read and write made through the handle is confined to that
owner's records. A record belonging to someone else is reported as
not found.

Every mutation follows the same shape:
1. Open one atomic unit of work
2. Read what is needed, write the ledger entry, apply/reverse effects
3. Check goal funds on the final state
4. Commit (or roll back everything on any error)
5. Log one ledger event (or a mutation_failed event)

CRITICAL: No internal retries. create and goal movements are not
idempotent; re-issuing them is the caller's decision.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional, TypeVar
from uuid import UUID

from kakeibo_core.audit import AuditLogger, create_correlation_id
from kakeibo_core.calculations.budget_progress import (
    budget_window,
    calculate_budget_progress,
)
from kakeibo_core.calculations.goal_progress import calculate_goal_progress
from kakeibo_core.calculations.statistics import (
    calculate_account_balances,
    calculate_average_transaction,
    calculate_monthly_stats,
    calculate_net_worth,
    calculate_spending_by_category,
    calculate_transaction_counts,
    month_bounds,
)
from kakeibo_core.config import LedgerSettings, get_settings
from kakeibo_core.exceptions import InvalidStateError
from kakeibo_core.ledger.effects import EffectApplier, effect_of
from kakeibo_core.ledger.verification import calculate_account_balance, validate_balance
from kakeibo_core.models.audit import LedgerEventBuilder, LedgerEventType
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
    Transaction,
    TransactionCreate,
    TransactionFilters,
    TransactionPatch,
    TransactionType,
    utcnow,
)
from kakeibo_core.models.results import (
    AccountBalances,
    BudgetProgress,
    CategorySpending,
    GoalProgress,
    MonthlyStats,
)
from kakeibo_core.services.storage import (
    Collection,
    EntityStore,
    NotFoundError,
    UnitOfWork,
)


T = TypeVar("T")
Work = Callable[[UnitOfWork, EffectApplier], Awaitable[T]]

ZERO = Decimal("0")

LABELS = {
    Collection.ACCOUNTS: "Account",
    Collection.CATEGORIES: "Category",
    Collection.TRANSACTIONS: "Transaction",
    Collection.BUDGETS: "Budget",
    Collection.GOALS: "Goal",
}


def _positive_amount(amount: Any) -> Decimal:
    value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    if value <= 0:
        raise ValueError(f"Amount must be positive, got {amount}")
    return value


def _drop_stale_links(values: dict) -> dict:
    """Clear goal and destination links the entry type does not use."""
    kind = TransactionType(values["type"])
    if not kind.is_goal_event:
        values["goal_id"] = None
    if kind is not TransactionType.TRANSFER:
        values["to_account_id"] = None
    return values


class LedgerEngine:
    """
    Entry point to the ledger.

    Usage:
        engine = LedgerEngine(store)
        ledger = engine.for_owner(user_id)
        txn = await ledger.create_transaction(TransactionCreate(...))
    """

    def __init__(
        self,
        store: EntityStore,
        settings: Optional[LedgerSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().ledger
        self._audit_logger = audit_logger or AuditLogger()

    @property
    def store(self) -> EntityStore:
        return self._store

    @property
    def settings(self) -> LedgerSettings:
        return self._settings

    @property
    def audit_logger(self) -> AuditLogger:
        return self._audit_logger

    def for_owner(self, owner_id: str) -> "LedgerHandle":
        """Get the ledger of one owner."""
        if not owner_id:
            raise ValueError("Owner id is required")
        return LedgerHandle(self, owner_id)


class LedgerHandle:
    """
    One owner's ledger.

    GUARANTEES:
    - Every mutation is atomic: all of its writes commit or none do
    - Account balances and goal amounts only move through balance effects
    - Reads never see another owner's records
    """

    def __init__(self, engine: LedgerEngine, owner_id: str):
        self._engine = engine
        self._owner_id = owner_id

    @property
    def owner_id(self) -> str:
        return self._owner_id

    # =========================================================================
    # INTERNALS
    # =========================================================================

    async def _mutate(
        self,
        operation: str,
        work: Work,
        entity_id: Optional[str] = None,
    ) -> tuple[Any, EffectApplier, UUID]:
        """Run work inside one atomic unit of work."""
        correlation_id = create_correlation_id()
        try:
            async with self._engine.store.atomic() as uow:
                applier = EffectApplier(uow, self._owner_id, self._engine.settings)
                result = await work(uow, applier)
                applier.check_goal_funds()
        except Exception as e:
            await self._engine.audit_logger.log_mutation_failed(
                operation=operation,
                owner_id=self._owner_id,
                error=e,
                entity_id=entity_id,
                correlation_id=correlation_id,
            )
            raise

        return result, applier, correlation_id

    async def _get_owned(self, uow: UnitOfWork, collection: Collection, record_id: str):
        """
        Get a record of this owner.

        Raises:
            NotFoundError: If the record is missing or owned by someone else
        """
        record = await uow.get(collection, record_id)
        if record is None or record.owner_id != self._owner_id:
            raise NotFoundError(f"{LABELS[collection]} not found: {record_id}")
        return record

    async def _find_owned(self, collection: Collection, record_id: str):
        async with self._engine.store.read() as uow:
            record = await uow.get(collection, record_id)
        if record is None or record.owner_id != self._owner_id:
            return None
        return record

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    async def create_transaction(self, data: TransactionCreate) -> Transaction:
        """
        Record a ledger entry and apply its balance effect.

        If the referenced account does not exist the entry is still
        recorded, without any balance change.
        """
        transaction = Transaction(
            owner_id=self._owner_id,
            **_drop_stale_links(data.model_dump(exclude_none=True)),
        )

        async def work(uow: UnitOfWork, applier: EffectApplier) -> Transaction:
            await uow.insert(transaction)
            await applier.apply(effect_of(transaction))
            return transaction

        _, applier, correlation_id = await self._mutate(
            "create_transaction", work, entity_id=transaction.id
        )
        await self._engine.audit_logger.log(
            LedgerEventBuilder.transaction_created(
                transaction, applier.account_deltas, correlation_id
            )
        )
        return transaction

    async def update_transaction(
        self,
        transaction_id: str,
        patch: TransactionPatch,
    ) -> Transaction:
        """
        Change a ledger entry using revert-then-apply.

        The stored entry's effect is reversed, the patched entry is
        saved, and the new effect applied, all in one atomic unit.

        Raises:
            NotFoundError: If the transaction does not exist
            ValidationError: If the patched entry is not a valid transaction
        """

        async def work(uow: UnitOfWork, applier: EffectApplier) -> tuple[Transaction, Transaction]:
            before = await self._get_owned(uow, Collection.TRANSACTIONS, transaction_id)

            merged = before.model_dump()
            merged.update(patch.changes())
            merged["updated_at"] = utcnow()
            after = Transaction.model_validate(_drop_stale_links(merged))

            await applier.reverse(effect_of(before))
            await uow.save(after)
            await applier.apply(effect_of(after))
            return before, after

        (before, after), applier, correlation_id = await self._mutate(
            "update_transaction", work, entity_id=transaction_id
        )
        await self._engine.audit_logger.log(
            LedgerEventBuilder.transaction_updated(
                before, after, applier.account_deltas, correlation_id
            )
        )
        return after

    async def delete_transaction(self, transaction_id: str) -> None:
        """
        Reverse a ledger entry's effect and remove it.

        Deleting a transaction that does not exist is a no-op.
        """

        async def work(uow: UnitOfWork, applier: EffectApplier) -> Optional[Transaction]:
            transaction = await uow.get(Collection.TRANSACTIONS, transaction_id)
            if transaction is None or transaction.owner_id != self._owner_id:
                return None
            await applier.reverse(effect_of(transaction))
            await uow.delete(Collection.TRANSACTIONS, transaction_id)
            return transaction

        transaction, applier, correlation_id = await self._mutate(
            "delete_transaction", work, entity_id=transaction_id
        )
        if transaction is not None:
            await self._engine.audit_logger.log(
                LedgerEventBuilder.transaction_deleted(
                    transaction, applier.account_deltas, correlation_id
                )
            )

    # =========================================================================
    # GOALS
    # =========================================================================

    async def contribute_to_goal(
        self,
        goal_id: str,
        amount: Decimal,
        account_id: str,
        description: Optional[str] = None,
    ) -> Transaction:
        """
        Move money from an account into a goal.

        Raises:
            ValueError: If amount is not positive
            NotFoundError: If the goal or the account does not exist
        """
        return await self._goal_movement(
            TransactionType.GOAL_CONTRIBUTION, goal_id, amount, account_id, description
        )

    async def withdraw_from_goal(
        self,
        goal_id: str,
        amount: Decimal,
        account_id: str,
        description: Optional[str] = None,
    ) -> Transaction:
        """
        Move money from a goal back into an account.

        Raises:
            ValueError: If amount is not positive
            NotFoundError: If the goal or the account does not exist
            InsufficientFundsError: If the goal holds less than amount
                                    (unless enforce_goal_funds is off)
        """
        return await self._goal_movement(
            TransactionType.GOAL_WITHDRAWAL, goal_id, amount, account_id, description
        )

    async def _goal_movement(
        self,
        transaction_type: TransactionType,
        goal_id: str,
        amount: Decimal,
        account_id: str,
        description: Optional[str],
    ) -> Transaction:
        amount = _positive_amount(amount)

        async def work(uow: UnitOfWork, applier: EffectApplier) -> Transaction:
            goal = await self._get_owned(uow, Collection.GOALS, goal_id)
            await self._get_owned(uow, Collection.ACCOUNTS, account_id)

            if transaction_type == TransactionType.GOAL_CONTRIBUTION:
                default_description = f"Contribution to {goal.name}"
            else:
                default_description = f"Withdrawal from {goal.name}"

            transaction = Transaction(
                owner_id=self._owner_id,
                type=transaction_type,
                amount=amount,
                account_id=account_id,
                category_id=transaction_type.value,
                goal_id=goal.id,
                description=description or default_description,
            )
            await uow.insert(transaction)
            await applier.apply(effect_of(transaction))
            return transaction

        transaction, applier, correlation_id = await self._mutate(
            transaction_type.value.replace("-", "_"), work, entity_id=goal_id
        )
        await self._engine.audit_logger.log(
            LedgerEventBuilder.goal_movement(
                transaction, applier.goal_amounts.get(goal_id, ZERO), correlation_id
            )
        )
        return transaction

    async def delete_goal(self, goal_id: str) -> None:
        """
        Delete a goal and every contribution and withdrawal linked to it.

        Each entry's effect on its accounts is reversed first, so the
        accounts end up as if the entries never existed.

        Raises:
            NotFoundError: If the goal does not exist
        """

        async def work(uow: UnitOfWork, applier: EffectApplier) -> int:
            goal = await self._get_owned(uow, Collection.GOALS, goal_id)
            linked = [
                transaction
                for transaction in await uow.list_transactions(
                    self._owner_id, TransactionFilters(goal_id=goal.id)
                )
                if transaction.type.is_goal_event
            ]
            for transaction in linked:
                await applier.reverse(effect_of(transaction).without_goal())
                await uow.delete(Collection.TRANSACTIONS, transaction.id)
            await uow.delete(Collection.GOALS, goal.id)
            return len(linked)

        removed, applier, correlation_id = await self._mutate(
            "delete_goal", work, entity_id=goal_id
        )
        await self._engine.audit_logger.log(
            LedgerEventBuilder.goal_deleted(
                self._owner_id, goal_id, removed, applier.account_deltas, correlation_id
            )
        )

    async def add_goal(
        self,
        name: str,
        target_amount: Decimal,
        goal_type: GoalType = GoalType.SAVINGS,
        deadline: Optional[datetime] = None,
        account_id: Optional[str] = None,
    ) -> Goal:
        goal = Goal(
            owner_id=self._owner_id,
            name=name,
            type=goal_type,
            target_amount=target_amount,
            deadline=deadline,
            account_id=account_id,
        )

        async def work(uow: UnitOfWork, applier: EffectApplier) -> Goal:
            return await uow.insert(goal)

        await self._mutate("add_goal", work, entity_id=goal.id)
        return goal

    async def cancel_goal(self, goal_id: str) -> Goal:
        """Cancel a goal. Its amount and ledger entries stay as they are."""

        async def work(uow: UnitOfWork, applier: EffectApplier) -> Goal:
            goal = await self._get_owned(uow, Collection.GOALS, goal_id)
            goal.status = GoalStatus.CANCELLED
            goal.updated_at = utcnow()
            return await uow.save(goal)

        goal, _, _ = await self._mutate("cancel_goal", work, entity_id=goal_id)
        return goal

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    async def open_account(
        self,
        name: str,
        account_type: AccountType = AccountType.BANK,
        initial_balance: Decimal = ZERO,
        currency: str = "USD",
    ) -> Account:
        account = Account(
            owner_id=self._owner_id,
            name=name,
            type=account_type,
            initial_balance=initial_balance,
            balance=initial_balance,
            currency=currency,
        )

        async def work(uow: UnitOfWork, applier: EffectApplier) -> Account:
            return await uow.insert(account)

        _, _, correlation_id = await self._mutate("open_account", work, entity_id=account.id)
        await self._engine.audit_logger.log(
            LedgerEventBuilder.account_changed(
                LedgerEventType.ACCOUNT_OPENED,
                self._owner_id,
                account.id,
                f"Account {account.name} opened with {account.balance}",
                correlation_id,
            )
        )
        return account

    async def archive_account(self, account_id: str) -> Account:
        """Mark an account inactive. Its balance and history are kept."""

        async def work(uow: UnitOfWork, applier: EffectApplier) -> Account:
            account = await self._get_owned(uow, Collection.ACCOUNTS, account_id)
            account.is_active = False
            account.updated_at = utcnow()
            return await uow.save(account)

        account, _, correlation_id = await self._mutate(
            "archive_account", work, entity_id=account_id
        )
        await self._engine.audit_logger.log(
            LedgerEventBuilder.account_changed(
                LedgerEventType.ACCOUNT_ARCHIVED,
                self._owner_id,
                account_id,
                f"Account {account.name} archived",
                correlation_id,
            )
        )
        return account

    async def delete_account(self, account_id: str) -> None:
        """
        Delete an account nothing references.

        Raises:
            NotFoundError: If the account does not exist
            InvalidStateError: If any transaction uses the account as
                               source or destination
        """

        async def work(uow: UnitOfWork, applier: EffectApplier) -> Account:
            account = await self._get_owned(uow, Collection.ACCOUNTS, account_id)
            references = await uow.count_account_references(account_id)
            if references > 0:
                raise InvalidStateError(
                    f"Account {account.name} is used by {references} transaction(s); "
                    "archive it instead"
                )
            await uow.delete(Collection.ACCOUNTS, account_id)
            return account

        account, _, correlation_id = await self._mutate(
            "delete_account", work, entity_id=account_id
        )
        await self._engine.audit_logger.log(
            LedgerEventBuilder.account_changed(
                LedgerEventType.ACCOUNT_DELETED,
                self._owner_id,
                account_id,
                f"Account {account.name} deleted",
                correlation_id,
            )
        )

    # =========================================================================
    # CATEGORIES & BUDGETS
    # =========================================================================

    async def add_category(
        self,
        name: str,
        category_type: CategoryType = CategoryType.EXPENSE,
        parent_id: Optional[str] = None,
        is_default: bool = False,
        order: int = 0,
        category_id: Optional[str] = None,
    ) -> Category:
        fields = {"id": category_id} if category_id else {}
        category = Category(
            owner_id=self._owner_id,
            name=name,
            type=category_type,
            parent_id=parent_id,
            is_default=is_default,
            order=order,
            **fields,
        )

        async def work(uow: UnitOfWork, applier: EffectApplier) -> Category:
            return await uow.insert(category)

        await self._mutate("add_category", work, entity_id=category.id)
        return category

    async def add_budget(
        self,
        name: str,
        category_ids: list[str],
        amount: Decimal,
        start_date: datetime,
        period: BudgetPeriod = BudgetPeriod.MONTHLY,
        end_date: Optional[datetime] = None,
        rollover: bool = False,
        alert_thresholds: Optional[list[int]] = None,
    ) -> Budget:
        """Create a budget. Alert thresholds default to the configured ones."""
        if alert_thresholds is None:
            alert_thresholds = self._engine.settings.alert_thresholds_list

        budget = Budget(
            owner_id=self._owner_id,
            name=name,
            category_ids=category_ids,
            amount=amount,
            period=period,
            start_date=start_date,
            end_date=end_date,
            rollover=rollover,
            alerts=BudgetAlertConfig(thresholds=alert_thresholds),
        )

        async def work(uow: UnitOfWork, applier: EffectApplier) -> Budget:
            return await uow.insert(budget)

        await self._mutate("add_budget", work, entity_id=budget.id)
        return budget

    # =========================================================================
    # READS
    # =========================================================================

    async def get_account(self, account_id: str) -> Optional[Account]:
        return await self._find_owned(Collection.ACCOUNTS, account_id)

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return await self._find_owned(Collection.TRANSACTIONS, transaction_id)

    async def get_budget(self, budget_id: str) -> Optional[Budget]:
        return await self._find_owned(Collection.BUDGETS, budget_id)

    async def get_goal(self, goal_id: str) -> Optional[Goal]:
        return await self._find_owned(Collection.GOALS, goal_id)

    async def list_accounts(self, is_active: Optional[bool] = None) -> list[Account]:
        async with self._engine.store.read() as uow:
            return await uow.list_accounts(self._owner_id, is_active)

    async def list_categories(
        self,
        category_type: Optional[CategoryType] = None,
    ) -> list[Category]:
        async with self._engine.store.read() as uow:
            return await uow.list_categories(self._owner_id, category_type)

    async def list_transactions(
        self,
        filters: Optional[TransactionFilters] = None,
    ) -> list[Transaction]:
        async with self._engine.store.read() as uow:
            return await uow.list_transactions(self._owner_id, filters)

    async def list_budgets(self, is_active: Optional[bool] = None) -> list[Budget]:
        async with self._engine.store.read() as uow:
            return await uow.list_budgets(self._owner_id, is_active)

    async def list_goals(self, status: Optional[GoalStatus] = None) -> list[Goal]:
        async with self._engine.store.read() as uow:
            return await uow.list_goals(self._owner_id, status)

    # =========================================================================
    # DERIVED VALUES (recomputed on every call)
    # =========================================================================

    async def budget_progress(
        self,
        budget_id: str,
        now: Optional[datetime] = None,
    ) -> BudgetProgress:
        """
        Raises:
            NotFoundError: If the budget does not exist
        """
        now = now or utcnow()
        async with self._engine.store.read() as uow:
            budget = await self._get_owned(uow, Collection.BUDGETS, budget_id)
            period_start, period_end = budget_window(budget, now)
            transactions = await uow.list_transactions(
                self._owner_id,
                TransactionFilters(
                    type=TransactionType.EXPENSE,
                    date_from=period_start,
                    date_to=period_end,
                ),
            )
        return calculate_budget_progress(budget, transactions, now)

    async def all_budget_progress(self, now: Optional[datetime] = None) -> list[BudgetProgress]:
        """Progress of every active budget."""
        now = now or utcnow()
        async with self._engine.store.read() as uow:
            budgets = await uow.list_budgets(self._owner_id, is_active=True)
            expenses = await uow.list_transactions(
                self._owner_id, TransactionFilters(type=TransactionType.EXPENSE)
            )
        return [calculate_budget_progress(budget, expenses, now) for budget in budgets]

    async def goal_progress(
        self,
        goal_id: str,
        now: Optional[datetime] = None,
    ) -> GoalProgress:
        """
        Raises:
            NotFoundError: If the goal does not exist
        """
        async with self._engine.store.read() as uow:
            goal = await self._get_owned(uow, Collection.GOALS, goal_id)
        return calculate_goal_progress(goal, now or utcnow())

    async def total_balance(self, exclude_inactive: bool = False) -> Decimal:
        accounts = await self.list_accounts(is_active=True if exclude_inactive else None)
        return sum((account.balance for account in accounts), ZERO)

    async def net_worth(self) -> Decimal:
        """Account balances minus what is still owed on active debt goals."""
        async with self._engine.store.read() as uow:
            accounts = await uow.list_accounts(self._owner_id)
            goals = await uow.list_goals(self._owner_id)
        return calculate_net_worth(accounts, goals)

    async def account_balances(self) -> AccountBalances:
        return calculate_account_balances(await self.list_accounts())

    async def monthly_stats(self, year: int, month: int) -> MonthlyStats:
        period_start, period_end = month_bounds(year, month)
        transactions = await self.list_transactions(
            TransactionFilters(date_from=period_start, date_to=period_end)
        )
        return calculate_monthly_stats(transactions, period_start, period_end)

    async def spending_by_category(
        self,
        period_start: datetime,
        period_end: datetime,
    ) -> list[CategorySpending]:
        async with self._engine.store.read() as uow:
            categories = await uow.list_categories(self._owner_id)
            transactions = await uow.list_transactions(
                self._owner_id,
                TransactionFilters(
                    type=TransactionType.EXPENSE,
                    date_from=period_start,
                    date_to=period_end,
                ),
            )
        names = {category.id: category.name for category in categories}
        return calculate_spending_by_category(transactions, period_start, period_end, names)

    async def transaction_counts(
        self,
        period_start: datetime,
        period_end: datetime,
    ) -> dict[str, int]:
        transactions = await self.list_transactions(
            TransactionFilters(date_from=period_start, date_to=period_end)
        )
        return calculate_transaction_counts(transactions, period_start, period_end)

    async def average_transaction(
        self,
        transaction_type: Optional[TransactionType] = None,
    ) -> Decimal:
        return calculate_average_transaction(await self.list_transactions(), transaction_type)

    async def verify_balances(self) -> dict[str, Decimal]:
        """
        Compare every stored balance with the one derived from the ledger.

        Returns:
            account id -> difference, for accounts that drifted. Empty
            when every balance is consistent.
        """
        async with self._engine.store.read() as uow:
            accounts = await uow.list_accounts(self._owner_id)
            transactions = await uow.list_transactions(self._owner_id)

        drifted = {}
        for account in accounts:
            derived = calculate_account_balance(
                account.id, account.initial_balance, transactions
            )
            is_valid, difference = validate_balance(account.balance, derived)
            if not is_valid:
                drifted[account.id] = difference
        return drifted
