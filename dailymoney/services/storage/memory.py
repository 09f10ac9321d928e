"""
In-Memory Storage Implementation

Used by the test-suite and for throwaway sessions. Nothing survives the
process.

Each method runs to completion without awaiting, so on a single event loop
every call is atomic: multi-jar writes validate first, then commit all
changes in one step.
"""

from collections import defaultdict
from datetime import datetime
from typing import Optional
from uuid import UUID

from dailymoney.models.audit import AuditEvent
from dailymoney.models.ledger import (
    AllocationStatus,
    Budget,
    FinancialGoal,
    GoalStatus,
    IncomeRecord,
    JarDelta,
    JarPeriodSummary,
    JarState,
    Transaction,
    TransactionType,
)
from dailymoney.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorage,
    NotFoundError,
)


def _in_window(
    created_at: datetime,
    date_from: Optional[datetime],
    date_to: Optional[datetime],
) -> bool:
    if date_from is not None and created_at < date_from:
        return False
    if date_to is not None and created_at > date_to:
        return False
    return True


class InMemoryLedgerStorage(LedgerStorage):
    """Dict-backed ledger storage, partitioned by user."""

    def __init__(self):
        self._jars: dict[str, dict[str, JarState]] = defaultdict(dict)
        self._periods: dict[str, list[JarPeriodSummary]] = defaultdict(list)
        self._incomes: dict[str, dict[UUID, IncomeRecord]] = defaultdict(dict)
        self._transactions: dict[str, dict[UUID, Transaction]] = defaultdict(dict)
        self._budgets: dict[str, dict[UUID, Budget]] = defaultdict(dict)
        self._goals: dict[str, dict[UUID, FinancialGoal]] = defaultdict(dict)

    # -- jars ---------------------------------------------------------------

    def _apply(self, user_id: str, deltas: list[JarDelta], now: datetime) -> None:
        jars = self._jars[user_id]
        missing = [d.code for d in deltas if d.code not in jars]
        if missing:
            raise NotFoundError(f"Jars not initialized for user {user_id}: {missing}")

        updated = dict(jars)
        for delta in deltas:
            state = updated[delta.code]
            updated[delta.code] = state.model_copy(update={
                "allocated": state.allocated + delta.allocated,
                "spent": state.spent + delta.spent,
                "balance": state.balance + delta.balance,
                "updated_at": now,
            })
        jars.update(updated)

    async def initialize_jars(
        self,
        user_id: str,
        codes: tuple[str, ...],
        now: datetime,
    ) -> bool:
        jars = self._jars[user_id]
        created = False
        for code in codes:
            if code not in jars:
                jars[code] = JarState(code=code, updated_at=now, period_started_at=now)
                created = True
        return created

    async def get_jars(self, user_id: str) -> dict[str, JarState]:
        return {code: state.model_copy() for code, state in self._jars.get(user_id, {}).items()}

    async def apply_jar_deltas(
        self,
        user_id: str,
        deltas: list[JarDelta],
        now: datetime,
    ) -> None:
        self._apply(user_id, deltas, now)

    async def reset_jars(self, user_id: str, now: datetime) -> list[JarPeriodSummary]:
        jars = self._jars.get(user_id, {})
        summaries = []
        for code, state in jars.items():
            summaries.append(JarPeriodSummary(
                code=code,
                period_start=state.period_started_at,
                period_end=now,
                allocated=state.allocated,
                spent=state.spent,
                balance=state.balance,
            ))
            jars[code] = state.model_copy(update={
                "balance": state.allocated,
                "spent": 0,
                "updated_at": now,
                "period_started_at": now,
            })
        self._periods[user_id].extend(summaries)
        return summaries

    async def list_jar_periods(
        self,
        user_id: str,
        jar_code: Optional[str] = None,
    ) -> list[JarPeriodSummary]:
        periods = [
            p for p in self._periods.get(user_id, [])
            if jar_code is None or p.code == jar_code
        ]
        return sorted(periods, key=lambda p: p.period_end, reverse=True)

    # -- incomes ------------------------------------------------------------

    async def save_income(self, user_id: str, income: IncomeRecord) -> bool:
        incomes = self._incomes[user_id]
        if income.id in incomes:
            raise DuplicateError(f"Income already exists: {income.id}")
        incomes[income.id] = income.model_copy(deep=True)
        return True

    async def get_income(self, user_id: str, income_id: UUID) -> Optional[IncomeRecord]:
        income = self._incomes.get(user_id, {}).get(income_id)
        return income.model_copy(deep=True) if income else None

    async def list_incomes(
        self,
        user_id: str,
        status: Optional[AllocationStatus] = None,
        limit: int = 50,
    ) -> list[IncomeRecord]:
        incomes = [
            i for i in self._incomes.get(user_id, {}).values()
            if status is None or i.allocation_status == status
        ]
        incomes.sort(key=lambda i: i.created_at, reverse=True)
        return [i.model_copy(deep=True) for i in incomes[:limit]]

    async def sum_incomes(
        self,
        user_id: str,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> int:
        return sum(
            i.amount for i in self._incomes.get(user_id, {}).values()
            if _in_window(i.created_at, date_from, date_to)
        )

    async def apply_income_allocation(
        self,
        user_id: str,
        income_id: UUID,
        deltas: list[JarDelta],
        now: datetime,
    ) -> bool:
        incomes = self._incomes.get(user_id, {})
        income = incomes.get(income_id)
        if income is None:
            raise NotFoundError(f"Income not found: {income_id}")
        if income.allocation_status != AllocationStatus.PENDING:
            return False
        self._apply(user_id, deltas, now)
        incomes[income_id] = income.model_copy(
            update={"allocation_status": AllocationStatus.APPLIED}
        )
        return True

    # -- transactions -------------------------------------------------------

    async def save_transaction(
        self,
        user_id: str,
        transaction: Transaction,
        deltas: list[JarDelta],
        now: datetime,
    ) -> bool:
        transactions = self._transactions[user_id]
        if transaction.id in transactions:
            raise DuplicateError(f"Transaction already exists: {transaction.id}")
        self._apply(user_id, deltas, now)
        transactions[transaction.id] = transaction.model_copy()
        return True

    async def get_transaction(
        self,
        user_id: str,
        transaction_id: UUID,
    ) -> Optional[Transaction]:
        transaction = self._transactions.get(user_id, {}).get(transaction_id)
        return transaction.model_copy() if transaction else None

    def _matching(
        self,
        user_id: str,
        jar_code: Optional[str],
        transaction_type: Optional[TransactionType],
        date_from: Optional[datetime],
        date_to: Optional[datetime],
    ) -> list[Transaction]:
        return [
            t for t in self._transactions.get(user_id, {}).values()
            if (jar_code is None or t.jar_code == jar_code)
            and (transaction_type is None or t.type == transaction_type)
            and _in_window(t.created_at, date_from, date_to)
        ]

    async def list_transactions(
        self,
        user_id: str,
        jar_code: Optional[str] = None,
        transaction_type: Optional[TransactionType] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: int = 50,
    ) -> list[Transaction]:
        transactions = self._matching(user_id, jar_code, transaction_type, date_from, date_to)
        transactions.sort(key=lambda t: t.created_at, reverse=True)
        return [t.model_copy() for t in transactions[:limit]]

    async def delete_transaction(self, user_id: str, transaction_id: UUID) -> bool:
        return self._transactions.get(user_id, {}).pop(transaction_id, None) is not None

    async def sum_transactions(
        self,
        user_id: str,
        transaction_type: TransactionType,
        jar_code: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> int:
        return sum(
            t.amount
            for t in self._matching(user_id, jar_code, transaction_type, date_from, date_to)
        )

    # -- budgets ------------------------------------------------------------

    async def save_budget(self, user_id: str, budget: Budget) -> bool:
        budgets = self._budgets[user_id]
        if budget.id in budgets:
            raise DuplicateError(f"Budget already exists: {budget.id}")
        budgets[budget.id] = budget.model_copy()
        return True

    async def get_budget(self, user_id: str, budget_id: UUID) -> Optional[Budget]:
        budget = self._budgets.get(user_id, {}).get(budget_id)
        return budget.model_copy() if budget else None

    async def list_budgets(self, user_id: str) -> list[Budget]:
        budgets = sorted(
            self._budgets.get(user_id, {}).values(),
            key=lambda b: b.created_at,
            reverse=True,
        )
        return [b.model_copy() for b in budgets]

    async def update_budget(self, user_id: str, budget: Budget) -> bool:
        budgets = self._budgets.get(user_id, {})
        if budget.id not in budgets:
            raise NotFoundError(f"Budget not found: {budget.id}")
        budgets[budget.id] = budget.model_copy()
        return True

    async def delete_budget(self, user_id: str, budget_id: UUID) -> bool:
        return self._budgets.get(user_id, {}).pop(budget_id, None) is not None

    # -- goals --------------------------------------------------------------

    async def save_goal(self, user_id: str, goal: FinancialGoal) -> bool:
        goals = self._goals[user_id]
        if goal.id in goals:
            raise DuplicateError(f"Goal already exists: {goal.id}")
        goals[goal.id] = goal.model_copy()
        return True

    async def get_goal(self, user_id: str, goal_id: UUID) -> Optional[FinancialGoal]:
        goal = self._goals.get(user_id, {}).get(goal_id)
        return goal.model_copy() if goal else None

    async def list_goals(
        self,
        user_id: str,
        status: Optional[GoalStatus] = None,
    ) -> list[FinancialGoal]:
        goals = sorted(
            (g for g in self._goals.get(user_id, {}).values()
             if status is None or g.status == status),
            key=lambda g: g.created_at,
            reverse=True,
        )
        return [g.model_copy() for g in goals]

    async def update_goal(self, user_id: str, goal: FinancialGoal) -> bool:
        goals = self._goals.get(user_id, {})
        if goal.id not in goals:
            raise NotFoundError(f"Goal not found: {goal.id}")
        goals[goal.id] = goal.model_copy()
        return True

    async def delete_goal(self, user_id: str, goal_id: UUID) -> bool:
        return self._goals.get(user_id, {}).pop(goal_id, None) is not None


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]
