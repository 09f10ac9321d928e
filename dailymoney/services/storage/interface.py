"""
Abstract Storage Interface

We define abstract interfaces for every storage concern so that:
1. SQLite can be swapped for a hosted document store later
2. In-memory storage can be used for testing
3. Business logic stays decoupled from the storage implementation

The minimum capability the ledger needs from a backend:
- atomic signed increments on jar fields
- multi-key atomic writes (one call = one transaction)
- document read/write
- ordered range queries by timestamp with an equality filter

Every jar mutation arrives here as a list of JarDelta. Backends must apply
the whole list or nothing, and must apply each field as an increment,
never as a read-modify-write of the absolute value.
"""

from abc import ABC, abstractmethod
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


class JarStorageInterface(ABC):
    """Per-user, per-jar running totals."""

    @abstractmethod
    async def initialize_jars(
        self,
        user_id: str,
        codes: tuple[str, ...],
        now: datetime,
    ) -> bool:
        """
        Create zeroed jar rows for any of `codes` the user does not have yet.

        Existing rows are never touched.

        Returns:
            True if at least one row was created
        """
        pass

    @abstractmethod
    async def get_jars(self, user_id: str) -> dict[str, JarState]:
        """
        Read all jar rows of a user.

        Returns:
            Mapping of jar code to state; empty if the user has no jars yet
        """
        pass

    @abstractmethod
    async def apply_jar_deltas(
        self,
        user_id: str,
        deltas: list[JarDelta],
        now: datetime,
    ) -> None:
        """
        Atomically apply signed increments to several jars.

        Raises:
            NotFoundError: If any referenced jar row is missing (nothing applied)
            StorageError: If the write fails (nothing applied)
        """
        pass

    @abstractmethod
    async def reset_jars(self, user_id: str, now: datetime) -> list[JarPeriodSummary]:
        """
        Close the current period for every jar in one atomic write.

        Archives a JarPeriodSummary per jar, then sets balance := allocated,
        spent := 0 and period_started_at := now.

        Returns:
            The archived summaries
        """
        pass

    @abstractmethod
    async def list_jar_periods(
        self,
        user_id: str,
        jar_code: Optional[str] = None,
    ) -> list[JarPeriodSummary]:
        """Archived period summaries, newest first."""
        pass


class IncomeStorageInterface(ABC):
    """Income records and their allocation outbox marker."""

    @abstractmethod
    async def save_income(self, user_id: str, income: IncomeRecord) -> bool:
        """
        Persist a new income record.

        Raises:
            DuplicateError: If the id already exists
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get_income(self, user_id: str, income_id: UUID) -> Optional[IncomeRecord]:
        pass

    @abstractmethod
    async def list_incomes(
        self,
        user_id: str,
        status: Optional[AllocationStatus] = None,
        limit: int = 50,
    ) -> list[IncomeRecord]:
        """Income records, newest first."""
        pass

    @abstractmethod
    async def sum_incomes(
        self,
        user_id: str,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> int:
        """Total income amount with created_at in [date_from, date_to]."""
        pass

    @abstractmethod
    async def apply_income_allocation(
        self,
        user_id: str,
        income_id: UUID,
        deltas: list[JarDelta],
        now: datetime,
    ) -> bool:
        """
        Apply an income's jar deltas and mark it APPLIED, atomically.

        A record that is not PENDING is left alone, which makes this call
        safe to repeat.

        Returns:
            True if the deltas were applied by this call

        Raises:
            NotFoundError: If the income or any jar row is missing
        """
        pass


class TransactionStorageInterface(ABC):
    """Append-only expense/income/transfer records."""

    @abstractmethod
    async def save_transaction(
        self,
        user_id: str,
        transaction: Transaction,
        deltas: list[JarDelta],
        now: datetime,
    ) -> bool:
        """
        Persist a transaction together with its jar deltas, atomically.

        `deltas` is empty for transactions that do not move jar balances.

        Raises:
            NotFoundError: If a jar referenced by `deltas` is missing
            StorageError: If save fails (nothing persisted)
        """
        pass

    @abstractmethod
    async def get_transaction(
        self,
        user_id: str,
        transaction_id: UUID,
    ) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def list_transactions(
        self,
        user_id: str,
        jar_code: Optional[str] = None,
        transaction_type: Optional[TransactionType] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: int = 50,
    ) -> list[Transaction]:
        """Matching transactions, newest first."""
        pass

    @abstractmethod
    async def delete_transaction(self, user_id: str, transaction_id: UUID) -> bool:
        """
        Delete a transaction record. Jar state is not touched.

        Returns:
            True if a record was deleted
        """
        pass

    @abstractmethod
    async def sum_transactions(
        self,
        user_id: str,
        transaction_type: TransactionType,
        jar_code: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> int:
        """Total amount of matching transactions in [date_from, date_to]."""
        pass


class BudgetStorageInterface(ABC):
    """User-defined spending thresholds."""

    @abstractmethod
    async def save_budget(self, user_id: str, budget: Budget) -> bool:
        pass

    @abstractmethod
    async def get_budget(self, user_id: str, budget_id: UUID) -> Optional[Budget]:
        pass

    @abstractmethod
    async def list_budgets(self, user_id: str) -> list[Budget]:
        """All budgets, most recently created first."""
        pass

    @abstractmethod
    async def update_budget(self, user_id: str, budget: Budget) -> bool:
        """
        Raises:
            NotFoundError: If budget doesn't exist
        """
        pass

    @abstractmethod
    async def delete_budget(self, user_id: str, budget_id: UUID) -> bool:
        pass


class GoalStorageInterface(ABC):
    """Financial goals."""

    @abstractmethod
    async def save_goal(self, user_id: str, goal: FinancialGoal) -> bool:
        pass

    @abstractmethod
    async def get_goal(self, user_id: str, goal_id: UUID) -> Optional[FinancialGoal]:
        pass

    @abstractmethod
    async def list_goals(
        self,
        user_id: str,
        status: Optional[GoalStatus] = None,
    ) -> list[FinancialGoal]:
        """Goals, most recently created first."""
        pass

    @abstractmethod
    async def update_goal(self, user_id: str, goal: FinancialGoal) -> bool:
        """
        Raises:
            NotFoundError: If goal doesn't exist
        """
        pass

    @abstractmethod
    async def delete_goal(self, user_id: str, goal_id: UUID) -> bool:
        pass


class LedgerStorage(
    JarStorageInterface,
    IncomeStorageInterface,
    TransactionStorageInterface,
    BudgetStorageInterface,
    GoalStorageInterface,
):
    """
    A single backend implementing every ledger concern.

    Income allocation and expense recording write to jars and records in
    one transaction, so these concerns must share a backend.
    """


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Events sharing a correlation id, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Events for a specific entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
