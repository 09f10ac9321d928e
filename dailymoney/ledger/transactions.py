"""
Transaction Store

Append-only record of expense, income and transfer events. An expense
is written together with its jar debit in one storage call, so there is
never an expense without a debit or a debit without an expense.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

import structlog

from dailymoney.jars import to_amount
from dailymoney.ledger.jar_ledger import Clock, JarLedger
from dailymoney.ledger.windows import month_window
from dailymoney.models.ledger import Transaction, TransactionType, ensure_utc, utc_now
from dailymoney.services.storage import LedgerStorage


logger = structlog.get_logger(__name__)


class TransactionStore:
    """Records transactions and answers windowed expense queries."""

    def __init__(
        self,
        storage: LedgerStorage,
        ledger: JarLedger,
        clock: Clock = utc_now,
        default_max_results: int = 50,
    ):
        self._storage = storage
        self._ledger = ledger
        self._clock = clock
        self._default_max_results = default_max_results

    async def append(
        self,
        user_id: str,
        amount: object,
        type: TransactionType = TransactionType.EXPENSE,
        jar_code: Optional[str] = None,
        category: str = "",
        description: str = "",
        recognized_text: Optional[str] = None,
    ) -> UUID:
        """
        Record a transaction with a server-side timestamp.

        Expenses debit their jar in the same write. Other types do not
        move jar balances.

        Raises:
            InvalidAmountError: If amount is not a positive whole number
            UnknownJarError: If an expense names a jar outside the catalog
            ValueError: If an expense names no jar
        """
        value = to_amount(amount)
        if type == TransactionType.EXPENSE:
            if jar_code is None:
                raise ValueError("Expense transactions require a jar code")
            deltas = self._ledger.expense_deltas(jar_code, value)
        else:
            if jar_code is not None:
                self._ledger.catalog.require(jar_code)
            deltas = []

        now = self._clock()
        transaction = Transaction(
            amount=value,
            jar_code=jar_code,
            category=category,
            description=description,
            type=type,
            recognized_text=recognized_text,
            created_at=now,
        )

        if deltas:
            await self._ledger.initialize(user_id)
        await self._storage.save_transaction(user_id, transaction, deltas, now)

        logger.info(
            "transaction_recorded",
            user_id=user_id,
            transaction_id=str(transaction.id),
            type=type.value,
            jar=jar_code,
            amount=value,
        )
        return transaction.id

    async def get(self, user_id: str, transaction_id: UUID) -> Optional[Transaction]:
        return await self._storage.get_transaction(user_id, transaction_id)

    async def list(
        self,
        user_id: str,
        jar_code: Optional[str] = None,
        max_results: Optional[int] = None,
    ) -> list[Transaction]:
        """Most recent first, at most `max_results` records."""
        if jar_code is not None:
            self._ledger.catalog.require(jar_code)
        limit = self._default_max_results if max_results is None else max_results
        if limit < 1:
            raise ValueError(f"max_results must be positive, got {limit}")
        return await self._storage.list_transactions(user_id, jar_code=jar_code, limit=limit)

    async def remove(self, user_id: str, transaction_id: UUID) -> bool:
        """
        Delete the record only. The jar debit stays in place.

        Returns:
            True if a record was deleted
        """
        deleted = await self._storage.delete_transaction(user_id, transaction_id)
        if deleted:
            logger.warning(
                "transaction_removed_without_reversal",
                user_id=user_id,
                transaction_id=str(transaction_id),
            )
        return deleted

    async def sum_expenses_in_window(
        self,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> int:
        """Total expenses with start <= created_at <= end; None is unbounded."""
        return await self._storage.sum_transactions(
            user_id,
            TransactionType.EXPENSE,
            date_from=ensure_utc(start) if start is not None else None,
            date_to=ensure_utc(end) if end is not None else None,
        )

    async def spent_by_jar(
        self,
        user_id: str,
        code: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> int:
        self._ledger.catalog.require(code)
        return await self._storage.sum_transactions(
            user_id,
            TransactionType.EXPENSE,
            jar_code=code,
            date_from=ensure_utc(start) if start is not None else None,
            date_to=ensure_utc(end) if end is not None else None,
        )

    async def monthly_spent_by_jar(
        self,
        user_id: str,
        code: str,
        now: Optional[datetime] = None,
    ) -> int:
        """Expenses of one jar from the start of the current month."""
        now = ensure_utc(now) if now is not None else self._clock()
        return await self.spent_by_jar(user_id, code, *month_window(now.month, now.year))
