"""
Income Store

Read and write access to income records. Records are written by the
income allocation workflow; everything else only reads them.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from dailymoney.models.ledger import AllocationStatus, IncomeRecord, ensure_utc
from dailymoney.services.storage import LedgerStorage


class IncomeStore:
    def __init__(self, storage: LedgerStorage, default_max_results: int = 50):
        self._storage = storage
        self._default_max_results = default_max_results

    async def save(self, user_id: str, income: IncomeRecord) -> None:
        await self._storage.save_income(user_id, income)

    async def get(self, user_id: str, income_id: UUID) -> Optional[IncomeRecord]:
        return await self._storage.get_income(user_id, income_id)

    async def pending(self, user_id: str) -> list[IncomeRecord]:
        """Records whose allocation has not reached the jars yet, oldest first."""
        records = await self._storage.list_incomes(
            user_id, status=AllocationStatus.PENDING, limit=10_000
        )
        return sorted(records, key=lambda r: r.created_at)

    async def sum_in_window(
        self,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> int:
        """Total income with start <= created_at <= end; None is unbounded."""
        return await self._storage.sum_incomes(
            user_id,
            date_from=ensure_utc(start) if start is not None else None,
            date_to=ensure_utc(end) if end is not None else None,
        )

    async def list(
        self,
        user_id: str,
        status: Optional[AllocationStatus] = None,
        max_results: Optional[int] = None,
    ) -> list[IncomeRecord]:
        """Most recent first."""
        limit = self._default_max_results if max_results is None else max_results
        if limit < 1:
            raise ValueError(f"max_results must be positive, got {limit}")
        return await self._storage.list_incomes(user_id, status=status, limit=limit)
