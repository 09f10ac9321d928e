"""
Income Allocation Workflow

Recording an income touches two things: the income record and six jars.
They are written in two steps with an outbox marker between them:

1. The record is saved with allocation_status=PENDING
2. The jar increments are applied and the record flipped to APPLIED,
   together, in one storage transaction keyed by the record id

Step 2 is retried with exponential backoff. If it still fails, the
record stays PENDING and `reconcile` applies it later. Because step 2
only acts on PENDING records, an allocation can never land twice.
"""

from typing import Optional
from uuid import UUID

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from dailymoney.jars import AllocationCalculator, to_amount
from dailymoney.ledger.incomes import IncomeStore
from dailymoney.ledger.jar_ledger import Clock, JarLedger
from dailymoney.models.ledger import AllocationStatus, IncomeRecord, utc_now
from dailymoney.services.storage import NotFoundError, StorageError


logger = structlog.get_logger(__name__)


class AllocationPendingError(StorageError):
    """The income was saved but its allocation has not reached the jars."""

    def __init__(self, income_id: UUID, message: str):
        self.income_id = income_id
        super().__init__(message)


class IncomeAllocationWorkflow:
    """Saves income records and applies their allocations."""

    def __init__(
        self,
        ledger: JarLedger,
        incomes: IncomeStore,
        calculator: Optional[AllocationCalculator] = None,
        clock: Clock = utc_now,
        retry_attempts: int = 3,
        retry_wait: Optional[wait_base] = None,
    ):
        self._ledger = ledger
        self._incomes = incomes
        self._calculator = calculator or AllocationCalculator(ledger.catalog)
        self._clock = clock
        self._retry_attempts = retry_attempts
        self._retry_wait = retry_wait or wait_exponential(multiplier=0.5, min=0.5, max=5)

    async def _apply(self, user_id: str, income: IncomeRecord) -> bool:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._retry_attempts),
            wait=self._retry_wait,
            retry=(
                retry_if_exception_type(StorageError)
                & retry_if_not_exception_type(NotFoundError)
            ),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(
                        "allocation_retry",
                        user_id=user_id,
                        income_id=str(income.id),
                        attempt=attempt.retry_state.attempt_number,
                    )
                return await self._ledger.allocate(
                    user_id, income.allocated, income_id=income.id
                )

    async def record_income(
        self,
        user_id: str,
        amount: object,
        source: str,
        note: Optional[str] = None,
        category: Optional[str] = None,
        auto_allocate: bool = True,
    ) -> UUID:
        """
        Save an income record and, by default, split it into the jars.

        Raises:
            InvalidAmountError: If amount is not a positive whole number
            AllocationPendingError: If the record was saved but the jars
                could not be updated; `reconcile` will finish the job
            StorageError: If the record itself could not be saved
        """
        value = to_amount(amount)
        income = IncomeRecord(
            amount=value,
            source=source,
            note=note or "",
            category=category or "",
            allocated=self._calculator.allocate_all(value),
            allocation_status=(
                AllocationStatus.PENDING if auto_allocate else AllocationStatus.SKIPPED
            ),
            created_at=self._clock(),
        )

        await self._incomes.save(user_id, income)
        logger.info(
            "income_recorded",
            user_id=user_id,
            income_id=str(income.id),
            amount=value,
            allocated=income.allocated_total,
            drift=self._calculator.rounding_drift(value, income.allocated),
        )

        if auto_allocate:
            try:
                await self._apply(user_id, income)
            except StorageError as e:
                logger.error(
                    "allocation_deferred",
                    user_id=user_id,
                    income_id=str(income.id),
                    error=str(e),
                )
                raise AllocationPendingError(
                    income.id,
                    f"Income {income.id} saved but allocation is pending: {e}",
                ) from e

        return income.id

    async def reconcile(self, user_id: str) -> list[UUID]:
        """
        Apply every PENDING income of the user.

        Returns:
            Ids of the incomes applied by this call
        """
        applied = []
        for income in await self._incomes.pending(user_id):
            if await self._apply(user_id, income):
                applied.append(income.id)

        if applied:
            logger.info("allocations_reconciled", user_id=user_id, count=len(applied))
        return applied
