"""
Jar Ledger

Per-user, per-jar running totals. This is the only component that
decides how jar fields change; the storage layer only applies the
signed deltas it is given.

Every operation validates all of its input before the first write and
then issues exactly one storage call, so a rejected operation leaves
the jars untouched and an accepted one lands all-or-nothing.
"""

from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

import structlog

from dailymoney.jars import JarCatalog, get_catalog, to_amount
from dailymoney.models.ledger import JarDelta, JarPeriodSummary, JarState, utc_now
from dailymoney.services.storage import LedgerStorage


logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


class JarLedger:
    """
    Allocate, spend, transfer and reset operations on a user's jars.

    Jars are created lazily: the first access for a user creates all
    six rows at once, zeroed.
    """

    def __init__(
        self,
        storage: LedgerStorage,
        catalog: Optional[JarCatalog] = None,
        clock: Clock = utc_now,
    ):
        self._storage = storage
        self._catalog = catalog or get_catalog()
        self._clock = clock

    @property
    def catalog(self) -> JarCatalog:
        return self._catalog

    async def initialize(self, user_id: str) -> bool:
        """
        Create the user's jars if missing.

        Never resets existing jars, so calling it again is a no-op.

        Returns:
            True if any jar row was created
        """
        created = await self._storage.initialize_jars(
            user_id, self._catalog.codes(), self._clock()
        )
        if created:
            logger.info("jars_initialized", user_id=user_id)
        return created

    async def get_all(self, user_id: str) -> dict[str, JarState]:
        jars = await self._storage.get_jars(user_id)
        if set(self._catalog.codes()) - set(jars):
            await self.initialize(user_id)
            jars = await self._storage.get_jars(user_id)
        return {code: jars[code] for code in self._catalog.codes() if code in jars}

    async def get(self, user_id: str, code: str) -> JarState:
        self._catalog.require(code)
        jars = await self.get_all(user_id)
        return jars[code]

    # -- mutations ----------------------------------------------------------

    def allocation_deltas(self, allocations: dict[str, object]) -> list[JarDelta]:
        """
        Validate an allocation mapping and turn it into deltas.

        Zero allocations produce no delta.

        Raises:
            UnknownJarError: for any code outside the catalog
            InvalidAmountError: for negative or non-integral amounts
        """
        deltas = []
        for code, amount in allocations.items():
            self._catalog.require(code)
            value = to_amount(amount, allow_zero=True)
            delta = JarDelta(code=code, allocated=value, balance=value)
            if not delta.is_noop:
                deltas.append(delta)
        return deltas

    def expense_deltas(self, code: str, amount: object) -> list[JarDelta]:
        self._catalog.require(code)
        value = to_amount(amount)
        return [JarDelta(code=code, spent=value, balance=-value)]

    async def allocate(
        self,
        user_id: str,
        allocations: dict[str, object],
        income_id: Optional[UUID] = None,
    ) -> bool:
        """
        Add each allocation to its jar's allocated and balance.

        With `income_id` the write is keyed by that income record and
        happens at most once.

        Returns:
            False only when `income_id` was already applied
        """
        deltas = self.allocation_deltas(allocations)
        await self.initialize(user_id)
        now = self._clock()

        if income_id is None:
            await self._storage.apply_jar_deltas(user_id, deltas, now)
            applied = True
        else:
            applied = await self._storage.apply_income_allocation(
                user_id, income_id, deltas, now
            )

        logger.info(
            "jars_allocated",
            user_id=user_id,
            income_id=str(income_id) if income_id else None,
            applied=applied,
            total=sum(d.allocated for d in deltas),
        )
        return applied

    async def spend(self, user_id: str, code: str, amount: object) -> None:
        """
        Debit a jar. Overspending is allowed and drives balance negative.
        """
        deltas = self.expense_deltas(code, amount)
        await self.initialize(user_id)
        await self._storage.apply_jar_deltas(user_id, deltas, self._clock())
        logger.info("jar_spent", user_id=user_id, jar=code, amount=deltas[0].spent)

    async def transfer(
        self,
        user_id: str,
        from_code: str,
        to_code: str,
        amount: object,
    ) -> None:
        """
        Move balance between two jars; allocated and spent are unchanged.

        Raises:
            ValueError: if both codes are the same jar
        """
        self._catalog.require(from_code)
        self._catalog.require(to_code)
        if from_code == to_code:
            raise ValueError("Cannot transfer a jar to itself")
        value = to_amount(amount)

        await self.initialize(user_id)
        await self._storage.apply_jar_deltas(
            user_id,
            [
                JarDelta(code=from_code, balance=-value),
                JarDelta(code=to_code, balance=value),
            ],
            self._clock(),
        )
        logger.info(
            "jar_transfer", user_id=user_id, from_jar=from_code, to_jar=to_code, amount=value
        )

    async def reset_period(self, user_id: str) -> list[JarPeriodSummary]:
        """
        Close the current budgeting period.

        Each jar's totals are archived, then balance := allocated and
        spent := 0. Transfers made during the period are discarded with
        the old balance.
        """
        await self.initialize(user_id)
        summaries = await self._storage.reset_jars(user_id, self._clock())
        logger.info("jars_reset", user_id=user_id, jars=len(summaries))
        return summaries

    async def list_periods(
        self,
        user_id: str,
        code: Optional[str] = None,
    ) -> list[JarPeriodSummary]:
        if code is not None:
            self._catalog.require(code)
        return await self._storage.list_jar_periods(user_id, code)
