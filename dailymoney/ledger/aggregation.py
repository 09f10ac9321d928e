"""
Aggregation Engine

Windowed income and expense totals. Income comes from income records,
expenses from expense transactions; income-type transactions are never
counted so an income is not counted twice.

All functions here are read-only.
"""

import asyncio
from typing import Optional

from dailymoney.ledger.incomes import IncomeStore
from dailymoney.ledger.jar_ledger import Clock
from dailymoney.ledger.transactions import TransactionStore
from dailymoney.ledger.windows import month_window, resolve_month, year_window
from dailymoney.models.ledger import FinancialStats, StatsWindow, utc_now


def savings(income: int, expenses: int) -> int:
    """Income minus expenses; negative when spending exceeds income."""
    return income - expenses


class AggregationEngine:
    """
    Monthly, yearly and lifetime totals for one user.

    Month and year default to the current ones according to the clock.
    """

    def __init__(
        self,
        incomes: IncomeStore,
        transactions: TransactionStore,
        clock: Clock = utc_now,
    ):
        self._incomes = incomes
        self._transactions = transactions
        self._clock = clock

    async def monthly_income(
        self,
        user_id: str,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> int:
        month, year = resolve_month(self._clock(), month, year)
        return await self._incomes.sum_in_window(user_id, *month_window(month, year))

    async def monthly_expenses(
        self,
        user_id: str,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> int:
        month, year = resolve_month(self._clock(), month, year)
        return await self._transactions.sum_expenses_in_window(
            user_id, *month_window(month, year)
        )

    async def yearly_income(self, user_id: str, year: Optional[int] = None) -> int:
        year = self._clock().year if year is None else year
        return await self._incomes.sum_in_window(user_id, *year_window(year))

    async def yearly_expenses(self, user_id: str, year: Optional[int] = None) -> int:
        year = self._clock().year if year is None else year
        return await self._transactions.sum_expenses_in_window(user_id, *year_window(year))

    async def lifetime_income(self, user_id: str) -> int:
        return await self._incomes.sum_in_window(user_id)

    async def lifetime_expenses(self, user_id: str) -> int:
        return await self._transactions.sum_expenses_in_window(user_id)

    @staticmethod
    def savings(income: int, expenses: int) -> int:
        return savings(income, expenses)

    async def stats(
        self,
        user_id: str,
        window: StatsWindow,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> FinancialStats:
        """
        Income, expenses and savings over one window.

        Both totals always come from the same window, so savings never
        mixes a monthly income with a lifetime expense.
        """
        window = StatsWindow(window)
        now = self._clock()

        if window == StatsWindow.MONTH:
            month, year = resolve_month(now, month, year)
            income, expenses = await asyncio.gather(
                self.monthly_income(user_id, month, year),
                self.monthly_expenses(user_id, month, year),
            )
        elif window == StatsWindow.YEAR:
            year = now.year if year is None else year
            month = None
            income, expenses = await asyncio.gather(
                self.yearly_income(user_id, year),
                self.yearly_expenses(user_id, year),
            )
        else:
            month = year = None
            income, expenses = await asyncio.gather(
                self.lifetime_income(user_id),
                self.lifetime_expenses(user_id),
            )

        return FinancialStats(
            window=window,
            income=income,
            expenses=expenses,
            savings=savings(income, expenses),
            month=month,
            year=year,
        )

    async def overview(self, user_id: str) -> dict[StatsWindow, FinancialStats]:
        """Current month, current year and lifetime, computed concurrently."""
        windows = list(StatsWindow)
        results = await asyncio.gather(*(self.stats(user_id, w) for w in windows))
        return dict(zip(windows, results))
