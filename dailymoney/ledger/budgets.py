"""
Budgets

BudgetStore keeps user-defined spending thresholds per jar.
BudgetMonitor compares spending against the active one.

A budget is active when it has started and has no end date or ends in
the future. When several budgets of a jar are active, the most recently
started one wins.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

import structlog

from dailymoney.jars import JarCatalog, get_catalog, to_amount
from dailymoney.ledger.jar_ledger import Clock
from dailymoney.ledger.transactions import TransactionStore
from dailymoney.ledger.windows import month_window, year_window
from dailymoney.models.ledger import Budget, BudgetAlert, BudgetPeriod, ensure_utc, utc_now
from dailymoney.services.storage import LedgerStorage, NotFoundError


logger = structlog.get_logger(__name__)

DEFAULT_ALERT_THRESHOLD = 80

# Fields a caller may change through BudgetStore.update
EDITABLE_FIELDS = frozenset({
    "jar_code", "category", "amount", "period", "start_date", "end_date", "alert_threshold",
})


class BudgetStore:
    """CRUD for budgets."""

    def __init__(
        self,
        storage: LedgerStorage,
        clock: Clock = utc_now,
        default_alert_threshold: int = DEFAULT_ALERT_THRESHOLD,
    ):
        self._storage = storage
        self._clock = clock
        self._default_alert_threshold = default_alert_threshold

    async def create(
        self,
        user_id: str,
        jar_code: str,
        amount: object,
        period: BudgetPeriod = BudgetPeriod.MONTHLY,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        category: Optional[str] = None,
        alert_threshold: Optional[int] = None,
    ) -> Budget:
        now = self._clock()
        budget = Budget(
            jar_code=jar_code,
            category=category,
            amount=to_amount(amount),
            period=period,
            start_date=start_date or now,
            end_date=end_date,
            alert_threshold=alert_threshold or self._default_alert_threshold,
            created_at=now,
            updated_at=now,
        )
        await self._storage.save_budget(user_id, budget)
        logger.info("budget_created", user_id=user_id, budget_id=str(budget.id), jar=jar_code)
        return budget

    async def get(self, user_id: str, budget_id: UUID) -> Optional[Budget]:
        return await self._storage.get_budget(user_id, budget_id)

    async def active(self, user_id: str, now: Optional[datetime] = None) -> list[Budget]:
        """Active budgets, most recently started first."""
        now = ensure_utc(now) if now is not None else self._clock()
        budgets = [b for b in await self._storage.list_budgets(user_id) if b.is_active(now)]
        budgets.sort(key=lambda b: b.start_date, reverse=True)
        return budgets

    async def update(self, user_id: str, budget_id: UUID, **changes) -> Budget:
        """
        Apply field changes and bump updated_at.

        Raises:
            NotFoundError: If the budget doesn't exist
            ValueError: If a change names a field that cannot be edited
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update budget fields: {sorted(unknown)}")

        budget = await self._storage.get_budget(user_id, budget_id)
        if budget is None:
            raise NotFoundError(f"Budget not found: {budget_id}")

        if "amount" in changes:
            changes["amount"] = to_amount(changes["amount"])
        updated = Budget.model_validate({
            **budget.model_dump(),
            **changes,
            "updated_at": self._clock(),
        })
        await self._storage.update_budget(user_id, updated)
        return updated

    async def delete(self, user_id: str, budget_id: UUID) -> bool:
        return await self._storage.delete_budget(user_id, budget_id)

    async def list(self, user_id: str) -> list[Budget]:
        """All budgets, most recently created first."""
        return await self._storage.list_budgets(user_id)


class BudgetMonitor:
    """Threshold alerts for jar spending."""

    def __init__(
        self,
        budgets: BudgetStore,
        transactions: TransactionStore,
        catalog: Optional[JarCatalog] = None,
        clock: Clock = utc_now,
    ):
        self._budgets = budgets
        self._transactions = transactions
        self._catalog = catalog or get_catalog()
        self._clock = clock

    @staticmethod
    def evaluate(budget: Optional[Budget], spent: int) -> BudgetAlert:
        """
        percentage = spent / amount * 100; exceeded once it reaches the
        budget's alert threshold.
        """
        if budget is None:
            return BudgetAlert(exceeded=False, percentage=0.0, budget=None)
        percentage = spent / budget.amount * 100
        threshold = budget.alert_threshold or DEFAULT_ALERT_THRESHOLD
        return BudgetAlert(
            exceeded=percentage >= threshold,
            percentage=percentage,
            budget=budget,
        )

    async def active_budget(self, user_id: str, jar_code: str) -> Optional[Budget]:
        self._catalog.require(jar_code)
        for budget in await self._budgets.active(user_id, self._clock()):
            if budget.jar_code == jar_code:
                return budget
        return None

    async def check_alert(
        self,
        user_id: str,
        jar_code: str,
        current_spent: object,
    ) -> BudgetAlert:
        """Compare a caller-supplied spend against the jar's active budget."""
        spent = to_amount(current_spent, allow_zero=True)
        budget = await self.active_budget(user_id, jar_code)
        return self.evaluate(budget, spent)

    async def _spent_in_period(self, user_id: str, budget: Budget, now: datetime) -> int:
        if budget.period == BudgetPeriod.YEARLY:
            window = year_window(now.year)
        else:
            window = month_window(now.month, now.year)
        return await self._transactions.spent_by_jar(user_id, budget.jar_code, *window)

    async def check_period_alert(self, user_id: str, jar_code: str) -> BudgetAlert:
        """
        Evaluate the jar's active budget against the spending of its own period.

        Monthly budgets are measured against month-to-date spending,
        yearly budgets against year-to-date spending.
        """
        budget = await self.active_budget(user_id, jar_code)
        if budget is None:
            return self.evaluate(None, 0)
        spent = await self._spent_in_period(user_id, budget, self._clock())
        return self.evaluate(budget, spent)

    async def check_all(self, user_id: str) -> dict[str, BudgetAlert]:
        """Evaluate every jar that has an active budget, each over its own period."""
        now = self._clock()
        alerts: dict[str, BudgetAlert] = {}
        for budget in await self._budgets.active(user_id, now):
            if budget.jar_code in alerts:
                continue
            spent = await self._spent_in_period(user_id, budget, now)
            alerts[budget.jar_code] = self.evaluate(budget, spent)
        return alerts
