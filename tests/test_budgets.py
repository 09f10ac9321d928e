"""
Tests for budget storage and threshold alerts.
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from dailymoney.jars import UnknownJarError
from dailymoney.ledger.budgets import BudgetMonitor
from dailymoney.models.ledger import Budget, BudgetPeriod
from dailymoney.services.storage import NotFoundError


USER_ID = "user-budgets"


class TestBudgetStore:
    """Tests for budget CRUD."""

    @pytest.mark.asyncio
    async def test_create_defaults(self, budgets, clock):
        budget = await budgets.create(USER_ID, "PLAY", 1_000_000)

        assert budget.period == BudgetPeriod.MONTHLY
        assert budget.alert_threshold == 80
        assert budget.start_date == clock()
        assert await budgets.get(USER_ID, budget.id) == budget

    @pytest.mark.asyncio
    async def test_create_rejects_unknown_jar(self, budgets):
        with pytest.raises(ValueError):
            await budgets.create(USER_ID, "FUN", 1_000)

    @pytest.mark.asyncio
    async def test_create_rejects_end_before_start(self, budgets, clock):
        with pytest.raises(ValueError):
            await budgets.create(
                USER_ID, "NEC", 1_000, end_date=clock() - timedelta(days=1)
            )

    @pytest.mark.asyncio
    async def test_update(self, budgets, clock):
        budget = await budgets.create(USER_ID, "NEC", 1_000_000)
        clock.advance(hours=2)

        updated = await budgets.update(USER_ID, budget.id, amount=2_000_000, alert_threshold=90)

        assert updated.amount == 2_000_000
        assert updated.alert_threshold == 90
        assert updated.updated_at == clock()
        assert updated.created_at == budget.created_at
        assert (await budgets.get(USER_ID, budget.id)).amount == 2_000_000

    @pytest.mark.asyncio
    async def test_update_rejects_protected_fields(self, budgets):
        budget = await budgets.create(USER_ID, "NEC", 1_000_000)
        with pytest.raises(ValueError, match="id"):
            await budgets.update(USER_ID, budget.id, id=uuid4())

    @pytest.mark.asyncio
    async def test_update_missing(self, budgets):
        with pytest.raises(NotFoundError):
            await budgets.update(USER_ID, uuid4(), amount=5)

    @pytest.mark.asyncio
    async def test_delete(self, budgets):
        budget = await budgets.create(USER_ID, "GIVE", 100_000)

        assert await budgets.delete(USER_ID, budget.id) is True
        assert await budgets.list(USER_ID) == []
        assert await budgets.delete(USER_ID, budget.id) is False

    @pytest.mark.asyncio
    async def test_active_excludes_ended_and_future(self, budgets, clock):
        now = clock()
        await budgets.create(
            USER_ID, "NEC", 1_000,
            start_date=now - timedelta(days=60),
            end_date=now - timedelta(days=30),
        )
        await budgets.create(USER_ID, "NEC", 1_000, start_date=now + timedelta(days=1))
        current = await budgets.create(USER_ID, "NEC", 1_000, start_date=now - timedelta(days=1))

        active = await budgets.active(USER_ID)
        assert [b.id for b in active] == [current.id]


class TestEvaluate:
    """Tests for the alert arithmetic."""

    def _budget(self, amount=1_000_000, threshold=80):
        return Budget(
            jar_code="PLAY",
            amount=amount,
            alert_threshold=threshold,
            start_date=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )

    def test_over_threshold(self):
        """850,000 of a 1,000,000 budget at threshold 80 is 85% and exceeded."""
        alert = BudgetMonitor.evaluate(self._budget(), 850_000)
        assert alert.exceeded is True
        assert alert.percentage == pytest.approx(85.0)

    def test_exactly_at_threshold(self):
        alert = BudgetMonitor.evaluate(self._budget(), 800_000)
        assert alert.exceeded is True

    def test_under_threshold(self):
        alert = BudgetMonitor.evaluate(self._budget(), 799_999)
        assert alert.exceeded is False

    def test_percentage_above_100(self):
        alert = BudgetMonitor.evaluate(self._budget(amount=1_000), 2_500)
        assert alert.percentage == pytest.approx(250.0)

    def test_no_budget(self):
        alert = BudgetMonitor.evaluate(None, 10**9)
        assert alert.exceeded is False
        assert alert.percentage == 0.0
        assert alert.budget is None


class TestBudgetMonitor:
    """Tests for alerts against stored budgets."""

    @pytest.mark.asyncio
    async def test_check_alert(self, budgets, budget_monitor):
        budget = await budgets.create(USER_ID, "PLAY", 1_000_000, alert_threshold=80)

        alert = await budget_monitor.check_alert(USER_ID, "PLAY", 850_000)

        assert alert.exceeded is True
        assert alert.percentage == pytest.approx(85.0)
        assert alert.budget.id == budget.id

    @pytest.mark.asyncio
    async def test_check_alert_without_budget(self, budget_monitor):
        alert = await budget_monitor.check_alert(USER_ID, "EDU", 5_000_000)
        assert (alert.exceeded, alert.percentage, alert.budget) == (False, 0.0, None)

    @pytest.mark.asyncio
    async def test_check_alert_unknown_jar(self, budget_monitor):
        with pytest.raises(UnknownJarError):
            await budget_monitor.check_alert(USER_ID, "XYZ", 1)

    @pytest.mark.asyncio
    async def test_most_recently_started_budget_wins(self, budgets, budget_monitor, clock):
        now = clock()
        await budgets.create(USER_ID, "NEC", 1_000_000, start_date=now - timedelta(days=10))
        newer = await budgets.create(USER_ID, "NEC", 500_000, start_date=now - timedelta(days=2))

        alert = await budget_monitor.check_alert(USER_ID, "NEC", 450_000)

        assert alert.budget.id == newer.id
        assert alert.exceeded is True
        assert alert.percentage == pytest.approx(90.0)

    @pytest.mark.asyncio
    async def test_ended_budget_is_ignored(self, budgets, budget_monitor, clock):
        now = clock()
        await budgets.create(
            USER_ID, "GIVE", 100,
            start_date=now - timedelta(days=40),
            end_date=now - timedelta(days=1),
        )

        alert = await budget_monitor.check_alert(USER_ID, "GIVE", 10_000)
        assert alert.budget is None
        assert alert.exceeded is False

    @pytest.mark.asyncio
    async def test_check_all(self, budgets, budget_monitor, transactions, clock):
        await budgets.create(USER_ID, "PLAY", 100_000, start_date=clock() - timedelta(days=60))
        await budgets.create(
            USER_ID, "EDU", 1_000_000,
            period=BudgetPeriod.YEARLY,
            start_date=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )

        clock.set(datetime(2024, 2, 10, tzinfo=timezone.utc))
        await transactions.append(USER_ID, 90_000, jar_code="PLAY")
        await transactions.append(USER_ID, 300_000, jar_code="EDU")
        clock.set(datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc))
        await transactions.append(USER_ID, 20_000, jar_code="PLAY")
        await transactions.append(USER_ID, 100_000, jar_code="EDU")

        alerts = await budget_monitor.check_all(USER_ID)

        assert set(alerts) == {"PLAY", "EDU"}
        # Monthly: only March counts
        assert alerts["PLAY"].percentage == pytest.approx(20.0)
        assert alerts["PLAY"].exceeded is False
        # Yearly: February and March count
        assert alerts["EDU"].percentage == pytest.approx(40.0)

    @pytest.mark.asyncio
    async def test_check_period_alert_uses_budget_period(
        self, budgets, budget_monitor, transactions, clock
    ):
        await budgets.create(
            USER_ID, "PLAY", 1_000_000,
            period=BudgetPeriod.YEARLY,
            start_date=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        await budgets.create(
            USER_ID, "EDU", 1_000_000,
            start_date=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )

        clock.set(datetime(2024, 2, 10, tzinfo=timezone.utc))
        await transactions.append(USER_ID, 700_000, jar_code="PLAY")
        await transactions.append(USER_ID, 700_000, jar_code="EDU")
        clock.set(datetime(2024, 3, 5, tzinfo=timezone.utc))
        await transactions.append(USER_ID, 150_000, jar_code="PLAY")
        await transactions.append(USER_ID, 150_000, jar_code="EDU")

        yearly = await budget_monitor.check_period_alert(USER_ID, "PLAY")
        monthly = await budget_monitor.check_period_alert(USER_ID, "EDU")

        assert yearly.exceeded is True
        assert yearly.percentage == pytest.approx(85.0)
        assert monthly.exceeded is False
        assert monthly.percentage == pytest.approx(15.0)

    @pytest.mark.asyncio
    async def test_check_period_alert_without_budget(self, budget_monitor):
        alert = await budget_monitor.check_period_alert(USER_ID, "FFA")
        assert alert.budget is None
        assert alert.exceeded is False
