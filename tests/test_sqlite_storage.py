"""
Tests for the SQLite ledger backend.

Each test gets its own database file under pytest's tmp_path.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from tenacity import wait_none

from dailymoney.jars import AllocationCalculator
from dailymoney.ledger import (
    GoalTracker,
    IncomeAllocationWorkflow,
    IncomeStore,
    JarLedger,
    TransactionStore,
)
from dailymoney.models.ledger import (
    AllocationStatus,
    Budget,
    FinancialGoal,
    GoalStatus,
    IncomeRecord,
    JarDelta,
    Transaction,
    TransactionType,
)
from dailymoney.services.storage import (
    DuplicateError,
    NotFoundError,
    SQLiteLedgerStorage,
)


USER_ID = "user-sqlite"
NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def sqlite_storage(tmp_path):
    return SQLiteLedgerStorage(tmp_path / "data" / "ledger.db")


@pytest.fixture
def sqlite_ledger(sqlite_storage, clock):
    return JarLedger(sqlite_storage, clock=clock)


class TestSQLiteJars:
    """Tests for jar rows and atomic increments."""

    @pytest.mark.asyncio
    async def test_schema_survives_reopen(self, tmp_path):
        path = tmp_path / "ledger.db"
        first = SQLiteLedgerStorage(path)
        await first.initialize_jars(USER_ID, ("NEC", "FFA"), NOW)

        second = SQLiteLedgerStorage(path)
        jars = await second.get_jars(USER_ID)
        assert set(jars) == {"NEC", "FFA"}

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, sqlite_storage):
        assert await sqlite_storage.initialize_jars(USER_ID, ("NEC",), NOW) is True
        await sqlite_storage.apply_jar_deltas(
            USER_ID, [JarDelta(code="NEC", allocated=10, balance=10)], NOW
        )
        assert await sqlite_storage.initialize_jars(USER_ID, ("NEC",), NOW) is False

        jars = await sqlite_storage.get_jars(USER_ID)
        assert jars["NEC"].allocated == 10

    @pytest.mark.asyncio
    async def test_timestamps_round_trip_as_utc(self, sqlite_storage):
        await sqlite_storage.initialize_jars(USER_ID, ("EDU",), NOW)
        jar = (await sqlite_storage.get_jars(USER_ID))["EDU"]
        assert jar.period_started_at == NOW
        assert jar.updated_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_missing_jar_rolls_back_every_delta(self, sqlite_storage):
        await sqlite_storage.initialize_jars(USER_ID, ("NEC",), NOW)

        with pytest.raises(NotFoundError):
            await sqlite_storage.apply_jar_deltas(
                USER_ID,
                [
                    JarDelta(code="NEC", balance=-100),
                    JarDelta(code="PLAY", balance=100),
                ],
                NOW,
            )

        jars = await sqlite_storage.get_jars(USER_ID)
        assert jars["NEC"].balance == 0

    @pytest.mark.asyncio
    async def test_concurrent_spends(self, sqlite_ledger):
        await sqlite_ledger.allocate(USER_ID, {"NEC": 100_000})

        await asyncio.gather(*(sqlite_ledger.spend(USER_ID, "NEC", 1_000) for _ in range(20)))

        jar = await sqlite_ledger.get(USER_ID, "NEC")
        assert (jar.spent, jar.balance) == (20_000, 80_000)

    @pytest.mark.asyncio
    async def test_transfer_and_reset(self, sqlite_ledger, clock):
        await sqlite_ledger.allocate(USER_ID, {"NEC": 1_000, "PLAY": 500})
        await sqlite_ledger.spend(USER_ID, "NEC", 200)
        await sqlite_ledger.transfer(USER_ID, "NEC", "PLAY", 100)
        clock.advance(days=30)

        summaries = await sqlite_ledger.reset_period(USER_ID)

        nec = next(s for s in summaries if s.code == "NEC")
        assert (nec.allocated, nec.spent, nec.balance) == (1_000, 200, 700)
        jars = await sqlite_ledger.get_all(USER_ID)
        assert (jars["NEC"].spent, jars["NEC"].balance) == (0, 1_000)
        assert jars["PLAY"].balance == 500
        assert jars["NEC"].period_started_at == clock()

        periods = await sqlite_ledger.list_periods(USER_ID, "NEC")
        assert len(periods) == 1
        assert periods[0].period_end == clock()


class TestSQLiteIncomes:
    """Tests for income records and the allocation marker."""

    def _income(self, amount=1_000_000, created_at=NOW):
        return IncomeRecord(
            amount=amount,
            source="Salary",
            allocated=AllocationCalculator().allocate_all(amount),
            created_at=created_at,
        )

    @pytest.mark.asyncio
    async def test_save_and_get(self, sqlite_storage):
        income = self._income()
        await sqlite_storage.save_income(USER_ID, income)

        loaded = await sqlite_storage.get_income(USER_ID, income.id)
        assert loaded == income

    @pytest.mark.asyncio
    async def test_duplicate_id(self, sqlite_storage):
        income = self._income()
        await sqlite_storage.save_income(USER_ID, income)
        with pytest.raises(DuplicateError):
            await sqlite_storage.save_income(USER_ID, income)

    @pytest.mark.asyncio
    async def test_apply_allocation_once(self, sqlite_storage):
        income = self._income()
        await sqlite_storage.save_income(USER_ID, income)
        await sqlite_storage.initialize_jars(USER_ID, tuple(income.allocated), NOW)
        deltas = [
            JarDelta(code=code, allocated=value, balance=value)
            for code, value in income.allocated.items()
        ]

        assert await sqlite_storage.apply_income_allocation(USER_ID, income.id, deltas, NOW)
        assert not await sqlite_storage.apply_income_allocation(USER_ID, income.id, deltas, NOW)

        jars = await sqlite_storage.get_jars(USER_ID)
        assert jars["NEC"].allocated == 550_000
        loaded = await sqlite_storage.get_income(USER_ID, income.id)
        assert loaded.allocation_status == AllocationStatus.APPLIED

    @pytest.mark.asyncio
    async def test_apply_allocation_unknown_income(self, sqlite_storage):
        with pytest.raises(NotFoundError):
            await sqlite_storage.apply_income_allocation(USER_ID, uuid4(), [], NOW)

    @pytest.mark.asyncio
    async def test_list_and_sum(self, sqlite_storage):
        older = self._income(1_000, NOW - timedelta(days=40))
        newer = self._income(2_000, NOW)
        await sqlite_storage.save_income(USER_ID, older)
        await sqlite_storage.save_income(USER_ID, newer)

        listed = await sqlite_storage.list_incomes(USER_ID)
        assert [i.id for i in listed] == [newer.id, older.id]
        assert await sqlite_storage.sum_incomes(USER_ID) == 3_000
        assert await sqlite_storage.sum_incomes(USER_ID, date_from=NOW - timedelta(days=1)) == 2_000

    @pytest.mark.asyncio
    async def test_workflow_end_to_end(self, sqlite_storage, sqlite_ledger, clock):
        incomes = IncomeStore(sqlite_storage)
        workflow = IncomeAllocationWorkflow(
            sqlite_ledger, incomes, clock=clock, retry_wait=wait_none()
        )

        income_id = await workflow.record_income(USER_ID, 10_000_000, "Salary")

        income = await incomes.get(USER_ID, income_id)
        assert income.allocation_status == AllocationStatus.APPLIED
        jars = await sqlite_ledger.get_all(USER_ID)
        assert {code: jar.balance for code, jar in jars.items()} == income.allocated
        assert await workflow.reconcile(USER_ID) == []


class TestSQLiteTransactions:
    """Tests for transaction records."""

    @pytest.mark.asyncio
    async def test_expense_writes_record_and_debit(self, sqlite_storage, sqlite_ledger, clock):
        transactions = TransactionStore(sqlite_storage, sqlite_ledger, clock=clock)
        await sqlite_ledger.allocate(USER_ID, {"PLAY": 100_000})

        transaction_id = await transactions.append(
            USER_ID, 45_000, jar_code="PLAY", category="Movies", recognized_text="xem phim"
        )

        transaction = await transactions.get(USER_ID, transaction_id)
        assert transaction.recognized_text == "xem phim"
        assert transaction.created_at == clock()
        assert (await sqlite_ledger.get(USER_ID, "PLAY")).balance == 55_000

    @pytest.mark.asyncio
    async def test_failed_debit_leaves_no_record(self, sqlite_storage, clock):
        """Record and debit share one transaction."""
        transactions = TransactionStore(
            sqlite_storage, JarLedger(sqlite_storage, clock=clock), clock=clock
        )
        orphan = Transaction(amount=10, type=TransactionType.EXPENSE, jar_code="NEC")
        with pytest.raises(NotFoundError):
            await sqlite_storage.save_transaction(
                USER_ID, orphan, [JarDelta(code="NEC", spent=10, balance=-10)], NOW
            )
        assert await transactions.get(USER_ID, orphan.id) is None

    @pytest.mark.asyncio
    async def test_queries(self, sqlite_storage, sqlite_ledger, clock):
        transactions = TransactionStore(sqlite_storage, sqlite_ledger, clock=clock)
        clock.set(datetime(2024, 2, 10, tzinfo=timezone.utc))
        await transactions.append(USER_ID, 100, jar_code="NEC")
        clock.set(datetime(2024, 3, 10, tzinfo=timezone.utc))
        await transactions.append(USER_ID, 200, jar_code="EDU")
        await transactions.append(USER_ID, 5_000, type=TransactionType.INCOME, category="Gift")
        clock.advance(seconds=1)
        latest = await transactions.append(USER_ID, 300, jar_code="EDU")

        listed = await transactions.list(USER_ID, max_results=2)
        assert listed[0].id == latest
        assert len(listed) == 2
        assert [t.amount for t in await transactions.list(USER_ID, jar_code="EDU")] == [300, 200]

        assert await transactions.sum_expenses_in_window(USER_ID) == 600
        assert await transactions.monthly_spent_by_jar(USER_ID, "EDU") == 500
        assert await transactions.sum_expenses_in_window(
            USER_ID,
            datetime(2024, 2, 1, tzinfo=timezone.utc),
            datetime(2024, 2, 29, tzinfo=timezone.utc),
        ) == 100

    @pytest.mark.asyncio
    async def test_delete(self, sqlite_storage, sqlite_ledger, clock):
        transactions = TransactionStore(sqlite_storage, sqlite_ledger, clock=clock)
        transaction_id = await transactions.append(USER_ID, 100, jar_code="GIVE")

        assert await transactions.remove(USER_ID, transaction_id) is True
        assert await transactions.remove(USER_ID, transaction_id) is False
        assert (await sqlite_ledger.get(USER_ID, "GIVE")).spent == 100


class TestSQLiteBudgetsAndGoals:
    """Tests for budget and goal rows."""

    @pytest.mark.asyncio
    async def test_budget_crud(self, sqlite_storage):
        budget = Budget(jar_code="PLAY", amount=1_000_000, start_date=NOW, created_at=NOW)
        await sqlite_storage.save_budget(USER_ID, budget)

        assert await sqlite_storage.get_budget(USER_ID, budget.id) == budget

        changed = budget.model_copy(update={"amount": 2_000_000, "end_date": NOW + timedelta(days=30)})
        await sqlite_storage.update_budget(USER_ID, changed)
        loaded = await sqlite_storage.get_budget(USER_ID, budget.id)
        assert loaded.amount == 2_000_000
        assert loaded.end_date == NOW + timedelta(days=30)

        assert [b.id for b in await sqlite_storage.list_budgets(USER_ID)] == [budget.id]
        assert await sqlite_storage.delete_budget(USER_ID, budget.id) is True
        assert await sqlite_storage.get_budget(USER_ID, budget.id) is None

    @pytest.mark.asyncio
    async def test_update_missing_budget(self, sqlite_storage):
        budget = Budget(jar_code="PLAY", amount=1_000, start_date=NOW)
        with pytest.raises(NotFoundError):
            await sqlite_storage.update_budget(USER_ID, budget)

    @pytest.mark.asyncio
    async def test_goal_crud(self, sqlite_storage, clock):
        goals = GoalTracker(sqlite_storage, clock=clock)
        goal = await goals.create(USER_ID, "Laptop", 1_000, jar_code="LTSS")

        goal = await goals.update_progress(USER_ID, goal.id, 1_000)
        assert goal.status == GoalStatus.COMPLETED

        loaded = await sqlite_storage.get_goal(USER_ID, goal.id)
        assert loaded == goal
        assert await sqlite_storage.list_goals(USER_ID, status=GoalStatus.ACTIVE) == []
        assert await goals.delete(USER_ID, goal.id) is True

    @pytest.mark.asyncio
    async def test_update_missing_goal(self, sqlite_storage):
        with pytest.raises(NotFoundError):
            await sqlite_storage.update_goal(
                USER_ID, FinancialGoal(title="Ghost", target_amount=1)
            )
