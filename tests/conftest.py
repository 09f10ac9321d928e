"""Shared fixtures: a controllable clock and components wired to in-memory storage."""

from datetime import datetime, timedelta, timezone

import pytest
from tenacity import wait_none

from dailymoney.audit import AuditLogger
from dailymoney.jars import AllocationCalculator, get_catalog
from dailymoney.ledger import (
    AggregationEngine,
    BudgetMonitor,
    BudgetStore,
    GoalTracker,
    IncomeAllocationWorkflow,
    IncomeStore,
    JarLedger,
    TransactionStore,
)
from dailymoney.orchestrator import DailyMoneyService
from dailymoney.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> datetime:
        self.now = now
        return self.now


@pytest.fixture
def clock():
    return FrozenClock(datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def storage():
    return InMemoryLedgerStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def ledger(storage, clock):
    return JarLedger(storage, clock=clock)


@pytest.fixture
def transactions(storage, ledger, clock):
    return TransactionStore(storage, ledger, clock=clock)


@pytest.fixture
def incomes(storage):
    return IncomeStore(storage)


@pytest.fixture
def workflow(ledger, incomes, clock):
    return IncomeAllocationWorkflow(ledger, incomes, clock=clock, retry_wait=wait_none())


@pytest.fixture
def aggregation(incomes, transactions, clock):
    return AggregationEngine(incomes, transactions, clock=clock)


@pytest.fixture
def budgets(storage, clock):
    return BudgetStore(storage, clock=clock)


@pytest.fixture
def budget_monitor(budgets, transactions, clock):
    return BudgetMonitor(budgets, transactions, clock=clock)


@pytest.fixture
def goals(storage, clock):
    return GoalTracker(storage, clock=clock)


@pytest.fixture
def service(
    ledger,
    transactions,
    incomes,
    workflow,
    aggregation,
    budgets,
    budget_monitor,
    goals,
    audit_storage,
):
    return DailyMoneyService(
        ledger=ledger,
        transactions=transactions,
        incomes=incomes,
        workflow=workflow,
        aggregation=aggregation,
        budgets=budgets,
        budget_monitor=budget_monitor,
        goals=goals,
        audit_logger=AuditLogger(audit_storage),
        calculator=AllocationCalculator(get_catalog()),
    )
