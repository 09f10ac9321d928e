"""
Flow tests for DailyMoneyService: every mutation is audited, pending
allocations are reconciled on read, and classifications are only
recorded when asked to.
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from dailymoney.agents import TransactionClassifierAgent
from dailymoney.config import Settings
from dailymoney.jars import InvalidAmountError, UnknownJarError
from dailymoney.ledger import AllocationPendingError
from dailymoney.models.audit import AuditEventType
from dailymoney.models.classification import ClassifiedType
from dailymoney.models.ledger import AllocationStatus, BudgetPeriod, StatsWindow
from dailymoney.orchestrator import DailyMoneyService, create_app_components
from dailymoney.services.storage import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    StorageError,
)
from dailymoney.validation import ClassificationError, ClassificationServiceError


USER_ID = "user-service"


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeModel:
    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error

    async def generate_content_async(self, prompt):
        if self.error is not None:
            raise self.error
        return FakeResponse(self.reply)


class FlakyStorage(InMemoryLedgerStorage):
    """Fails the first `failures` allocation writes."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures

    async def apply_income_allocation(self, user_id, income_id, deltas, now):
        if self.failures > 0:
            self.failures -= 1
            raise StorageError("disk I/O error")
        return await super().apply_income_allocation(user_id, income_id, deltas, now)


EXPENSE_REPLY = (
    '{"type": "expense", "amount": 45000, "jar": "PLAY", "category": "Movies", '
    '"confidence": 0.9, "description": "Cinema"}'
)
INCOME_REPLY = (
    '{"type": "income", "amount": 2000000, "source": "Freelance", "category": "Work", '
    '"confidence": 0.85, "description": "Logo design"}'
)


@pytest.fixture
def no_backoff(monkeypatch):
    monkeypatch.setenv("ALLOCATION_RETRY_MIN_SECONDS", "0")
    monkeypatch.setenv("ALLOCATION_RETRY_MAX_SECONDS", "0")


def _service_with(storage, audit_storage, clock, reply=None, error=None) -> DailyMoneyService:
    return create_app_components(
        storage=storage,
        audit_storage=audit_storage,
        classifier=TransactionClassifierAgent(model=FakeModel(reply, error)),
        use_audit_sheets=False,
        clock=clock,
    )


def _event_types(audit_storage):
    return [e.event_type for e in audit_storage.events]


class TestIncome:
    """Tests for recording income through the service."""

    @pytest.mark.asyncio
    async def test_record_income_is_audited(self, service, audit_storage):
        correlation_id = uuid4()
        income_id = await service.record_income(
            USER_ID, 10_000_000, "Salary", correlation_id=correlation_id
        )

        assert _event_types(audit_storage) == [
            AuditEventType.JARS_INITIALIZED,
            AuditEventType.INCOME_RECORDED,
            AuditEventType.ALLOCATION_APPLIED,
        ]
        recorded = audit_storage.events[1]
        assert recorded.entity_id == income_id
        assert recorded.correlation_id == correlation_id
        assert recorded.user_id == USER_ID

        jars = await service.get_jars(USER_ID)
        assert jars["NEC"].balance == 5_500_000

    @pytest.mark.asyncio
    async def test_record_income_without_allocation(self, service, audit_storage):
        await service.record_income(USER_ID, 1_000_000, "Gift", auto_allocate=False)

        assert AuditEventType.ALLOCATION_APPLIED not in _event_types(audit_storage)
        incomes = await service.get_incomes(USER_ID)
        assert incomes[0].allocation_status == AllocationStatus.SKIPPED
        jars = await service.get_jars(USER_ID)
        assert jars["NEC"].allocated == 0

    @pytest.mark.asyncio
    async def test_invalid_amount_writes_nothing(self, service, audit_storage):
        with pytest.raises(InvalidAmountError):
            await service.record_income(USER_ID, "ten million", "Salary")
        assert audit_storage.events == []
        assert await service.get_incomes(USER_ID) == []

    @pytest.mark.asyncio
    async def test_deferred_allocation_is_reconciled_on_read(self, clock, no_backoff):
        audit_storage = InMemoryAuditStorage()
        service = _service_with(FlakyStorage(failures=3), audit_storage, clock)

        with pytest.raises(AllocationPendingError) as exc_info:
            await service.record_income(USER_ID, 1_000_000, "Salary")

        assert _event_types(audit_storage)[-2:] == [
            AuditEventType.INCOME_RECORDED,
            AuditEventType.ALLOCATION_DEFERRED,
        ]
        pending = await service.get_incomes(USER_ID, status=AllocationStatus.PENDING)
        assert [i.id for i in pending] == [exc_info.value.income_id]

        jars = await service.get_jars(USER_ID)

        assert jars["NEC"].allocated == 550_000
        assert _event_types(audit_storage)[-1] == AuditEventType.ALLOCATION_RECONCILED
        assert await service.get_incomes(USER_ID, status=AllocationStatus.PENDING) == []

        # A second read finds nothing left to apply
        await service.get_jars(USER_ID)
        assert (await service.get_jars(USER_ID))["NEC"].allocated == 550_000


class TestExpenses:
    """Tests for recording expenses through the service."""

    @pytest.mark.asyncio
    async def test_record_expense(self, service, audit_storage):
        await service.record_income(USER_ID, 10_000_000, "Salary")

        transaction_id = await service.record_expense(
            USER_ID, 50_000, "NEC", "Food", description="Lunch"
        )

        jars = await service.get_jars(USER_ID)
        assert jars["NEC"].balance == 5_450_000
        event = audit_storage.events[-1]
        assert event.event_type == AuditEventType.EXPENSE_RECORDED
        assert event.entity_id == transaction_id
        assert event.details["from_classification"] is False

    @pytest.mark.asyncio
    async def test_unknown_jar_is_rejected(self, service, audit_storage):
        with pytest.raises(UnknownJarError):
            await service.record_expense(USER_ID, 50_000, "XYZ", "Misc")

        assert audit_storage.events == []
        assert await service.get_transactions(USER_ID) == []

    @pytest.mark.asyncio
    async def test_budget_alert_is_audited(self, service, audit_storage):
        budget = await service.budgets.create(USER_ID, "PLAY", 1_000_000, alert_threshold=80)

        await service.record_expense(USER_ID, 700_000, "PLAY", "Travel")
        assert AuditEventType.BUDGET_ALERT_TRIGGERED not in _event_types(audit_storage)

        await service.record_expense(USER_ID, 150_000, "PLAY", "Shopping")

        alert = audit_storage.events[-1]
        assert alert.event_type == AuditEventType.BUDGET_ALERT_TRIGGERED
        assert alert.entity_id == budget.id
        assert alert.details["percentage"] == 85.0

    @pytest.mark.asyncio
    async def test_yearly_budget_alert_spans_months(self, service, audit_storage, clock):
        """A yearly budget counts every expense since January, not just this month."""
        budget = await service.budgets.create(
            USER_ID, "PLAY", 1_000_000,
            period=BudgetPeriod.YEARLY,
            start_date=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )

        clock.set(datetime(2024, 2, 10, tzinfo=timezone.utc))
        await service.record_expense(USER_ID, 700_000, "PLAY", "Travel")
        clock.set(datetime(2024, 3, 5, tzinfo=timezone.utc))
        await service.record_expense(USER_ID, 150_000, "PLAY", "Shopping")

        alert = audit_storage.events[-1]
        assert alert.event_type == AuditEventType.BUDGET_ALERT_TRIGGERED
        assert alert.entity_id == budget.id
        assert alert.details["percentage"] == 85.0
        assert (await service.check_all_budgets(USER_ID))["PLAY"].exceeded is True

    @pytest.mark.asyncio
    async def test_check_budget_alert(self, service):
        await service.budgets.create(USER_ID, "PLAY", 1_000_000)

        alert = await service.check_budget_alert(USER_ID, "PLAY", 850_000)

        assert alert.exceeded is True
        assert alert.percentage == pytest.approx(85.0)
        assert (await service.check_all_budgets(USER_ID))["PLAY"].exceeded is False

    @pytest.mark.asyncio
    async def test_delete_transaction(self, service, audit_storage):
        transaction_id = await service.record_expense(USER_ID, 10_000, "EDU", "Books")

        assert await service.delete_transaction(USER_ID, transaction_id) is True
        assert audit_storage.events[-1].event_type == AuditEventType.TRANSACTION_DELETED
        assert (await service.get_jars(USER_ID))["EDU"].spent == 10_000

    @pytest.mark.asyncio
    async def test_transfer_and_reset(self, service, audit_storage):
        await service.record_income(USER_ID, 1_000_000, "Salary")

        await service.transfer_between_jars(USER_ID, "PLAY", "LTSS", 50_000)
        assert audit_storage.events[-1].event_type == AuditEventType.JAR_TRANSFER

        summaries = await service.reset_period(USER_ID)
        event = audit_storage.events[-1]
        assert event.event_type == AuditEventType.PERIOD_RESET
        assert len(event.details["closed_periods"]) == len(summaries) == 6
        assert len(await service.get_jar_periods(USER_ID)) == 6

        jars = await service.get_jars(USER_ID)
        assert jars["PLAY"].balance == 100_000

    @pytest.mark.asyncio
    async def test_stats(self, service):
        await service.record_income(USER_ID, 1_000_000, "Salary")
        await service.record_expense(USER_ID, 300_000, "NEC", "Rent")

        stats = await service.get_stats(USER_ID)
        assert (stats.income, stats.expenses, stats.savings) == (1_000_000, 300_000, 700_000)
        overview = await service.get_overview(USER_ID)
        assert overview[StatsWindow.LIFETIME].savings == 700_000


class TestGoals:
    """Tests for goal progress through the service."""

    @pytest.mark.asyncio
    async def test_goal_completion_is_audited_once(self, service, audit_storage):
        goal = await service.goals.create(USER_ID, "Laptop", 1_000_000)

        await service.add_goal_progress(USER_ID, goal.id, 600_000)
        await service.add_goal_progress(USER_ID, goal.id, 600_000)
        await service.add_goal_progress(USER_ID, goal.id, 100_000)

        completed = [
            e for e in audit_storage.events if e.event_type == AuditEventType.GOAL_COMPLETED
        ]
        assert len(completed) == 1
        assert completed[0].entity_id == goal.id


class TestClassification:
    """Tests for classify-then-record."""

    @pytest.mark.asyncio
    async def test_no_classifier_configured(self, service):
        with pytest.raises(ClassificationServiceError):
            await service.classify_text("ăn trưa 50k")

    @pytest.mark.asyncio
    async def test_classify_records_nothing(self, clock):
        audit_storage = InMemoryAuditStorage()
        service = _service_with(InMemoryLedgerStorage(), audit_storage, clock, EXPENSE_REPLY)
        correlation_id = uuid4()

        classification = await service.classify_text("xem phim 45k", correlation_id)

        assert classification.type == ClassifiedType.EXPENSE
        assert classification.jar == "PLAY"
        assert _event_types(audit_storage) == [AuditEventType.CLASSIFICATION_COMPLETED]
        assert audit_storage.events[0].correlation_id == correlation_id
        assert await service.get_transactions(USER_ID) == []

    @pytest.mark.asyncio
    async def test_record_classified_expense(self, clock):
        audit_storage = InMemoryAuditStorage()
        service = _service_with(InMemoryLedgerStorage(), audit_storage, clock, EXPENSE_REPLY)
        correlation_id = uuid4()
        classification = await service.classify_text("xem phim 45k", correlation_id)

        transaction_id = await service.record_classified(
            USER_ID, classification, recognized_text="xem phim 45k", correlation_id=correlation_id
        )

        transactions = await service.get_transactions(USER_ID)
        assert [t.id for t in transactions] == [transaction_id]
        assert transactions[0].recognized_text == "xem phim 45k"
        assert transactions[0].jar_code == "PLAY"
        recorded = audit_storage.events[-1]
        assert recorded.details["from_classification"] is True
        assert recorded.correlation_id == correlation_id

    @pytest.mark.asyncio
    async def test_record_classified_income(self, clock):
        service = _service_with(
            InMemoryLedgerStorage(), InMemoryAuditStorage(), clock, INCOME_REPLY
        )
        classification = await service.classify_text("nhận 2 triệu thiết kế logo")

        await service.record_classified(USER_ID, classification)

        incomes = await service.get_incomes(USER_ID)
        assert incomes[0].source == "Freelance"
        assert incomes[0].note == "Logo design"
        assert (await service.get_jars(USER_ID))["NEC"].allocated == 1_100_000

    @pytest.mark.asyncio
    async def test_rejected_classification_is_audited(self, clock):
        audit_storage = InMemoryAuditStorage()
        reply = '{"type": "expense", "amount": 45000, "category": "Movies", "confidence": 0.9}'
        service = _service_with(InMemoryLedgerStorage(), audit_storage, clock, reply)

        with pytest.raises(ClassificationError):
            await service.classify_text("xem phim 45k")

        event = audit_storage.events[-1]
        assert event.event_type == AuditEventType.CLASSIFICATION_REJECTED
        assert event.details["issues"][0]["field"] == "jar"

    @pytest.mark.asyncio
    async def test_overlong_description_is_rejected_and_audited(self, clock):
        audit_storage = InMemoryAuditStorage()
        reply = (
            '{"type": "expense", "amount": 45000, "jar": "PLAY", "category": "Movies", '
            '"confidence": 0.9, "description": "' + "x" * 600 + '"}'
        )
        service = _service_with(InMemoryLedgerStorage(), audit_storage, clock, reply)

        with pytest.raises(ClassificationError):
            await service.classify_text("xem phim 45k")

        event = audit_storage.events[-1]
        assert event.event_type == AuditEventType.CLASSIFICATION_REJECTED
        assert event.details["issues"][0]["field"] == "description"

    @pytest.mark.asyncio
    async def test_service_failure_is_audited(self, clock):
        audit_storage = InMemoryAuditStorage()
        service = _service_with(
            InMemoryLedgerStorage(), audit_storage, clock, error=RuntimeError("timeout")
        )

        with pytest.raises(ClassificationServiceError):
            await service.classify_text("xem phim 45k")

        event = audit_storage.events[-1]
        assert event.event_type == AuditEventType.EXTERNAL_SERVICE_ERROR
        assert event.details["service"] == "gemini"


class TestCreateAppComponents:
    """Tests for the factory."""

    @pytest.mark.asyncio
    async def test_memory_backend_from_settings(self, monkeypatch):
        monkeypatch.setenv("DAILYMONEY_STORAGE_BACKEND", "memory")
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)

        service = create_app_components(settings=Settings(), use_audit_sheets=False)

        await service.record_income(USER_ID, 1_000, "Tips")
        assert (await service.get_jars(USER_ID))["NEC"].allocated == 550
        with pytest.raises(ClassificationServiceError):
            await service.classify_text("anything")

    @pytest.mark.asyncio
    async def test_sqlite_backend_from_settings(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DAILYMONEY_STORAGE_BACKEND", "sqlite")
        monkeypatch.setenv("DAILYMONEY_STORAGE_SQLITE_PATH", str(tmp_path / "app.db"))

        service = create_app_components(
            settings=Settings(),
            classifier=TransactionClassifierAgent(model=FakeModel(EXPENSE_REPLY)),
            use_audit_sheets=False,
        )

        await service.record_expense(USER_ID, 5_000, "GIVE", "Charity")
        assert (tmp_path / "app.db").exists()
        assert (await service.get_jars(USER_ID))["GIVE"].balance == -5_000
