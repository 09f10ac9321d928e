"""
Main Orchestrator for DailyMoney

This module ties the components together and defines the external
interface of the jar ledger:
1. Income (amount -> split across jars -> audit)
2. Expense (amount + jar -> debit -> budget check -> audit)
3. Reads (jars, transactions, incomes, stats)
4. Text classification (utterance -> Gemini -> validate -> proposal)

The orchestrator enforces the boundaries:
- Nothing is written before its input is validated
- A classification is only a proposal; recording it is a separate call
- Every mutation is audited
"""

from typing import Optional
from uuid import UUID

import structlog
from pydantic import ValidationError
from tenacity import wait_exponential

from dailymoney.agents import TransactionClassifierAgent
from dailymoney.audit import AuditLogger, create_correlation_id
from dailymoney.config import Settings, get_settings
from dailymoney.jars import AllocationCalculator, get_catalog, to_amount
from dailymoney.ledger import (
    AggregationEngine,
    AllocationPendingError,
    BudgetMonitor,
    BudgetStore,
    Clock,
    GoalTracker,
    IncomeAllocationWorkflow,
    IncomeStore,
    JarLedger,
    TransactionStore,
)
from dailymoney.models.classification import ClassifiedType, TransactionClassification
from dailymoney.models.ledger import (
    AllocationStatus,
    BudgetAlert,
    FinancialGoal,
    FinancialStats,
    GoalStatus,
    IncomeRecord,
    JarPeriodSummary,
    JarState,
    StatsWindow,
    Transaction,
    TransactionType,
    utc_now,
)
from dailymoney.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    InMemoryLedgerStorage,
    LedgerStorage,
    SQLiteLedgerStorage,
    StorageError,
)
from dailymoney.validation import ClassificationError, ClassificationServiceError


logger = structlog.get_logger(__name__)


class DailyMoneyService:
    """
    External interface of the jar ledger.

    Every method takes the opaque `user_id` supplied by the identity
    provider; the service never authenticates anyone itself.
    """

    def __init__(
        self,
        ledger: JarLedger,
        transactions: TransactionStore,
        incomes: IncomeStore,
        workflow: IncomeAllocationWorkflow,
        aggregation: AggregationEngine,
        budgets: BudgetStore,
        budget_monitor: BudgetMonitor,
        goals: GoalTracker,
        audit_logger: Optional[AuditLogger] = None,
        classifier: Optional[TransactionClassifierAgent] = None,
        calculator: Optional[AllocationCalculator] = None,
    ):
        self._ledger = ledger
        self._transactions = transactions
        self._incomes = incomes
        self._workflow = workflow
        self._aggregation = aggregation
        self._budgets = budgets
        self._budget_monitor = budget_monitor
        self._goals = goals
        self._audit_logger = audit_logger or AuditLogger()
        self._classifier = classifier
        self._calculator = calculator or AllocationCalculator(ledger.catalog)

    # -- component access ---------------------------------------------------

    @property
    def budgets(self) -> BudgetStore:
        return self._budgets

    @property
    def goals(self) -> GoalTracker:
        return self._goals

    @property
    def aggregation(self) -> AggregationEngine:
        return self._aggregation

    async def _ensure_jars(self, user_id: str) -> None:
        if await self._ledger.initialize(user_id):
            await self._audit_logger.log_jars_initialized(user_id)

    # -- income -------------------------------------------------------------

    async def record_income(
        self,
        user_id: str,
        amount: object,
        source: str,
        note: Optional[str] = None,
        category: Optional[str] = None,
        auto_allocate: bool = True,
        correlation_id: Optional[UUID] = None,
    ) -> UUID:
        """
        Record an income and, by default, split it across the jars.

        Raises:
            InvalidAmountError: If amount is not a positive whole number
            AllocationPendingError: If the income was saved but not yet
                applied to the jars; it is applied on the next get_jars
        """
        value = to_amount(amount)
        allocated = self._calculator.allocate_all(value)
        await self._ensure_jars(user_id)

        try:
            income_id = await self._workflow.record_income(
                user_id,
                value,
                source,
                note=note,
                category=category,
                auto_allocate=auto_allocate,
            )
        except AllocationPendingError as e:
            await self._audit_logger.log_income_recorded(
                user_id, e.income_id, value, source, allocated, auto_allocate, correlation_id
            )
            await self._audit_logger.log_allocation_deferred(
                user_id, e.income_id, str(e), correlation_id
            )
            raise

        await self._audit_logger.log_income_recorded(
            user_id, income_id, value, source, allocated, auto_allocate, correlation_id
        )
        if auto_allocate:
            await self._audit_logger.log_allocation_applied(
                user_id, income_id, allocated, correlation_id
            )
        return income_id

    async def get_incomes(
        self,
        user_id: str,
        status: Optional[AllocationStatus] = None,
        max_results: Optional[int] = None,
    ) -> list[IncomeRecord]:
        return await self._incomes.list(user_id, status=status, max_results=max_results)

    async def reconcile_allocations(self, user_id: str) -> list[UUID]:
        """Apply any income allocations left pending by earlier failures."""
        applied = await self._workflow.reconcile(user_id)
        if applied:
            await self._audit_logger.log_allocation_reconciled(user_id, applied)
        return applied

    # -- expenses -----------------------------------------------------------

    async def record_expense(
        self,
        user_id: str,
        amount: object,
        jar_code: str,
        category: str,
        description: str = "",
        recognized_text: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
        from_classification: bool = False,
    ) -> UUID:
        """
        Record an expense and debit its jar in one write.

        Not idempotent: calling twice records two expenses.

        Raises:
            InvalidAmountError: If amount is not a positive whole number
            UnknownJarError: If jar_code is not a catalog jar
        """
        value = to_amount(amount)
        self._ledger.catalog.require(jar_code)
        await self._ensure_jars(user_id)

        transaction_id = await self._transactions.append(
            user_id,
            value,
            type=TransactionType.EXPENSE,
            jar_code=jar_code,
            category=category,
            description=description,
            recognized_text=recognized_text,
        )
        await self._audit_logger.log_expense_recorded(
            user_id,
            transaction_id,
            jar_code,
            value,
            category,
            from_classification=from_classification,
            correlation_id=correlation_id,
        )
        await self._alert_if_over_budget(user_id, jar_code)
        return transaction_id

    async def _alert_if_over_budget(self, user_id: str, jar_code: str) -> None:
        # The expense is already committed; a failed check must not look
        # like a failed expense to the caller.
        try:
            alert = await self._budget_monitor.check_period_alert(user_id, jar_code)
        except StorageError as e:
            logger.warning("budget_check_failed", user_id=user_id, jar=jar_code, error=str(e))
            await self._audit_logger.log_error(
                "budget_check_failed", str(e), details={"user_id": user_id, "jar_code": jar_code}
            )
            return
        if alert.exceeded and alert.budget is not None:
            await self._audit_logger.log_budget_alert(
                user_id, alert.budget.id, jar_code, alert.percentage
            )

    async def get_transactions(
        self,
        user_id: str,
        jar_code: Optional[str] = None,
        max_results: Optional[int] = None,
    ) -> list[Transaction]:
        return await self._transactions.list(user_id, jar_code=jar_code, max_results=max_results)

    async def delete_transaction(self, user_id: str, transaction_id: UUID) -> bool:
        """
        Delete a transaction record.

        The jar it was debited from is NOT credited back.
        """
        deleted = await self._transactions.remove(user_id, transaction_id)
        if deleted:
            await self._audit_logger.log_transaction_deleted(user_id, transaction_id)
        return deleted

    # -- jars ---------------------------------------------------------------

    async def get_jars(self, user_id: str) -> dict[str, JarState]:
        """All six jars, after applying any pending income allocations."""
        await self._ensure_jars(user_id)
        await self.reconcile_allocations(user_id)
        return await self._ledger.get_all(user_id)

    async def transfer_between_jars(
        self,
        user_id: str,
        from_jar: str,
        to_jar: str,
        amount: object,
    ) -> None:
        value = to_amount(amount)
        await self._ensure_jars(user_id)
        await self._ledger.transfer(user_id, from_jar, to_jar, value)
        await self._audit_logger.log_jar_transfer(user_id, from_jar, to_jar, value)

    async def reset_period(self, user_id: str) -> list[JarPeriodSummary]:
        """Close the budgeting period: balance := allocated, spent := 0."""
        await self._ensure_jars(user_id)
        summaries = await self._ledger.reset_period(user_id)
        await self._audit_logger.log_period_reset(
            user_id, [s.model_dump(mode="json") for s in summaries]
        )
        return summaries

    async def get_jar_periods(
        self,
        user_id: str,
        jar_code: Optional[str] = None,
    ) -> list[JarPeriodSummary]:
        return await self._ledger.list_periods(user_id, jar_code)

    # -- stats & budgets ----------------------------------------------------

    async def get_stats(
        self,
        user_id: str,
        window: StatsWindow = StatsWindow.MONTH,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> FinancialStats:
        return await self._aggregation.stats(user_id, window, month=month, year=year)

    async def get_overview(self, user_id: str) -> dict[StatsWindow, FinancialStats]:
        return await self._aggregation.overview(user_id)

    async def check_budget_alert(
        self,
        user_id: str,
        jar_code: str,
        spent: object,
    ) -> BudgetAlert:
        return await self._budget_monitor.check_alert(user_id, jar_code, spent)

    async def check_all_budgets(self, user_id: str) -> dict[str, BudgetAlert]:
        return await self._budget_monitor.check_all(user_id)

    # -- goals --------------------------------------------------------------

    async def add_goal_progress(
        self,
        user_id: str,
        goal_id: UUID,
        amount: int,
    ) -> FinancialGoal:
        before = await self._goals.get(user_id, goal_id)
        goal = await self._goals.update_progress(user_id, goal_id, amount)
        completed_now = (
            before is not None
            and before.status != GoalStatus.COMPLETED
            and goal.status == GoalStatus.COMPLETED
        )
        if completed_now:
            await self._audit_logger.log_goal_completed(
                user_id, goal.id, goal.title, goal.target_amount
            )
        return goal

    # -- classification -----------------------------------------------------

    async def classify_text(
        self,
        text: str,
        correlation_id: Optional[UUID] = None,
    ) -> TransactionClassification:
        """
        Classify an utterance into a proposed income or expense.

        Nothing is recorded; pass the result to `record_classified`
        once the user confirms it.

        Raises:
            ClassificationServiceError: If no classifier is configured or it failed
            ClassificationError: If the classifier's answer was invalid
        """
        if self._classifier is None:
            raise ClassificationServiceError("Classification service is not configured")

        correlation_id = correlation_id or create_correlation_id()
        try:
            classification = await self._classifier.classify(text)
        except ClassificationServiceError as e:
            await self._audit_logger.log_external_service_error(
                service="gemini",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise
        except ClassificationError as e:
            await self._audit_logger.log_classification_rejected(
                [issue.model_dump() for issue in e.issues],
                correlation_id=correlation_id,
            )
            raise

        await self._audit_logger.log_classification_completed(
            classification.classification_id,
            classification.type.value,
            classification.confidence,
            correlation_id=correlation_id,
        )
        return classification

    async def record_classified(
        self,
        user_id: str,
        classification: TransactionClassification,
        recognized_text: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> UUID:
        """Record a user-confirmed classification as an expense or income."""
        if classification.type == ClassifiedType.EXPENSE:
            return await self.record_expense(
                user_id,
                classification.amount,
                classification.jar,
                classification.category,
                description=classification.description,
                recognized_text=recognized_text,
                correlation_id=correlation_id,
                from_classification=True,
            )
        return await self.record_income(
            user_id,
            classification.amount,
            classification.source or classification.category,
            note=classification.description,
            category=classification.category,
            correlation_id=correlation_id,
        )


def _build_ledger_storage(settings: Settings) -> LedgerStorage:
    storage_settings = settings.storage
    if storage_settings.backend == "memory":
        return InMemoryLedgerStorage()
    return SQLiteLedgerStorage(
        storage_settings.sqlite_file,
        timeout=storage_settings.sqlite_timeout_seconds,
    )


def create_app_components(
    settings: Optional[Settings] = None,
    storage: Optional[LedgerStorage] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
    classifier: Optional[TransactionClassifierAgent] = None,
    use_audit_sheets: bool = True,
    clock: Clock = utc_now,
) -> DailyMoneyService:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use; defaults to get_settings()
        storage: Ledger backend; built from settings.storage when None.
                 The caller owns its lifecycle.
        audit_storage: Audit sink; Google Sheets when configured, else
                       local-only structured logs
        classifier: Classifier agent; Gemini when configured, else none
        use_audit_sheets: Set to False to skip Google Sheets entirely
        clock: Time source for every component

    Returns:
        A wired DailyMoneyService
    """
    settings = settings or get_settings()
    app = settings.app

    storage = storage or _build_ledger_storage(settings)

    if audit_storage is None and use_audit_sheets:
        try:
            audit_storage = GoogleSheetsAuditStorage(GoogleSheetsClient(settings.google_sheets))
        except ValidationError as e:
            logger.warning("audit_sheets_not_configured", error=str(e))
    audit_logger = AuditLogger(audit_storage)

    catalog = get_catalog()
    calculator = AllocationCalculator(catalog)
    ledger = JarLedger(storage, catalog=catalog, clock=clock)
    transactions = TransactionStore(
        storage, ledger, clock=clock, default_max_results=app.default_max_results
    )
    incomes = IncomeStore(storage, default_max_results=app.default_max_results)
    workflow = IncomeAllocationWorkflow(
        ledger,
        incomes,
        calculator=calculator,
        clock=clock,
        retry_attempts=app.allocation_retry_attempts,
        retry_wait=wait_exponential(
            multiplier=app.allocation_retry_min_seconds,
            min=app.allocation_retry_min_seconds,
            max=app.allocation_retry_max_seconds,
        ),
    )
    budgets = BudgetStore(
        storage, clock=clock, default_alert_threshold=app.default_alert_threshold
    )

    if classifier is None:
        try:
            classifier = TransactionClassifierAgent(settings=settings.gemini, catalog=catalog)
        except ValidationError as e:
            logger.warning("classifier_not_configured", error=str(e))

    return DailyMoneyService(
        ledger=ledger,
        transactions=transactions,
        incomes=incomes,
        workflow=workflow,
        aggregation=AggregationEngine(incomes, transactions, clock=clock),
        budgets=budgets,
        budget_monitor=BudgetMonitor(budgets, transactions, catalog=catalog, clock=clock),
        goals=GoalTracker(storage, clock=clock),
        audit_logger=audit_logger,
        classifier=classifier,
        calculator=calculator,
    )
