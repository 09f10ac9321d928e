"""
Audit Logger

Every change to a user's money is logged. This provides:
1. Complete traceability of jar balances
2. Debugging capability
3. User can see history of their incomes, expenses and transfers

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from dailymoney.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from dailymoney.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (Google Sheets in production, memory in tests)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Audit persistence must never undo or block a ledger write
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_jars_initialized(self, user_id: str) -> None:
        await self.log(AuditEventBuilder.jars_initialized(user_id))

    async def log_income_recorded(
        self,
        user_id: str,
        income_id: UUID,
        amount: int,
        source: str,
        allocated: dict[str, int],
        auto_allocate: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a new income record."""
        event = AuditEventBuilder.income_recorded(
            user_id=user_id,
            income_id=income_id,
            amount=amount,
            source=source,
            allocated=allocated,
            auto_allocate=auto_allocate,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_allocation_applied(
        self,
        user_id: str,
        income_id: UUID,
        allocated: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.allocation_applied(
            user_id=user_id,
            income_id=income_id,
            allocated=allocated,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_allocation_deferred(
        self,
        user_id: str,
        income_id: UUID,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an income whose allocation stayed pending after retries."""
        event = AuditEventBuilder.allocation_deferred(
            user_id=user_id,
            income_id=income_id,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_allocation_reconciled(self, user_id: str, income_ids: list[UUID]) -> None:
        await self.log(AuditEventBuilder.allocation_reconciled(user_id, income_ids))

    async def log_expense_recorded(
        self,
        user_id: str,
        transaction_id: UUID,
        jar_code: str,
        amount: int,
        category: str,
        from_classification: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an expense and its jar debit."""
        event = AuditEventBuilder.expense_recorded(
            user_id=user_id,
            transaction_id=transaction_id,
            jar_code=jar_code,
            amount=amount,
            category=category,
            from_classification=from_classification,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_deleted(self, user_id: str, transaction_id: UUID) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(user_id, transaction_id))

    async def log_jar_transfer(
        self,
        user_id: str,
        from_jar: str,
        to_jar: str,
        amount: int,
    ) -> None:
        await self.log(AuditEventBuilder.jar_transfer(user_id, from_jar, to_jar, amount))

    async def log_period_reset(self, user_id: str, summaries: list[dict]) -> None:
        await self.log(AuditEventBuilder.period_reset(user_id, summaries))

    async def log_budget_alert(
        self,
        user_id: str,
        budget_id: UUID,
        jar_code: str,
        percentage: float,
    ) -> None:
        event = AuditEventBuilder.budget_alert_triggered(
            user_id=user_id,
            budget_id=budget_id,
            jar_code=jar_code,
            percentage=percentage,
        )
        await self.log(event)

    async def log_goal_completed(
        self,
        user_id: str,
        goal_id: UUID,
        title: str,
        target_amount: int,
    ) -> None:
        await self.log(AuditEventBuilder.goal_completed(user_id, goal_id, title, target_amount))

    async def log_classification_completed(
        self,
        classification_id: UUID,
        classified_type: str,
        confidence: float,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a classifier result that passed validation."""
        event = AuditEventBuilder.classification_completed(
            classification_id=classification_id,
            classified_type=classified_type,
            confidence=confidence,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_classification_rejected(
        self,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log classifier output that failed validation."""
        event = AuditEventBuilder.classification_rejected(
            issues=issues,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., classify then record).
    Pass it through all subsequent operations.
    """
    return uuid4()
