"""
Audit Models for DailyMoney

Every change to a user's money is logged for audit purposes:
incomes, allocations, expenses, transfers, period resets, budget
alerts and rejected classifications.

Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from dailymoney.models.ledger import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Jars
    JARS_INITIALIZED = "jars_initialized"
    JAR_TRANSFER = "jar_transfer"
    PERIOD_RESET = "period_reset"

    # Income
    INCOME_RECORDED = "income_recorded"
    ALLOCATION_APPLIED = "allocation_applied"
    ALLOCATION_DEFERRED = "allocation_deferred"
    ALLOCATION_RECONCILED = "allocation_reconciled"

    # Transactions
    EXPENSE_RECORDED = "expense_recorded"
    TRANSACTION_DELETED = "transaction_deleted"

    # Budgets & goals
    BUDGET_ALERT_TRIGGERED = "budget_alert_triggered"
    GOAL_COMPLETED = "goal_completed"

    # Classification
    CLASSIFICATION_COMPLETED = "classification_completed"
    CLASSIFICATION_REJECTED = "classification_rejected"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every ledger mutation creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Whose money this is about
    user_id: Optional[str] = Field(
        default=None,
        description="Opaque user identifier from the identity provider"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'income', 'transaction', 'jar')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., classify then record)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, user_id, entity_type,
         entity_id, correlation_id, description, details_json,
         error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.user_id or "",
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.income_recorded(user_id, income_id, amount, source)
        event = AuditEventBuilder.expense_recorded(user_id, transaction_id, "NEC", 50000)
    """

    @staticmethod
    def jars_initialized(user_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.JARS_INITIALIZED,
            user_id=user_id,
            entity_type="jar",
            description="Jars initialized for user",
        )

    @staticmethod
    def income_recorded(
        user_id: str,
        income_id: UUID,
        amount: int,
        source: str,
        allocated: dict[str, int],
        auto_allocate: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INCOME_RECORDED,
            user_id=user_id,
            entity_type="income",
            entity_id=income_id,
            correlation_id=correlation_id,
            description=f"Income recorded: {source} - {amount:,}",
            details={
                "amount": amount,
                "source": source,
                "allocated": allocated,
                "auto_allocate": auto_allocate,
            },
            is_user_action=True,
        )

    @staticmethod
    def allocation_applied(
        user_id: str,
        income_id: UUID,
        allocated: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALLOCATION_APPLIED,
            user_id=user_id,
            entity_type="income",
            entity_id=income_id,
            correlation_id=correlation_id,
            description=f"Income split across {len(allocated)} jars",
            details={"allocated": allocated},
        )

    @staticmethod
    def allocation_deferred(
        user_id: str,
        income_id: UUID,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALLOCATION_DEFERRED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="income",
            entity_id=income_id,
            correlation_id=correlation_id,
            description="Income allocation could not be applied; left pending",
            error_message=error_message,
        )

    @staticmethod
    def allocation_reconciled(user_id: str, income_ids: list[UUID]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALLOCATION_RECONCILED,
            user_id=user_id,
            entity_type="income",
            description=f"Applied {len(income_ids)} pending income allocations",
            details={"income_ids": [str(i) for i in income_ids]},
        )

    @staticmethod
    def expense_recorded(
        user_id: str,
        transaction_id: UUID,
        jar_code: str,
        amount: int,
        category: str,
        from_classification: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_RECORDED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Expense recorded: {jar_code} - {amount:,}",
            details={
                "jar_code": jar_code,
                "amount": amount,
                "category": category,
                "from_classification": from_classification,
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(user_id: str, transaction_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            description="Transaction deleted; jar debit was not reversed",
            is_user_action=True,
        )

    @staticmethod
    def jar_transfer(
        user_id: str,
        from_jar: str,
        to_jar: str,
        amount: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.JAR_TRANSFER,
            user_id=user_id,
            entity_type="jar",
            description=f"Transferred {amount:,} from {from_jar} to {to_jar}",
            details={"from_jar": from_jar, "to_jar": to_jar, "amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def period_reset(user_id: str, summaries: list[dict]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERIOD_RESET,
            user_id=user_id,
            entity_type="jar",
            description="Budgeting period closed and jars reset",
            details={"closed_periods": summaries},
            is_user_action=True,
        )

    @staticmethod
    def budget_alert_triggered(
        user_id: str,
        budget_id: UUID,
        jar_code: str,
        percentage: float,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_ALERT_TRIGGERED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="budget",
            entity_id=budget_id,
            description=f"Budget alert for {jar_code}: {percentage:.0f}% used",
            details={"jar_code": jar_code, "percentage": round(percentage, 2)},
        )

    @staticmethod
    def goal_completed(user_id: str, goal_id: UUID, title: str, target_amount: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_COMPLETED,
            user_id=user_id,
            entity_type="goal",
            entity_id=goal_id,
            description=f"Goal reached: {title}",
            details={"target_amount": target_amount},
        )

    @staticmethod
    def classification_completed(
        classification_id: UUID,
        classified_type: str,
        confidence: float,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CLASSIFICATION_COMPLETED,
            entity_type="classification",
            entity_id=classification_id,
            correlation_id=correlation_id,
            description=f"Text classified as {classified_type} with {confidence:.0%} confidence",
            details={"type": classified_type, "confidence": confidence},
        )

    @staticmethod
    def classification_rejected(
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CLASSIFICATION_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="classification",
            correlation_id=correlation_id,
            description=f"Classifier output rejected with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
