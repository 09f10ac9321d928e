"""
Data Models Package

This package contains all Pydantic models used by the jar ledger.
All data flowing through the system must conform to these schemas.
"""

from dailymoney.models.ledger import (
    AllocationStatus,
    Budget,
    BudgetAlert,
    BudgetPeriod,
    FinancialGoal,
    FinancialStats,
    GoalPriority,
    GoalStatus,
    IncomeRecord,
    JarDelta,
    JarPeriodSummary,
    JarState,
    StatsWindow,
    Transaction,
    TransactionType,
    ensure_utc,
    utc_now,
)
from dailymoney.models.classification import (
    ClassifiedType,
    TransactionClassification,
    ValidationIssue,
)
from dailymoney.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "AllocationStatus",
    "Budget",
    "BudgetAlert",
    "BudgetPeriod",
    "FinancialGoal",
    "FinancialStats",
    "GoalPriority",
    "GoalStatus",
    "IncomeRecord",
    "JarDelta",
    "JarPeriodSummary",
    "JarState",
    "StatsWindow",
    "Transaction",
    "TransactionType",
    "ensure_utc",
    "utc_now",
    # Classification models
    "ClassifiedType",
    "TransactionClassification",
    "ValidationIssue",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
