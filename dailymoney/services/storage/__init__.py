"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
The ledger lives in SQLite (or in memory for tests); Google Sheets holds
the audit trail.
"""

from dailymoney.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    ConnectionError,
    DuplicateError,
    GoalStorageInterface,
    IncomeStorageInterface,
    JarStorageInterface,
    LedgerStorage,
    NotFoundError,
    StorageError,
    TransactionStorageInterface,
)
from dailymoney.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)
from dailymoney.services.storage.sqlite import SQLiteLedgerStorage
from dailymoney.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "GoalStorageInterface",
    "IncomeStorageInterface",
    "JarStorageInterface",
    "LedgerStorage",
    "TransactionStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "SQLiteLedgerStorage",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
]
