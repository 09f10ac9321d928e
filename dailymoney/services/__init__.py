"""Services package."""

from dailymoney.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorage,
    NotFoundError,
    SQLiteLedgerStorage,
    StorageError,
)

__all__ = [
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "LedgerStorage",
    "NotFoundError",
    "SQLiteLedgerStorage",
    "StorageError",
]
