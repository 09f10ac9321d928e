"""
Core Data Models for the Jar Ledger

These models define the schemas for everything the ledger persists:
jar state, income records, transactions, budgets and goals.

Amounts are whole currency units stored as `int`. Timestamps are
timezone-aware UTC datetimes; use `utc_now()` rather than naive clocks.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from dailymoney.jars.catalog import get_catalog


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# ENUMS
# =============================================================================

class TransactionType(str, Enum):
    """Kind of ledger event. Only expenses move jar balances."""
    EXPENSE = "expense"
    INCOME = "income"
    TRANSFER = "transfer"


class AllocationStatus(str, Enum):
    """
    Whether an income record has been applied to the jars.

    PENDING records are the outbox: they were persisted but their
    allocation has not (yet) reached the jars.
    """
    PENDING = "pending"
    APPLIED = "applied"
    SKIPPED = "skipped"  # auto_allocate was off


class BudgetPeriod(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class StatsWindow(str, Enum):
    """Aggregation window for income/expense totals."""
    MONTH = "month"
    YEAR = "year"
    LIFETIME = "lifetime"


class GoalStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class GoalPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# =============================================================================
# JAR STATE
# =============================================================================

class JarState(BaseModel):
    """
    Running totals for one jar of one user.

    balance == allocated - spent, plus/minus any transfers.
    Balance may go negative: overspending is informational, not blocked.
    """

    code: str
    allocated: int = Field(default=0, ge=0)
    spent: int = Field(default=0, ge=0)
    balance: int = 0
    updated_at: datetime = Field(default_factory=utc_now)
    period_started_at: datetime = Field(default_factory=utc_now)

    @property
    def is_overspent(self) -> bool:
        return self.balance < 0


class JarDelta(BaseModel):
    """
    Signed increments for one jar.

    The storage layer applies these as atomic increments so concurrent
    writers commute; nothing ever writes an absolute jar total.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    allocated: int = 0
    spent: int = 0
    balance: int = 0

    @property
    def is_noop(self) -> bool:
        return self.allocated == 0 and self.spent == 0 and self.balance == 0


class JarPeriodSummary(BaseModel):
    """Snapshot of a jar archived when a budgeting period is closed."""

    code: str
    period_start: datetime
    period_end: datetime
    allocated: int
    spent: int
    balance: int


# =============================================================================
# INCOME & TRANSACTIONS
# =============================================================================

class IncomeRecord(BaseModel):
    """
    One income event and how it was split across the jars.

    `allocated` always carries one entry per catalog jar, even when the
    income was recorded without applying it (auto_allocate off).
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    amount: int = Field(..., gt=0)
    source: str = Field(..., min_length=1, max_length=200)
    note: str = Field(default="", max_length=1000)
    category: str = Field(default="", max_length=200)
    allocated: dict[str, int]
    allocation_status: AllocationStatus = AllocationStatus.PENDING
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator('created_at')
    @classmethod
    def normalise_created_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @model_validator(mode='after')
    def validate_allocated_keys(self) -> 'IncomeRecord':
        """Allocation keys must be exactly the jar catalog."""
        expected = set(get_catalog().codes())
        if set(self.allocated) != expected:
            raise ValueError(
                f"Allocation must cover jars {sorted(expected)}, "
                f"got {sorted(self.allocated)}"
            )
        if any(v < 0 for v in self.allocated.values()):
            raise ValueError("Allocated amounts cannot be negative")
        return self

    @property
    def allocated_total(self) -> int:
        return sum(self.allocated.values())


class Transaction(BaseModel):
    """
    A recorded expense, income or transfer event.

    Immutable once created. Deleting a transaction does not touch
    the jar it was debited from.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    amount: int = Field(..., gt=0)
    jar_code: Optional[str] = None
    category: str = Field(default="", max_length=200)
    description: str = Field(default="", max_length=500)
    type: TransactionType
    recognized_text: Optional[str] = Field(
        default=None,
        max_length=2000,
        description="Original utterance when the transaction came from chat/voice"
    )
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator('created_at')
    @classmethod
    def normalise_created_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @model_validator(mode='after')
    def validate_jar_code(self) -> 'Transaction':
        """Expenses must name a catalog jar."""
        catalog = get_catalog()
        if self.type == TransactionType.EXPENSE and self.jar_code is None:
            raise ValueError("Expense transactions require a jar code")
        if self.jar_code is not None and not catalog.is_valid_code(self.jar_code):
            raise ValueError(f"Unknown jar code: {self.jar_code}")
        return self


# =============================================================================
# BUDGETS
# =============================================================================

class Budget(BaseModel):
    """A spending threshold for one jar."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    jar_code: str
    category: Optional[str] = None
    amount: int = Field(..., gt=0)
    period: BudgetPeriod = BudgetPeriod.MONTHLY
    start_date: datetime
    end_date: Optional[datetime] = None
    alert_threshold: int = Field(default=80, ge=1, le=100)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator('start_date', 'end_date', 'created_at', 'updated_at')
    @classmethod
    def normalise_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else None

    @field_validator('jar_code')
    @classmethod
    def validate_jar_code(cls, v: str) -> str:
        if not get_catalog().is_valid_code(v):
            raise ValueError(f"Unknown jar code: {v}")
        return v

    @model_validator(mode='after')
    def validate_dates(self) -> 'Budget':
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("Budget end date cannot be before start date")
        return self

    def is_active(self, now: datetime) -> bool:
        """Started, and either open-ended or ending in the future."""
        return self.start_date <= now and (self.end_date is None or self.end_date > now)


class BudgetAlert(BaseModel):
    """Result of comparing spend against a jar's active budget."""

    exceeded: bool
    percentage: float = Field(ge=0)
    budget: Optional[Budget] = None


# =============================================================================
# STATISTICS
# =============================================================================

class FinancialStats(BaseModel):
    """Income, expenses and savings over one matching window."""

    window: StatsWindow
    income: int = 0
    expenses: int = 0
    savings: int = 0
    month: Optional[int] = None
    year: Optional[int] = None

    @model_validator(mode='after')
    def validate_savings(self) -> 'FinancialStats':
        if self.savings != self.income - self.expenses:
            raise ValueError("Savings must equal income minus expenses")
        return self


# =============================================================================
# GOALS
# =============================================================================

class FinancialGoal(BaseModel):
    """A savings target, optionally tied to a jar."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    target_amount: int = Field(..., gt=0)
    current_amount: int = Field(default=0, ge=0)
    target_date: Optional[datetime] = None
    jar_code: Optional[str] = None
    status: GoalStatus = GoalStatus.ACTIVE
    priority: GoalPriority = GoalPriority.MEDIUM
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator('target_date', 'created_at', 'updated_at')
    @classmethod
    def normalise_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else None

    @field_validator('jar_code')
    @classmethod
    def validate_jar_code(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not get_catalog().is_valid_code(v):
            raise ValueError(f"Unknown jar code: {v}")
        return v
