"""
Classification Models

Shapes for what the AI classifier hands back to the ledger.

CRITICAL: A TransactionClassification is a PROPOSAL. It is only created
after strict validation and must still be confirmed by the user before
anything is recorded.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from dailymoney.jars.catalog import get_catalog
from dailymoney.models.ledger import utc_now


class ClassifiedType(str, Enum):
    """The classifier only distinguishes income from expense."""
    INCOME = "income"
    EXPENSE = "expense"


class ValidationIssue(BaseModel):
    """A single problem found in classifier output."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'unknown_jar')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="What the user can do about it"
    )


class TransactionClassification(BaseModel):
    """
    Validated output of the text classifier.

    `jar` is present exactly for expenses; `source` for income.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    classification_id: UUID = Field(default_factory=uuid4)
    classified_at: datetime = Field(default_factory=utc_now)

    type: ClassifiedType
    amount: int = Field(..., gt=0)
    category: str = Field(..., min_length=1, max_length=200)
    confidence: float = Field(..., ge=0.0, le=1.0)
    description: str = Field(default="", max_length=500)
    jar: Optional[str] = None
    source: Optional[str] = Field(default=None, max_length=200)

    # Warnings don't block but should be shown to the user
    warnings: list[str] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_type_fields(self) -> 'TransactionClassification':
        if self.type == ClassifiedType.EXPENSE:
            if not get_catalog().is_valid_code(self.jar):
                raise ValueError(f"Expense requires a catalog jar, got {self.jar!r}")
        elif self.jar is not None:
            raise ValueError("Income classifications do not carry a jar")
        if self.type == ClassifiedType.INCOME and not self.source:
            raise ValueError("Income classifications require a source")
        return self

    @property
    def needs_review(self) -> bool:
        return bool(self.warnings)
