"""
Classification Validator

The classifier's output is untrusted. Before it becomes a
TransactionClassification it goes through two stages:

STAGE 1 - SCHEMA:
- type is "income" or "expense"
- amount is a positive whole number
- category is present
- confidence is a number in 0..1

STAGE 2 - LEDGER RULES:
- an expense names one of the six catalog jars
- an income carries a source (the category stands in when missing)
- low confidence is flagged for review

Any constraint the model itself rejects, such as a text length limit, is
reported as a ClassificationError too.

IMPORTANT: Validation NEVER silently fixes issues. In particular it never
picks a jar or a category for the user. It reports them instead.
"""

from typing import Any, Optional

from pydantic import ValidationError

from dailymoney.jars import InvalidAmountError, JarCatalog, get_catalog, to_amount
from dailymoney.models.classification import (
    ClassifiedType,
    TransactionClassification,
    ValidationIssue,
)


class ClassificationError(ValueError):
    """Classifier output failed validation."""

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = issues
        details = "; ".join(f"{i.field}: {i.message}" for i in issues)
        super().__init__(f"Invalid classification: {details}")


class ClassificationServiceError(ClassificationError):
    """The classification service could not be reached or returned nothing usable."""

    def __init__(self, message: str):
        super().__init__([
            ValidationIssue(field="service", issue_type="unavailable", message=message)
        ])


class ClassificationValidator:
    """Turns a raw classifier dict into a validated TransactionClassification."""

    def __init__(
        self,
        catalog: Optional[JarCatalog] = None,
        review_confidence: float = 0.7,
    ):
        self._catalog = catalog or get_catalog()
        self._review_confidence = review_confidence

    def _validate_schema(
        self,
        data: dict[str, Any],
    ) -> tuple[dict[str, Any], list[ValidationIssue]]:
        """
        Stage 1: field presence and types.

        Returns: (normalised_fields, list_of_issues)
        """
        issues = []
        fields: dict[str, Any] = {}

        raw_type = data.get("type")
        try:
            fields["type"] = ClassifiedType(str(raw_type).strip().lower())
        except ValueError:
            issues.append(ValidationIssue(
                field="type",
                issue_type="missing" if raw_type is None else "invalid_value",
                message=f"Type must be 'income' or 'expense', got {raw_type!r}",
            ))

        raw_amount = data.get("amount")
        try:
            fields["amount"] = to_amount(raw_amount)
        except InvalidAmountError as e:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing" if raw_amount is None else "invalid_value",
                message=f"Amount {e.reason}",
                suggested_fix="Say the amount as a whole number, e.g. 50000",
            ))

        category = data.get("category")
        if not isinstance(category, str) or not category.strip():
            issues.append(ValidationIssue(
                field="category",
                issue_type="missing",
                message="Category is required",
            ))
        else:
            fields["category"] = category.strip()

        raw_confidence = data.get("confidence")
        if isinstance(raw_confidence, bool) or not isinstance(raw_confidence, (int, float)):
            issues.append(ValidationIssue(
                field="confidence",
                issue_type="missing" if raw_confidence is None else "invalid_value",
                message=f"Confidence must be a number, got {raw_confidence!r}",
            ))
        elif not 0.0 <= raw_confidence <= 1.0:
            issues.append(ValidationIssue(
                field="confidence",
                issue_type="invalid_value",
                message=f"Confidence must be between 0 and 1, got {raw_confidence}",
            ))
        else:
            fields["confidence"] = float(raw_confidence)

        description = data.get("description")
        fields["description"] = description.strip() if isinstance(description, str) else ""

        return fields, issues

    def _validate_rules(
        self,
        fields: dict[str, Any],
        data: dict[str, Any],
    ) -> tuple[dict[str, Any], list[ValidationIssue]]:
        """Stage 2: jar and source rules for the classified type."""
        issues = []
        warnings = []

        if fields["type"] == ClassifiedType.EXPENSE:
            jar = data.get("jar")
            if jar is None or (isinstance(jar, str) and not jar.strip()):
                issues.append(ValidationIssue(
                    field="jar",
                    issue_type="missing",
                    message="Expense has no jar",
                    suggested_fix="Choose one of: " + ", ".join(self._catalog.codes()),
                ))
            elif not self._catalog.is_valid_code(jar.strip() if isinstance(jar, str) else jar):
                issues.append(ValidationIssue(
                    field="jar",
                    issue_type="unknown_jar",
                    message=f"Unknown jar code {jar!r}",
                    suggested_fix="Choose one of: " + ", ".join(self._catalog.codes()),
                ))
            else:
                fields["jar"] = jar.strip()
        else:
            source = data.get("source")
            if isinstance(source, str) and source.strip():
                fields["source"] = source.strip()
            else:
                fields["source"] = fields["category"]
                warnings.append("Income source was missing; using the category")

        if fields["confidence"] < self._review_confidence:
            warnings.append(
                f"Low classification confidence ({fields['confidence']:.0%}); please review"
            )

        fields["warnings"] = warnings
        return fields, issues

    def validate(self, data: Any) -> TransactionClassification:
        """
        Run both stages.

        Raises:
            ClassificationError: listing every error found
        """
        if not isinstance(data, dict):
            raise ClassificationError([ValidationIssue(
                field="classification",
                issue_type="invalid_value",
                message=f"Expected a JSON object, got {type(data).__name__}",
            )])

        fields, issues = self._validate_schema(data)
        # Stage 2 needs every stage 1 field
        if issues:
            raise ClassificationError(issues)

        fields, issues = self._validate_rules(fields, data)
        if issues:
            raise ClassificationError(issues)

        try:
            return TransactionClassification(**fields)
        except ValidationError as e:
            raise ClassificationError([
                ValidationIssue(
                    field=".".join(str(part) for part in error["loc"]) or "classification",
                    issue_type="invalid_value",
                    message=error["msg"],
                )
                for error in e.errors()
            ]) from e
