"""Validation package."""

from dailymoney.validation.classification import (
    ClassificationError,
    ClassificationServiceError,
    ClassificationValidator,
)

__all__ = [
    "ClassificationError",
    "ClassificationServiceError",
    "ClassificationValidator",
]
