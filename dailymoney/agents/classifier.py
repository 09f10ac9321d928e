"""
Transaction Classifier Agent

Turns a free-form utterance ("vừa ăn trưa 50 nghìn") into a proposed
income or expense using Gemini.

CRITICAL BOUNDARIES:
- CAN: Read the user's sentence and propose type, amount, jar, category
- CANNOT: Record anything (the caller decides what to do with the proposal)
- CANNOT: Pick a jar when the model did not name one

The LLM is a TRANSLATOR, not an ORACLE. Whatever it returns goes through
ClassificationValidator before anyone sees it.
"""

import json
import re
from typing import Any, Optional

import google.generativeai as genai
import structlog

from dailymoney.config import GeminiSettings, get_settings
from dailymoney.jars import JarCatalog, get_catalog
from dailymoney.models.classification import TransactionClassification
from dailymoney.validation import (
    ClassificationError,
    ClassificationServiceError,
    ClassificationValidator,
)


logger = structlog.get_logger(__name__)

_FENCE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

MAX_TEXT_LENGTH = 500


def extract_json(text: str) -> dict[str, Any]:
    """
    Pull the JSON object out of a model reply.

    Strips markdown code fences and any prose around the object.

    Raises:
        ClassificationServiceError: if no JSON object can be parsed
    """
    cleaned = _FENCE.sub("", text or "").strip()
    match = _OBJECT.search(cleaned)
    if match is None:
        raise ClassificationServiceError("Model reply contained no JSON object")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ClassificationServiceError(f"Model reply was not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ClassificationServiceError("Model reply was not a JSON object")
    return data


class TransactionClassifierAgent:
    """
    Gemini-backed classifier for natural-language transactions.

    `model` may be any object with an async `generate_content_async(prompt)`
    returning something with a `.text`; tests pass a fake.
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        validator: Optional[ClassificationValidator] = None,
        catalog: Optional[JarCatalog] = None,
        model: Any = None,
    ):
        self._catalog = catalog or get_catalog()
        self._model = model
        self._settings = settings
        if self._model is None:
            self._settings = settings or get_settings().gemini
            self._configure_genai()
        review_confidence = self._settings.review_confidence if self._settings else 0.7
        self._validator = validator or ClassificationValidator(
            catalog=self._catalog,
            review_confidence=review_confidence,
        )

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    def build_prompt(self, text: str) -> str:
        jar_lines = "\n".join(
            f"- {jar.code}: {jar.name_en} ({', '.join(jar.examples)})"
            for jar in self._catalog
        )
        return f"""Classify this sentence from a personal finance app as INCOME or EXPENSE.
The user speaks Vietnamese or English. Amounts are in VND, whole numbers only
("50 nghìn" = 50000, "10 triệu" = 10000000).

Sentence: "{text}"

Expense jars (only for expenses):
{jar_lines}

Respond with ONLY a JSON object, no other text.

Income:
{{"type": "income", "amount": 10000000, "source": "Salary", "category": "Salary", "confidence": 0.95, "description": "Monthly salary"}}

Expense:
{{"type": "expense", "amount": 50000, "jar": "NEC", "category": "Food", "confidence": 0.95, "description": "Lunch"}}

Rules:
- "jar" only for expenses, and only one of: {", ".join(self._catalog.codes())}
- "source" only for income
- confidence between 0.0 and 1.0; lower it when unsure, never guess a jar"""

    async def classify_raw(self, text: str) -> dict[str, Any]:
        """
        Ask the model and return its parsed, unvalidated JSON.

        Raises:
            ValueError: If text is empty or too long
            ClassificationServiceError: If the model call fails or its reply is unusable
        """
        text = (text or "").strip()
        if not text:
            raise ValueError("Text to classify is required")
        if len(text) > MAX_TEXT_LENGTH:
            raise ValueError(f"Text to classify is longer than {MAX_TEXT_LENGTH} characters")

        try:
            response = await self._model.generate_content_async(self.build_prompt(text))
            reply = response.text
        except Exception as e:
            logger.error("classifier_call_failed", error=str(e))
            raise ClassificationServiceError(f"Classification service failed: {e}") from e

        if not reply or not reply.strip():
            raise ClassificationServiceError("No response from classification service")
        return extract_json(reply)

    async def classify(self, text: str) -> TransactionClassification:
        """
        Classify a sentence into a validated proposal.

        Raises:
            ClassificationError: If the model's answer fails validation
            ClassificationServiceError: If the model could not be used
        """
        data = await self.classify_raw(text)
        try:
            classification = self._validator.validate(data)
        except ClassificationError:
            logger.warning("classification_rejected", reply=data)
            raise

        logger.info(
            "classification_completed",
            type=classification.type.value,
            confidence=classification.confidence,
            needs_review=classification.needs_review,
        )
        return classification
